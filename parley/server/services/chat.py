from __future__ import annotations

import json
import re
from collections.abc import Iterator
from typing import Any
from uuid import uuid4

from parley.core.tool_calls import parse_tool_response
from parley.server.state import StubState, StubThread

TITLE_CHARS = 40

# "/tool <name> <json arguments>" asks the stub agent to call a frontend tool.
_TOOL_REQUEST = re.compile(r"^/tool\s+(?P<name>[\w.-]+)\s*(?P<args>.*)$", re.DOTALL)


def message_text(message: Any) -> str:
    chunks = [part.text for part in message.parts if getattr(part, "type", None) == "text" and part.text]
    return "\n".join(chunks).strip()


def _text_events(message_id: str, text: str) -> Iterator[dict[str, Any]]:
    yield {"type": "text-start", "id": message_id}
    for word in re.findall(r"\S+\s*", text):
        yield {"type": "text-delta", "id": message_id, "delta": word}
    yield {"type": "text-end", "id": message_id}


def _parse_tool_request(text: str) -> tuple[str, dict[str, Any]] | None:
    match = _TOOL_REQUEST.match(text)
    if not match:
        return None
    raw_args = match.group("args").strip()
    if not raw_args:
        return match.group("name"), {}
    try:
        arguments = json.loads(raw_args)
    except (ValueError, RecursionError):
        return None
    if not isinstance(arguments, dict):
        return None
    return match.group("name"), arguments


def build_reply(state: StubState, thread: StubThread, text: str) -> list[dict[str, Any]]:
    """Record one user turn on ``thread`` and return the UI events answering it."""
    message_id = uuid4().hex
    state.append_message(
        thread,
        {"id": uuid4().hex, "role": "user", "parts": [{"type": "text", "text": text}]},
    )
    if not thread.title and not parse_tool_response(text):
        thread.title = text[:TITLE_CHARS]

    events: list[dict[str, Any]] = [{"type": "start", "messageId": message_id}]
    parts: list[dict[str, Any]] = []

    tool_response = parse_tool_response(text)
    tool_request = None if tool_response else _parse_tool_request(text)

    if tool_request is not None:
        name, arguments = tool_request
        tool_call_id = f"call_{uuid4().hex[:12]}"
        raw = json.dumps(arguments)
        events.extend(
            [
                {"type": "tool-input-start", "toolCallId": tool_call_id, "toolName": name},
                {"type": "tool-input-delta", "toolCallId": tool_call_id, "inputTextDelta": raw},
                {"type": "tool-input-available", "toolCallId": tool_call_id, "toolName": name, "input": arguments},
            ]
        )
        parts.append(
            {
                "type": "dynamic-tool",
                "toolName": name,
                "toolCallId": tool_call_id,
                "state": "input-available",
                "input": arguments,
            }
        )
    else:
        if tool_response is not None:
            tool_call_id, payload = tool_response
            reply = f"Received response for {tool_call_id}: {json.dumps(payload, sort_keys=True)}"
        else:
            reply = f"Echo: {text}"
        events.extend(_text_events(uuid4().hex, reply))
        parts.append({"type": "text", "text": reply})

    events.append({"type": "finish"})
    state.append_message(thread, {"id": message_id, "role": "assistant", "parts": parts})
    return events


def encode_events(events: list[dict[str, Any]]) -> Iterator[str]:
    for event in events:
        yield f"data: {json.dumps(event)}\n\n"
    yield "data: [DONE]\n\n"
