from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol
from uuid import uuid4

from pydantic_ai.ui.vercel_ai.request_types import (
    DynamicToolInputAvailablePart,
    DynamicToolOutputAvailablePart,
    DynamicToolOutputErrorPart,
    FileUIPart,
    ReasoningUIPart,
    SubmitMessage,
    TextUIPart,
    ToolInputAvailablePart,
    ToolOutputAvailablePart,
    ToolOutputErrorPart,
    UIMessage,
)

from parley.client.api import AgentClient
from parley.core.handlers import HostBridge, SilentHandler, ToolHandlerRegistry
from parley.core.tool_calls import (
    ToolCallProtocol,
    ToolCallRecord,
    ToolStatus,
    advance,
    apply_stream_event,
    parse_tool_response,
)

logger = logging.getLogger(__name__)


class ConversationBusyError(RuntimeError):
    pass


class ConversationListener(Protocol):
    def message_started(self, message_id: str, role: str) -> None: ...

    def message_delta(self, message_id: str, delta: str) -> None: ...

    def message_added(self, role: str, content: str) -> None: ...

    def tool_call_changed(self, call: ToolCallProtocol) -> None: ...

    def streaming_changed(self, streaming: bool) -> None: ...

    def notice(self, text: str, *, severity: str = "information") -> None: ...


class NullListener:
    def message_started(self, message_id: str, role: str) -> None:
        pass

    def message_delta(self, message_id: str, delta: str) -> None:
        pass

    def message_added(self, role: str, content: str) -> None:
        pass

    def tool_call_changed(self, call: ToolCallProtocol) -> None:
        pass

    def streaming_changed(self, streaming: bool) -> None:
        pass

    def notice(self, text: str, *, severity: str = "information") -> None:
        pass


def build_run_input(text: str) -> SubmitMessage:
    return SubmitMessage(
        id=uuid4().hex,
        messages=[
            UIMessage(
                id=uuid4().hex,
                role="user",
                parts=[TextUIPart(text=text)],
            )
        ],
    )


class ConversationRuntime:
    """Stream state of a single thread.

    Each thread owns one runtime for the whole session, so tool calls waiting
    for an answer survive while another thread is on screen.
    """

    def __init__(
        self,
        thread_id: str,
        *,
        client: AgentClient,
        headers: Callable[[], Mapping[str, str]],
        registry: ToolHandlerRegistry,
        bridge: HostBridge | None = None,
        listener: ConversationListener | None = None,
        on_activity: Callable[[str], None] | None = None,
    ) -> None:
        self.thread_id = thread_id
        self.client = client
        self.registry = registry
        self.bridge = bridge
        self.listener: ConversationListener = listener or NullListener()
        self._headers = headers
        self._on_activity = on_activity
        self.is_streaming = False
        self.tool_calls: dict[str, ToolCallProtocol] = {}
        self._effects_applied: set[str] = set()
        self._event_handlers = {
            "text-start": self._on_text_start_event,
            "text-delta": self._on_text_delta_event,
            "reasoning-start": self._on_reasoning_start_event,
            "reasoning-delta": self._on_reasoning_delta_event,
            "error": self._on_error_event,
        }

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    async def send_text(self, text: str, *, echo: bool = True) -> None:
        if self.is_streaming:
            raise ConversationBusyError("A response is still streaming on this thread.")

        self._set_streaming(True)
        if echo:
            self.listener.message_added("user", text)
        try:
            async for event in self.client.run_stream(build_run_input(text), headers=self._headers()):
                self.handle_event(event)
        finally:
            self._set_streaming(False)
        if self._on_activity:
            self._on_activity(self.thread_id)

    async def respond(self, tool_call_id: str, payload: Mapping[str, Any]) -> bool:
        call = self.tool_calls.get(tool_call_id)
        if call is None:
            logger.warning("Response for unknown tool call %s on thread %s", tool_call_id, self.thread_id)
            return False
        accepted = await call.respond(payload)
        self.listener.tool_call_changed(call)
        return accepted

    def _set_streaming(self, streaming: bool) -> None:
        self.is_streaming = streaming
        self.listener.streaming_changed(streaming)

    def _make_sender(self, call_id: str) -> Callable[[str], Any]:
        async def send(message: str) -> None:
            call = self.tool_calls.get(call_id)
            if call is not None:
                self.listener.tool_call_changed(call)
            await self.send_text(message, echo=False)

        return send

    def _notify_error(self, text: str) -> None:
        self.listener.notice(text, severity="error")

    # -------------------------------------------------------------------------
    # Stream events
    # -------------------------------------------------------------------------

    def handle_event(self, event: Mapping[str, Any]) -> None:
        event_type = event.get("type")
        if not isinstance(event_type, str):
            return
        if event_type.startswith("tool-"):
            records = {key: call.record for key, call in self.tool_calls.items()}
            record = apply_stream_event(records, event)
            if record is not None:
                self._store_record(record, live=True)
            return
        handler = self._event_handlers.get(event_type)
        if handler:
            handler(event)

    def _on_text_start_event(self, event: Mapping[str, Any]) -> None:
        self.listener.message_started(str(event.get("id") or uuid4().hex), "assistant")

    def _on_text_delta_event(self, event: Mapping[str, Any]) -> None:
        message_id = str(event.get("id") or "")
        delta = str(event.get("delta") or "")
        if message_id:
            self.listener.message_delta(message_id, delta)

    def _on_reasoning_start_event(self, event: Mapping[str, Any]) -> None:
        self.listener.message_started(str(event.get("id") or uuid4().hex), "thinking")

    def _on_reasoning_delta_event(self, event: Mapping[str, Any]) -> None:
        message_id = str(event.get("id") or "")
        delta = str(event.get("delta") or "")
        if message_id:
            self.listener.message_delta(message_id, delta)

    def _on_error_event(self, event: Mapping[str, Any]) -> None:
        error_text = str(event.get("errorText") or "Unknown error")
        self.listener.message_added("system", f"Run error: {error_text}")

    def _store_record(self, record: ToolCallRecord, *, live: bool) -> ToolCallProtocol:
        call = self.tool_calls.get(record.id)
        if call is None:
            call = ToolCallProtocol(
                record,
                send=self._make_sender(record.id),
                is_streaming=lambda: self.is_streaming,
                notify=self._notify_error,
            )
            self.tool_calls[record.id] = call
        else:
            call.update(record)

        if live:
            self._apply_effect(call)
        self.listener.tool_call_changed(call)
        return call

    def _apply_effect(self, call: ToolCallProtocol) -> None:
        handler = self.registry.resolve(call.name)
        if not isinstance(handler, SilentHandler) or self.bridge is None:
            return
        if call.status is ToolStatus.PENDING or call.id in self._effects_applied:
            return
        self._effects_applied.add(call.id)
        try:
            handler.apply(call.record, self.bridge)
        except Exception:
            logger.exception("Client-side effect for %s failed", call.name)

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------

    async def load_history(self) -> bool:
        try:
            payload = await self.client.get_thread_messages(self.thread_id, headers=self._headers())
        except Exception as exc:
            logger.info("No history for thread %s: %s", self.thread_id, exc)
            return False
        self.hydrate(payload.messages)
        return True

    def hydrate(self, messages: list[UIMessage]) -> None:
        answered: dict[str, dict[str, Any]] = {}
        for message in messages:
            if message.role != "user":
                continue
            for part in message.parts:
                if isinstance(part, TextUIPart):
                    parsed = parse_tool_response(part.text)
                    if parsed:
                        answered[parsed[0]] = parsed[1]

        for message in messages:
            if message.role == "assistant":
                self._hydrate_assistant_parts(message.parts)
                continue
            content = _collect_text(message.parts)
            if not content or parse_tool_response(content):
                continue
            self.listener.message_added(message.role, content)

        for tool_call_id, payload in answered.items():
            call = self.tool_calls.get(tool_call_id)
            if call is None or call.record.is_complete:
                continue
            call.update(advance(call.record, ToolStatus.COMPLETE, result=payload, responded=True))
            self.listener.tool_call_changed(call)

    def _hydrate_assistant_parts(self, parts: list[Any]) -> None:
        buffer: list[str] = []

        def flush_buffer() -> None:
            content = "".join(buffer).strip()
            buffer.clear()
            if content:
                self.listener.message_added("assistant", content)

        for part in parts:
            if isinstance(part, TextUIPart):
                buffer.append(part.text)
                continue
            if isinstance(part, FileUIPart):
                buffer.append(f"[{part.filename or part.media_type or 'file'}]")
                continue
            if isinstance(part, ReasoningUIPart):
                flush_buffer()
                if part.text:
                    self.listener.message_added("thinking", part.text)
                continue

            record = _record_from_part(part)
            if record is not None:
                flush_buffer()
                self._store_record(record, live=False)

        flush_buffer()


def _collect_text(parts: list[Any]) -> str:
    chunks: list[str] = []
    for part in parts:
        if isinstance(part, TextUIPart):
            if part.text:
                chunks.append(part.text)
        elif isinstance(part, FileUIPart):
            chunks.append(f"[{part.filename or part.media_type or 'file'}]")
    return "\n".join(chunks).strip()


def _record_from_part(part: Any) -> ToolCallRecord | None:
    if isinstance(part, (ToolInputAvailablePart, ToolOutputAvailablePart, ToolOutputErrorPart)):
        name = part.type.removeprefix("tool-")
    elif isinstance(part, (DynamicToolInputAvailablePart, DynamicToolOutputAvailablePart, DynamicToolOutputErrorPart)):
        name = part.tool_name
    else:
        return None

    arguments = part.input if isinstance(part.input, dict) else {}
    record = advance(
        ToolCallRecord(id=part.tool_call_id, name=name),
        ToolStatus.EXECUTING,
        arguments=arguments,
    )
    if isinstance(part, (ToolOutputAvailablePart, DynamicToolOutputAvailablePart)):
        return advance(record, ToolStatus.COMPLETE, result=part.output)
    if isinstance(part, (ToolOutputErrorPart, DynamicToolOutputErrorPart)):
        return advance(record, ToolStatus.COMPLETE, result={"stderr": part.error_text, "exit_code": 1})
    return record
