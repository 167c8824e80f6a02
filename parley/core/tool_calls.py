from __future__ import annotations

import json
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

TOOL_RESPONSE_SOURCE = "frontend-tool"

_UNSET: Any = object()


class ToolStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETE = "complete"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER[self]


_STATUS_ORDER = {ToolStatus.PENDING: 0, ToolStatus.EXECUTING: 1, ToolStatus.COMPLETE: 2}


@dataclass(frozen=True)
class ToolCallRecord:
    id: str
    name: str
    arguments: Mapping[str, Any] = field(default_factory=dict)
    status: ToolStatus = ToolStatus.PENDING
    result: Any = None
    responded: bool = False
    argument_buffer: str = ""

    @property
    def is_complete(self) -> bool:
        return self.status is ToolStatus.COMPLETE

    @property
    def has_result(self) -> bool:
        return self.is_complete and self.result is not None


def now_ms() -> int:
    return int(time.time() * 1000)


def advance(
    record: ToolCallRecord,
    status: ToolStatus,
    *,
    name: str | None = None,
    arguments: Mapping[str, Any] | None = None,
    result: Any = _UNSET,
    responded: bool | None = None,
) -> ToolCallRecord:
    """Return ``record`` moved forward to ``status``.

    Status never regresses. Arguments are frozen once the call is complete and
    the result is only written on the transition into ``complete``.
    """
    if record.is_complete:
        return record

    target = status if status.rank >= record.status.rank else record.status
    changes: dict[str, Any] = {"status": target}
    if name and name != record.name:
        changes["name"] = name
    if arguments is not None:
        changes["arguments"] = dict(arguments)
    if target is ToolStatus.COMPLETE and result is not _UNSET:
        changes["result"] = result
    if responded is not None:
        changes["responded"] = responded
    return replace(record, **changes)


def append_argument_delta(record: ToolCallRecord, delta: str) -> ToolCallRecord:
    if record.status is not ToolStatus.PENDING or not delta:
        return record
    buffer = record.argument_buffer + delta
    arguments = record.arguments
    try:
        parsed = json.loads(buffer)
    except (ValueError, RecursionError):
        parsed = None
    if isinstance(parsed, dict):
        arguments = parsed
    return replace(record, argument_buffer=buffer, arguments=arguments)


def _coerce_arguments(value: Any) -> dict[str, Any]:
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except (ValueError, RecursionError):
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


def apply_stream_event(
    records: Mapping[str, ToolCallRecord],
    event: Mapping[str, Any],
) -> ToolCallRecord | None:
    """Apply one Vercel AI UI stream event to the tool calls of a thread.

    Returns the updated record, or ``None`` when the event does not concern a
    tool call.
    """
    event_type = event.get("type")
    tool_call_id = str(event.get("toolCallId") or "")
    if not tool_call_id or not isinstance(event_type, str) or not event_type.startswith("tool-"):
        return None

    tool_name = str(event.get("toolName") or "")
    record = records.get(tool_call_id) or ToolCallRecord(id=tool_call_id, name=tool_name or "tool")

    if event_type == "tool-input-start":
        return advance(record, ToolStatus.PENDING, name=tool_name)
    if event_type == "tool-input-delta":
        return append_argument_delta(record, str(event.get("inputTextDelta") or ""))
    if event_type == "tool-input-available":
        return advance(
            record,
            ToolStatus.EXECUTING,
            name=tool_name,
            arguments=_coerce_arguments(event.get("input")),
        )
    if event_type == "tool-output-available":
        return advance(record, ToolStatus.COMPLETE, result=event.get("output"))
    if event_type == "tool-output-error":
        error_text = str(event.get("errorText") or "Tool error")
        return advance(record, ToolStatus.COMPLETE, result={"stderr": error_text, "exit_code": 1})
    return None


def format_tool_response(record: ToolCallRecord, payload: Mapping[str, Any]) -> str:
    message_payload = {
        "tool_call_id": record.id,
        "tool_name": record.name,
        **payload,
        "source": TOOL_RESPONSE_SOURCE,
    }
    body = json.dumps(message_payload, indent=2, ensure_ascii=False, default=str)
    return f"Tool response: {record.name}\n{body}"


def parse_tool_response(text: str) -> tuple[str, dict[str, Any]] | None:
    """Recover ``(tool_call_id, payload)`` from a message built by ``format_tool_response``."""
    header, _, body = text.partition("\n")
    if not header.startswith("Tool response:") or not body.strip():
        return None
    try:
        data = json.loads(body)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, dict) or data.get("source") != TOOL_RESPONSE_SOURCE:
        return None
    tool_call_id = str(data.get("tool_call_id") or "")
    if not tool_call_id:
        return None
    payload = {k: v for k, v in data.items() if k not in {"tool_call_id", "tool_name", "source"}}
    return tool_call_id, payload


SendMessage = Callable[[str], Awaitable[None]]


class ToolCallProtocol:
    """Lifecycle of one tool call plus its at-most-once response channel."""

    def __init__(
        self,
        record: ToolCallRecord,
        *,
        send: SendMessage,
        is_streaming: Callable[[], bool],
        notify: Callable[[str], None] | None = None,
    ) -> None:
        self.record = record
        self._send = send
        self._is_streaming = is_streaming
        self._notify = notify
        self._in_flight = False

    @property
    def id(self) -> str:
        return self.record.id

    @property
    def name(self) -> str:
        return self.record.name

    @property
    def status(self) -> ToolStatus:
        return self.record.status

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def can_respond(self) -> bool:
        return (
            self.record.status is ToolStatus.EXECUTING
            and not self.record.responded
            and not self._in_flight
            and not self._is_streaming()
        )

    def update(self, record: ToolCallRecord) -> None:
        if record.id != self.record.id:
            raise ValueError(f"Record '{record.id}' does not belong to tool call '{self.record.id}'.")
        if self.record.responded:
            # Our own response already completed the call; upstream echoes are ignored.
            return
        if self.record.is_complete or record.status.rank < self.record.status.rank:
            logger.debug(
                "Keeping tool call %s at %s over stale %s",
                self.record.id,
                self.record.status.value,
                record.status.value,
            )
            return
        self.record = record

    async def respond(self, payload: Mapping[str, Any]) -> bool:
        if not self.can_respond:
            logger.debug(
                "Ignoring response for tool call %s (status=%s responded=%s in_flight=%s)",
                self.record.id,
                self.record.status.value,
                self.record.responded,
                self._in_flight,
            )
            return False

        result = dict(payload)
        result.setdefault("timestamp", now_ms())
        message = format_tool_response(self.record, result)

        self._in_flight = True
        try:
            await self._send(message)
        except Exception as exc:
            logger.exception("Failed to send response for tool call %s", self.record.id)
            if self._notify:
                self._notify(f"Failed to send tool response: {exc or 'Unknown error'}")
            return False
        finally:
            self._in_flight = False

        self.record = advance(self.record, ToolStatus.COMPLETE, result=result, responded=True)
        return True
