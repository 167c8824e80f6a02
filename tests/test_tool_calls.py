from __future__ import annotations

import asyncio
import json

import pytest

from parley.core.tool_calls import (
    TOOL_RESPONSE_SOURCE,
    ToolCallProtocol,
    ToolCallRecord,
    ToolStatus,
    advance,
    apply_stream_event,
    format_tool_response,
    parse_tool_response,
)


def _run(coro):
    return asyncio.run(coro)


def _apply_all(events: list[dict]) -> list[ToolCallRecord]:
    records: dict[str, ToolCallRecord] = {}
    seen: list[ToolCallRecord] = []
    for event in events:
        record = apply_stream_event(records, event)
        if record is not None:
            records[record.id] = record
            seen.append(record)
    return seen


def _executing(name: str = "prompt_user_selection", **arguments) -> ToolCallRecord:
    return advance(ToolCallRecord(id="call-1", name=name), ToolStatus.EXECUTING, arguments=arguments)


class FakeSender:
    def __init__(self, error: Exception | None = None) -> None:
        self.sent: list[str] = []
        self.error = error

    async def __call__(self, message: str) -> None:
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        self.sent.append(message)


def test_status_never_regresses() -> None:
    seen = _apply_all(
        [
            {"type": "tool-input-start", "toolCallId": "c1", "toolName": "run_command"},
            {"type": "tool-input-available", "toolCallId": "c1", "toolName": "run_command", "input": {"command": "ls"}},
            {"type": "tool-output-available", "toolCallId": "c1", "output": {"stdout": "a"}},
            {"type": "tool-input-start", "toolCallId": "c1", "toolName": "run_command"},
            {"type": "tool-input-available", "toolCallId": "c1", "toolName": "run_command", "input": {"command": "rm"}},
        ]
    )
    ranks = [record.status.rank for record in seen]
    assert ranks == sorted(ranks)
    assert seen[-1].status is ToolStatus.COMPLETE
    assert seen[-1].arguments == {"command": "ls"}
    assert seen[-1].result == {"stdout": "a"}


def test_result_only_set_on_completion() -> None:
    record = ToolCallRecord(id="c1", name="x")
    record = advance(record, ToolStatus.EXECUTING, result="early")
    assert record.result is None

    record = advance(record, ToolStatus.COMPLETE, result="final")
    assert record.result == "final"

    assert advance(record, ToolStatus.COMPLETE, result="changed") is record
    assert advance(record, ToolStatus.PENDING) is record


def test_advance_keeps_higher_status() -> None:
    record = _executing()
    assert advance(record, ToolStatus.PENDING).status is ToolStatus.EXECUTING


def test_input_deltas_build_arguments() -> None:
    seen = _apply_all(
        [
            {"type": "tool-input-start", "toolCallId": "c1", "toolName": "navigate_to"},
            {"type": "tool-input-delta", "toolCallId": "c1", "inputTextDelta": '{"path": '},
            {"type": "tool-input-delta", "toolCallId": "c1", "inputTextDelta": '"/contacts"}'},
        ]
    )
    assert seen[1].arguments == {}
    assert seen[-1].arguments == {"path": "/contacts"}
    assert seen[-1].status is ToolStatus.PENDING


def test_output_error_completes_with_stderr() -> None:
    seen = _apply_all(
        [
            {"type": "tool-input-available", "toolCallId": "c1", "toolName": "run_command", "input": "{\"command\": \"x\"}"},
            {"type": "tool-output-error", "toolCallId": "c1", "errorText": "boom"},
        ]
    )
    assert seen[0].arguments == {"command": "x"}
    assert seen[-1].is_complete
    assert seen[-1].result == {"stderr": "boom", "exit_code": 1}


def test_non_tool_events_are_ignored() -> None:
    assert apply_stream_event({}, {"type": "text-delta", "id": "m1", "delta": "hi"}) is None
    assert apply_stream_event({}, {"type": "tool-input-start", "toolName": "x"}) is None


def test_tool_response_envelope() -> None:
    record = _executing()
    text = format_tool_response(record, {"selected": "a", "timestamp": 1})
    header, _, body = text.partition("\n")
    assert header == "Tool response: prompt_user_selection"
    assert json.loads(body) == {
        "tool_call_id": "call-1",
        "tool_name": "prompt_user_selection",
        "selected": "a",
        "timestamp": 1,
        "source": TOOL_RESPONSE_SOURCE,
    }
    assert parse_tool_response(text) == ("call-1", {"selected": "a", "timestamp": 1})
    assert parse_tool_response("Tool response: x\nnot json") is None
    assert parse_tool_response("hello") is None


def test_respond_twice_sends_once() -> None:
    sender = FakeSender()
    call = ToolCallProtocol(_executing(), send=sender, is_streaming=lambda: False)

    assert _run(call.respond({"selected": "a"})) is True
    assert _run(call.respond({"selected": "b"})) is False

    assert len(sender.sent) == 1
    assert call.record.responded is True
    assert call.record.status is ToolStatus.COMPLETE
    assert call.record.result["selected"] == "a"
    assert "timestamp" in call.record.result


def test_concurrent_responses_send_once() -> None:
    sender = FakeSender()
    call = ToolCallProtocol(_executing(), send=sender, is_streaming=lambda: False)

    async def respond_both():
        return await asyncio.gather(call.respond({"selected": "a"}), call.respond({"selected": "b"}))

    results = _run(respond_both())
    assert sorted(results) == [False, True]
    assert len(sender.sent) == 1


def test_failed_send_keeps_call_open() -> None:
    notices: list[str] = []
    sender = FakeSender(error=RuntimeError("boom"))
    call = ToolCallProtocol(_executing(), send=sender, is_streaming=lambda: False, notify=notices.append)

    assert _run(call.respond({"selected": "a"})) is False
    assert call.status is ToolStatus.EXECUTING
    assert call.record.responded is False
    assert call.in_flight is False
    assert call.can_respond is True
    assert notices == ["Failed to send tool response: boom"]

    sender.error = None
    assert _run(call.respond({"selected": "a"})) is True
    assert len(sender.sent) == 1


def test_respond_blocked_while_streaming_or_pending() -> None:
    sender = FakeSender()
    streaming = ToolCallProtocol(_executing(), send=sender, is_streaming=lambda: True)
    assert streaming.can_respond is False
    assert _run(streaming.respond({"selected": "a"})) is False

    pending = ToolCallProtocol(ToolCallRecord(id="c2", name="x"), send=sender, is_streaming=lambda: False)
    assert _run(pending.respond({"ok": True})) is False
    assert sender.sent == []


def test_respond_keeps_given_timestamp() -> None:
    sender = FakeSender()
    call = ToolCallProtocol(_executing(), send=sender, is_streaming=lambda: False)
    _run(call.respond({"confirmed": True, "timestamp": 5}))
    assert parse_tool_response(sender.sent[0]) == ("call-1", {"confirmed": True, "timestamp": 5})


def test_update_after_response_is_ignored() -> None:
    call = ToolCallProtocol(_executing(), send=FakeSender(), is_streaming=lambda: False)
    _run(call.respond({"selected": "a"}))

    call.update(advance(_executing(), ToolStatus.COMPLETE, result={"selected": "upstream"}))
    assert call.record.result["selected"] == "a"

    with pytest.raises(ValueError):
        call.update(ToolCallRecord(id="other", name="x"))


def test_update_never_moves_a_call_backwards() -> None:
    done = advance(_executing(), ToolStatus.COMPLETE, result={"ok": True})
    call = ToolCallProtocol(done, send=FakeSender(), is_streaming=lambda: False)

    call.update(_executing())
    assert call.status is ToolStatus.COMPLETE
    assert call.record.result == {"ok": True}

    call.update(advance(_executing(), ToolStatus.COMPLETE, result={"ok": False}))
    assert call.record.result == {"ok": True}

    pending = ToolCallProtocol(ToolCallRecord(id="call-1", name="x"), send=FakeSender(), is_streaming=lambda: False)
    pending.update(_executing(choices="a|b"))
    assert pending.status is ToolStatus.EXECUTING


def test_deeply_nested_json_is_tolerated() -> None:
    deep = "[" * 100_000
    record = apply_stream_event({}, {"type": "tool-input-delta", "toolCallId": "c", "inputTextDelta": deep})
    assert record is not None
    assert record.arguments == {}
    assert record.argument_buffer == deep

    assert parse_tool_response("Tool response: x\n" + deep) is None
    available = apply_stream_event({}, {"type": "tool-input-available", "toolCallId": "c", "toolName": "x", "input": deep})
    assert available.arguments == {}
