from __future__ import annotations

import asyncio

import pytest
from pydantic_ai.ui.vercel_ai.request_types import UIMessage

from parley.client.conversation import ConversationBusyError, ConversationRuntime
from parley.core.handlers import default_registry
from parley.core.tool_calls import ToolCallRecord, ToolStatus, format_tool_response, parse_tool_response


def _run(coro):
    return asyncio.run(coro)


class FakeClient:
    """Replays one scripted event list per run."""

    def __init__(self, *runs: list[dict]) -> None:
        self.runs = list(runs)
        self.sent: list[str] = []
        self.headers: list[dict] = []

    async def run_stream(self, run_input, *, headers=None):
        self.sent.append(run_input.messages[-1].parts[0].text)
        self.headers.append(dict(headers or {}))
        events = self.runs.pop(0) if self.runs else []
        for event in events:
            await asyncio.sleep(0)
            yield event


class Recorder:
    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []
        self.deltas: dict[str, str] = {}
        self.streaming: list[bool] = []
        self.changes: list[tuple[str, ToolStatus]] = []
        self.notices: list[str] = []

    def message_started(self, message_id: str, role: str) -> None:
        self.deltas[message_id] = ""

    def message_delta(self, message_id: str, delta: str) -> None:
        self.deltas[message_id] = self.deltas.get(message_id, "") + delta

    def message_added(self, role: str, content: str) -> None:
        self.messages.append((role, content))

    def tool_call_changed(self, call) -> None:
        self.changes.append((call.id, call.status))

    def streaming_changed(self, streaming: bool) -> None:
        self.streaming.append(streaming)

    def notice(self, text: str, *, severity: str = "information") -> None:
        self.notices.append(text)


class FakeBridge:
    def __init__(self) -> None:
        self.themes: list[str] = []
        self.routes: list[str] = []

    def set_theme(self, theme: str) -> None:
        self.themes.append(theme)

    def navigate(self, path: str) -> None:
        self.routes.append(path)


SELECTION_RUN = [
    {"type": "start", "messageId": "m1"},
    {"type": "text-start", "id": "m1"},
    {"type": "text-delta", "id": "m1", "delta": "Let me "},
    {"type": "text-delta", "id": "m1", "delta": "ask."},
    {"type": "tool-input-start", "toolCallId": "c1", "toolName": "prompt_user_selection"},
    {
        "type": "tool-input-available",
        "toolCallId": "c1",
        "toolName": "prompt_user_selection",
        "input": {"question": "Color?", "choices": "red|green"},
    },
    {"type": "finish"},
]


@pytest.fixture()
def recorder() -> Recorder:
    return Recorder()


def _runtime(client: FakeClient, recorder: Recorder, bridge: FakeBridge | None = None, activity=None):
    return ConversationRuntime(
        "t1",
        client=client,
        headers=lambda: {"X-Thread-ID": "t1"},
        registry=default_registry(),
        bridge=bridge,
        listener=recorder,
        on_activity=activity,
    )


def test_send_text_streams_into_listener(recorder: Recorder) -> None:
    activity: list[str] = []
    client = FakeClient(SELECTION_RUN)
    runtime = _runtime(client, recorder, activity=activity.append)

    _run(runtime.send_text("hi"))

    assert recorder.messages == [("user", "hi")]
    assert recorder.deltas == {"m1": "Let me ask."}
    assert recorder.streaming == [True, False]
    assert client.headers == [{"X-Thread-ID": "t1"}]
    assert runtime.tool_calls["c1"].status is ToolStatus.EXECUTING
    assert activity == ["t1"]
    assert runtime.is_streaming is False


def test_tool_response_is_sent_once(recorder: Recorder) -> None:
    client = FakeClient(SELECTION_RUN, [{"type": "text-start", "id": "m2"}, {"type": "text-delta", "id": "m2", "delta": "Red it is."}])
    runtime = _runtime(client, recorder)

    async def scenario():
        await runtime.send_text("hi")
        first = await runtime.respond("c1", {"selected": "red", "question": "Color?"})
        second = await runtime.respond("c1", {"selected": "green", "question": "Color?"})
        return first, second

    assert _run(scenario()) == (True, False)
    assert len(client.sent) == 2
    tool_call_id, payload = parse_tool_response(client.sent[1])
    assert tool_call_id == "c1"
    assert payload["selected"] == "red"

    call = runtime.tool_calls["c1"]
    assert call.status is ToolStatus.COMPLETE
    assert call.record.responded is True
    assert recorder.messages == [("user", "hi")]
    assert recorder.deltas["m2"] == "Red it is."


def test_unknown_tool_call_response(recorder: Recorder) -> None:
    runtime = _runtime(FakeClient(), recorder)
    assert _run(runtime.respond("missing", {"ok": True})) is False


def test_second_send_while_streaming_is_rejected(recorder: Recorder) -> None:
    client = FakeClient(SELECTION_RUN)
    runtime = _runtime(client, recorder)

    async def scenario():
        first = asyncio.create_task(runtime.send_text("one"))
        await asyncio.sleep(0)
        with pytest.raises(ConversationBusyError):
            await runtime.send_text("two")
        await first

    _run(scenario())
    assert client.sent == ["one"]


def test_silent_effects_apply_once(recorder: Recorder) -> None:
    bridge = FakeBridge()
    client = FakeClient(
        [
            {"type": "tool-input-start", "toolCallId": "s1", "toolName": "set_theme"},
            {"type": "tool-input-available", "toolCallId": "s1", "toolName": "set_theme", "input": {"theme": "light"}},
            {"type": "tool-output-available", "toolCallId": "s1", "output": {"ok": True}},
            {"type": "tool-input-available", "toolCallId": "n1", "toolName": "navigate_to", "input": {"path": "/deals"}},
        ]
    )
    runtime = _runtime(client, recorder, bridge=bridge)

    _run(runtime.send_text("switch"))

    assert bridge.themes == ["light"]
    assert bridge.routes == ["/deals"]


def test_error_event_becomes_system_message(recorder: Recorder) -> None:
    runtime = _runtime(FakeClient([{"type": "error", "errorText": "quota exceeded"}]), recorder)
    _run(runtime.send_text("hi"))
    assert recorder.messages[-1] == ("system", "Run error: quota exceeded")


def test_hydrate_restores_answered_calls(recorder: Recorder) -> None:
    bridge = FakeBridge()
    runtime = _runtime(FakeClient(), recorder, bridge=bridge)
    answer = format_tool_response(
        ToolCallRecord(id="c9", name="prompt_user_selection"),
        {"selected": "green", "timestamp": 5},
    )
    messages = [
        UIMessage.model_validate({"id": "u1", "role": "user", "parts": [{"type": "text", "text": "hello"}]}),
        UIMessage.model_validate(
            {
                "id": "a1",
                "role": "assistant",
                "parts": [
                    {"type": "text", "text": "Pick one."},
                    {
                        "type": "dynamic-tool",
                        "toolName": "prompt_user_selection",
                        "toolCallId": "c9",
                        "state": "input-available",
                        "input": {"choices": "red|green"},
                    },
                    {
                        "type": "dynamic-tool",
                        "toolName": "set_theme",
                        "toolCallId": "s9",
                        "state": "input-available",
                        "input": {"theme": "light"},
                    },
                    {
                        "type": "dynamic-tool",
                        "toolName": "prompt_user_selection",
                        "toolCallId": "c10",
                        "state": "input-available",
                        "input": {"choices": "a|b"},
                    },
                ],
            }
        ),
        UIMessage.model_validate({"id": "u2", "role": "user", "parts": [{"type": "text", "text": answer}]}),
    ]

    runtime.hydrate(messages)

    assert recorder.messages == [("user", "hello"), ("assistant", "Pick one.")]
    answered = runtime.tool_calls["c9"]
    assert answered.status is ToolStatus.COMPLETE
    assert answered.record.responded is True
    assert answered.record.result == {"selected": "green", "timestamp": 5}
    assert runtime.tool_calls["c10"].can_respond is True
    assert bridge.themes == []


def test_history_does_not_reopen_a_completed_call(recorder: Recorder) -> None:
    run = [
        {"type": "tool-input-start", "toolCallId": "c1", "toolName": "run_shell"},
        {"type": "tool-input-available", "toolCallId": "c1", "toolName": "run_shell", "input": {"cmd": "ls"}},
        {"type": "tool-output-available", "toolCallId": "c1", "output": {"stdout": "a.txt"}},
    ]
    runtime = _runtime(FakeClient(run), recorder)
    _run(runtime.send_text("list"))

    stale = UIMessage.model_validate(
        {
            "id": "a1",
            "role": "assistant",
            "parts": [
                {
                    "type": "dynamic-tool",
                    "toolName": "run_shell",
                    "toolCallId": "c1",
                    "state": "input-available",
                    "input": {"cmd": "ls"},
                }
            ],
        }
    )
    runtime.hydrate([stale])

    call = runtime.tool_calls["c1"]
    assert call.status is ToolStatus.COMPLETE
    assert call.record.result == {"stdout": "a.txt"}


def test_deeply_nested_tool_input_does_not_abort_the_stream(recorder: Recorder) -> None:
    run = [
        {"type": "tool-input-start", "toolCallId": "c1", "toolName": "prompt_user_selection"},
        {"type": "tool-input-delta", "toolCallId": "c1", "inputTextDelta": "[" * 100_000},
        {"type": "text-start", "id": "m1"},
        {"type": "text-delta", "id": "m1", "delta": "still here"},
    ]
    runtime = _runtime(FakeClient(run), recorder)
    _run(runtime.send_text("hi"))

    assert recorder.deltas == {"m1": "still here"}
    assert runtime.tool_calls["c1"].status is ToolStatus.PENDING
