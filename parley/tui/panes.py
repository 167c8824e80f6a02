from __future__ import annotations

import logging
from collections.abc import Callable

from textual.containers import Container, VerticalScroll
from textual.message import Message

from parley.client.conversation import ConversationBusyError, ConversationRuntime
from parley.core.panes import PaneSpec
from parley.core.tool_calls import ToolCallProtocol
from parley.tui.widgets import ChatMessage, ToolCallCard

logger = logging.getLogger(__name__)

RuntimeFactory = Callable[["ConversationPane"], ConversationRuntime]


class ConversationPane(VerticalScroll):
    """Transcript and tool calls of one thread."""

    DEFAULT_CSS = """
    ConversationPane {
        height: 1fr;
        padding: 1 2;
        background: #0d1117;
    }
    """

    class StreamingChanged(Message):
        def __init__(self, pane: ConversationPane, streaming: bool) -> None:
            super().__init__()
            self.pane = pane
            self.streaming = streaming

    def __init__(self, spec: PaneSpec, runtime_factory: RuntimeFactory) -> None:
        super().__init__(id=spec.dom_id)
        self.spec = spec
        self.runtime = runtime_factory(self)
        self._message_map: dict[str, ChatMessage] = {}
        self._cards: dict[str, ToolCallCard] = {}

    @property
    def thread_id(self) -> str:
        return self.spec.thread_id

    @property
    def headers(self) -> dict[str, str]:
        return self.spec.headers

    def apply_spec(self, spec: PaneSpec) -> None:
        self.spec = spec
        self.display = spec.visible

    def on_mount(self) -> None:
        self.run_worker(self.runtime.load_history(), group="history", exclusive=True)

    def submit(self, text: str) -> None:
        self.run_worker(self._send(text), group="send", exclusive=False)

    async def _send(self, text: str) -> None:
        try:
            await self.runtime.send_text(text)
        except ConversationBusyError as exc:
            self.notice(str(exc), severity="warning")
        except Exception as exc:
            logger.exception("Run failed on thread %s", self.thread_id)
            self.message_added("system", f"Run error: {exc}")
            self.notice(f"Failed to send message: {exc}", severity="error")

    # -------------------------------------------------------------------------
    # ConversationListener
    # -------------------------------------------------------------------------

    def message_started(self, message_id: str, role: str) -> None:
        msg = ChatMessage(role=role)
        self._message_map[message_id] = msg
        self._mount_and_scroll(msg)

    def message_delta(self, message_id: str, delta: str) -> None:
        msg = self._message_map.get(message_id)
        if msg is None:
            msg = ChatMessage(role="assistant")
            self._message_map[message_id] = msg
            self._mount_and_scroll(msg)
        msg.append_content(delta)

    def message_added(self, role: str, content: str) -> None:
        self._mount_and_scroll(ChatMessage(role=role, content=content))

    def tool_call_changed(self, call: ToolCallProtocol) -> None:
        card = self._cards.get(call.id)
        if card is None:
            card = ToolCallCard(call, self.runtime.registry)
            self._cards[call.id] = card
            self._mount_and_scroll(card)
            return
        self.call_later(card.refresh_view)

    def streaming_changed(self, streaming: bool) -> None:
        for card in self._cards.values():
            card.sync_controls()
        self.post_message(self.StreamingChanged(self, streaming))

    def notice(self, text: str, *, severity: str = "information") -> None:
        self.app.notify(text, severity=severity)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def on_tool_call_card_responded(self, event: ToolCallCard.Responded) -> None:
        event.stop()
        self.run_worker(self.runtime.respond(event.tool_call_id, event.payload), exclusive=False)

    def _mount_and_scroll(self, widget: ChatMessage | ToolCallCard) -> None:
        self.mount(widget)
        self.scroll_end(animate=False)


class ConversationPaneSet(Container):
    """Keeps one mounted pane per active thread and shows only the current one."""

    DEFAULT_CSS = """
    ConversationPaneSet {
        height: 1fr;
    }
    """

    def __init__(self, runtime_factory: RuntimeFactory, **kwargs) -> None:
        super().__init__(**kwargs)
        self._runtime_factory = runtime_factory
        self.panes: dict[str, ConversationPane] = {}

    @property
    def visible_pane(self) -> ConversationPane | None:
        for pane in self.panes.values():
            if pane.spec.visible:
                return pane
        return None

    def sync(self, specs: list[PaneSpec]) -> None:
        for spec in specs:
            pane = self.panes.get(spec.thread_id)
            if pane is None:
                pane = ConversationPane(spec, self._runtime_factory)
                self.panes[spec.thread_id] = pane
                pane.display = spec.visible
                self.mount(pane)
                continue
            pane.apply_spec(spec)

    async def clear(self) -> None:
        self.panes = {}
        await self.remove_children()
