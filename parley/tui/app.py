from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from parley.cli import ConnectionInfo

from rich.text import Text
from textual import on
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import Input, Static

from parley.client import AgentClient
from parley.client.conversation import ConversationRuntime
from parley.client.routing import build_routing_headers
from parley.config import ClientConfig
from parley.core.handlers import ToolHandlerRegistry, default_registry
from parley.core.panes import build_pane_specs
from parley.core.threads import SessionContext, ThreadSessionManager
from parley.settings.layout import LayoutPreferenceStore
from parley.tui.commands import CommandSuggester, ParsedCommand, build_help_text, parse_command
from parley.tui.panes import ConversationPane, ConversationPaneSet

logger = logging.getLogger(__name__)

RESIZE_STEP = 5
CHAT_MIN, CHAT_MAX = 20, 50

TEXTUAL_THEMES = {
    "dark": "textual-dark",
    "light": "textual-light",
    "system": "textual-dark",
}


class OverlayApp(App):
    """Host view with a multi-thread agent chat panel docked beside it."""

    CSS = """
    Screen {
        background: #0d1117;
    }

    #layout {
        height: 1fr;
    }

    #host {
        padding: 1 2;
        color: #7d8590;
        border-right: solid #30363d;
    }

    #chat-panel {
        background: #0d1117;
    }

    #header {
        height: 2;
        background: #161b22;
        border-bottom: solid #30363d;
        padding: 0 1;
    }

    #header-left {
        width: 1fr;
        content-align: left middle;
        color: #e6edf3;
        text-style: bold;
    }

    #header-right {
        width: auto;
        content-align: right middle;
        color: #7d8590;
    }

    #empty {
        height: 1fr;
        content-align: center middle;
        color: #7d8590;
    }

    #input-container {
        height: 3;
        background: #161b22;
        border-top: solid #30363d;
        padding: 0 1;
    }

    #input {
        width: 1fr;
        border: none;
        background: #0d1117;
        color: #e6edf3;
        padding: 0 1;
    }

    #input:focus {
        border: none;
    }

    #status {
        width: 12;
        content-align: right middle;
        color: #7d8590;
    }

    #status.streaming {
        color: #3fb950;
    }
    """

    BINDINGS = [
        Binding("ctrl+o", "toggle_panel", "Chat", show=False),
        Binding("ctrl+e", "toggle_expand", "Expand", show=False),
        Binding("ctrl+n", "new_thread", "New", show=False),
        Binding("ctrl+left", "grow_chat", "Wider", show=False),
        Binding("ctrl+right", "shrink_chat", "Narrower", show=False),
    ]

    def __init__(
        self,
        *,
        client: AgentClient,
        config: ClientConfig,
        connection_info: ConnectionInfo | None = None,
        registry: ToolHandlerRegistry | None = None,
    ):
        super().__init__()
        self.client = client
        self.config = config
        self.connection_info = connection_info
        self.registry = registry or default_registry()
        self.layout_store = LayoutPreferenceStore(config.layout_path)
        self.manager = ThreadSessionManager(
            context=SessionContext(
                workspace=config.workspace,
                authenticated=config.auth.is_authenticated,
            ),
            on_refresh=self._schedule_refresh,
            layout=self.layout_store,
        )
        self.route = "/"
        self.chat_open = True
        self.expanded = False
        self.split = self.layout_store.load()
        self._mounted = False
        self._command_suggester = CommandSuggester(
            agent_provider=lambda: [agent.id for agent in self.manager.agents],
            thread_provider=lambda: [record.id for record in self.manager.history],
        )

    def compose(self) -> ComposeResult:
        with Horizontal(id="layout"):
            yield Static("", id="host")
            with Vertical(id="chat-panel"):
                with Horizontal(id="header"):
                    yield Static("Agent", id="header-left")
                    yield Static("", id="header-right")
                yield Static("", id="empty")
                yield ConversationPaneSet(self._create_runtime, id="panes")
                with Horizontal(id="input-container"):
                    yield Input(
                        placeholder="Ask something... (/help)",
                        id="input",
                        suggester=self._command_suggester,
                    )
                    yield Static("", id="status")

    async def on_mount(self) -> None:
        self._mounted = True
        self.query_one("#input", Input).focus()
        self._apply_layout()
        self._update_host()
        self._sync_panes()
        self.run_worker(self._load_agents(), group="agents", exclusive=True)
        self._schedule_refresh(0)
        self.set_interval(self.config.poll_interval, self._poll_threads)

    async def on_shutdown(self) -> None:
        await self.client.close()

    # -------------------------------------------------------------------------
    # Host bridge
    # -------------------------------------------------------------------------

    def set_theme(self, theme: str) -> None:
        self.theme = TEXTUAL_THEMES.get(theme, "textual-dark")
        self._update_host()

    def navigate(self, path: str) -> None:
        self.route = path
        self._update_host()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def action_toggle_panel(self) -> None:
        self.chat_open = not self.chat_open
        if not self.chat_open:
            self.expanded = False
        self._apply_layout()

    def action_toggle_expand(self) -> None:
        self.chat_open = True
        self.expanded = not self.expanded
        self._apply_layout()

    def action_new_thread(self) -> None:
        self.manager.create_thread()
        self._sync_panes()

    def action_grow_chat(self) -> None:
        self._resize_chat(RESIZE_STEP)

    def action_shrink_chat(self) -> None:
        self._resize_chat(-RESIZE_STEP)

    def _resize_chat(self, delta: float) -> None:
        chat = min(CHAT_MAX, max(CHAT_MIN, self.split[1] + delta))
        self.split = (100 - chat, chat)
        self.layout_store.save(self.split)
        self._apply_layout()

    def _apply_layout(self) -> None:
        if not self._mounted:
            return
        host = self.query_one("#host", Static)
        panel = self.query_one("#chat-panel", Vertical)
        panel.display = self.chat_open
        host.display = not (self.chat_open and self.expanded)
        host.styles.width = f"{self.split[0]}fr" if self.chat_open else "1fr"
        panel.styles.width = "1fr" if self.expanded else f"{self.split[1]}fr"

    def _update_host(self) -> None:
        if not self._mounted:
            return
        lines = [
            f"Route: {self.route}",
            f"Theme: {self.theme}",
            f"Workspace: {self.manager.context.workspace or '(none)'}",
            "",
            "ctrl+o chat  ctrl+e expand  ctrl+n new thread  ctrl+left/right resize",
        ]
        self.query_one("#host", Static).update(Text("\n".join(lines)))

    # -------------------------------------------------------------------------
    # Input Handling
    # -------------------------------------------------------------------------

    @on(Input.Submitted, "#input")
    async def handle_input(self, event: Input.Submitted) -> None:
        user_input = event.value.strip()
        event.input.value = ""

        if not user_input:
            return

        command = parse_command(user_input)
        if command and await self._dispatch_command(command):
            return

        pane = self._visible_pane()
        if pane is None:
            self.manager.create_thread()
            self._sync_panes()
            pane = self._visible_pane()
        if pane is None:
            self._system_message("No conversation is open.")
            return
        pane.submit(user_input)

    async def _dispatch_command(self, command: ParsedCommand) -> bool:
        if command.name == "quit":
            self.exit()
            return True
        if command.name == "help":
            self._system_message(build_help_text())
            return True
        if command.name == "new":
            self.action_new_thread()
            return True
        if command.name == "threads":
            self._list_threads()
            return True
        if command.name == "thread":
            self._handle_thread_command(command)
            return True
        if command.name == "agents":
            self._list_agents()
            return True
        if command.name == "agent":
            self._handle_agent_command(command)
            return True
        if command.name == "workspace":
            await self._handle_workspace_command(command)
            return True
        if command.name == "panel":
            self.action_toggle_panel()
            return True
        if command.name == "expand":
            self.action_toggle_expand()
            return True
        if command.name == "logout":
            await self.sign_out()
            return True
        return False

    def _list_threads(self) -> None:
        history = self.manager.history
        if not history:
            self._system_message("Threads: (none)")
            return
        lines = [f"Threads ({len(history)}):"]
        for i, record in enumerate(history, start=1):
            marker = "*" if record.id == self.manager.current_thread_id else " "
            when = datetime.fromtimestamp(record.last_activity / 1000).strftime("%Y-%m-%d %H:%M")
            agent = f" [{record.agent_name}]" if record.agent_name else ""
            lines.append(f"{marker}{i}. {record.title}{agent} ({when}) {record.id}")
        self._system_message("\n".join(lines))

    def _handle_thread_command(self, command: ParsedCommand) -> None:
        if not command.args:
            self._system_message(f"Current thread: {self.manager.current_thread_id or '(none)'}")
            return

        value = " ".join(command.args).strip()
        thread_id = value
        if value.isdigit():
            idx = int(value)
            if not 1 <= idx <= len(self.manager.history):
                self._system_message(f"Thread number out of range (1-{len(self.manager.history)}).")
                return
            thread_id = self.manager.history[idx - 1].id

        binding = self.manager.select_thread(thread_id)
        self._sync_panes()
        self._system_message(f"Switched to thread '{thread_id}' ({binding.agent_name}).")

    def _list_agents(self) -> None:
        agents = self.manager.agents
        if not agents:
            self._system_message("No agents available.")
            return
        lines = [f"Agents ({len(agents)}):"]
        for i, agent in enumerate(agents, start=1):
            label = f"{agent.name} ({agent.id})" if agent.name != agent.id else agent.id
            lines.append(f"{i}. {label}")
        self._system_message("\n".join(lines))

    def _handle_agent_command(self, command: ParsedCommand) -> None:
        if not command.args:
            binding = self.manager.current_binding
            label = f"{binding.agent_name} ({binding.agent_id or '-'})" if binding else "(none)"
            self._system_message(f"Current agent: {label}")
            return

        value = " ".join(command.args).strip()
        agent_id = value
        if value.isdigit():
            idx = int(value)
            if not 1 <= idx <= len(self.manager.agents):
                self._system_message(f"Agent number out of range (1-{len(self.manager.agents)}).")
                return
            agent_id = self.manager.agents[idx - 1].id
        elif self.manager.find_agent(value) is None:
            self._system_message(f"Unknown agent '{value}'. Use /agents to list them.")
            return

        self.manager.select_agent(agent_id)
        self._sync_panes()

    async def _handle_workspace_command(self, command: ParsedCommand) -> None:
        if not command.args:
            self._system_message(f"Current workspace: {self.manager.context.workspace or '(none)'}")
            return
        workspace = command.args[0].strip()
        await self.set_workspace(workspace)
        self._system_message(f"Switched to workspace '{workspace}'.")

    def _system_message(self, content: str) -> None:
        pane = self._visible_pane()
        if pane is None:
            self.notify(content)
            return
        pane.message_added("system", content)

    # -------------------------------------------------------------------------
    # Threads and panes
    # -------------------------------------------------------------------------

    def _create_runtime(self, pane: ConversationPane) -> ConversationRuntime:
        return ConversationRuntime(
            pane.thread_id,
            client=self.client,
            headers=lambda: pane.headers,
            registry=self.registry,
            bridge=self,
            listener=pane,
            on_activity=self._on_thread_activity,
        )

    def _visible_pane(self) -> ConversationPane | None:
        if not self._mounted:
            return None
        return self.query_one("#panes", ConversationPaneSet).visible_pane

    def _sync_panes(self) -> None:
        if not self._mounted:
            return
        specs = build_pane_specs(self.manager, self.config.auth)
        self.query_one("#panes", ConversationPaneSet).sync(specs)
        self.query_one("#empty", Static).display = not specs
        self._update_header()
        self._update_status()

    def _on_thread_activity(self, thread_id: str) -> None:
        if self.manager.history_entry(thread_id) is not None:
            self.manager.touch_thread(thread_id)
        self._schedule_refresh(0)

    def on_conversation_pane_streaming_changed(self, event: ConversationPane.StreamingChanged) -> None:
        if event.pane is self._visible_pane():
            self._update_status()

    def _update_status(self) -> None:
        if not self._mounted:
            return
        pane = self._visible_pane()
        streaming = bool(pane and pane.runtime.is_streaming)
        status = self.query_one("#status", Static)
        status.update("streaming" if streaming else "")
        status.set_class(streaming, "streaming")

    def _update_header(self) -> None:
        if not self._mounted:
            return
        binding = self.manager.current_binding
        record = (
            self.manager.history_entry(self.manager.current_thread_id)
            if self.manager.current_thread_id
            else None
        )
        parts = []
        if record:
            parts.append(record.title)
        if self.manager.context.workspace:
            parts.append(self.manager.context.workspace)
        if self.connection_info:
            parts.append(self.connection_info.header_label)
        self.query_one("#header-left", Static).update(Text(binding.agent_name if binding else "Select agent..."))
        self.query_one("#header-right", Static).update(Text(" | ".join(parts)))

    # -------------------------------------------------------------------------
    # Background refresh
    # -------------------------------------------------------------------------

    def _request_headers(self) -> dict[str, str]:
        headers = build_routing_headers("", None, self.config.auth, self.manager.context.workspace)
        headers.pop("X-Session-ID", None)
        headers.pop("X-Thread-ID", None)
        return headers

    def _schedule_refresh(self, delay: float) -> None:
        if delay <= 0:
            self._start_refresh()
            return
        self.set_timer(delay, self._start_refresh)

    def _start_refresh(self) -> None:
        self.run_worker(self._refresh_threads(), group="refresh", exclusive=True)

    def _poll_threads(self) -> None:
        if self.manager.context.can_refresh:
            self._start_refresh()

    async def _refresh_threads(self) -> None:
        if not self.manager.context.can_refresh:
            return
        try:
            payload = await self.client.list_sessions(
                self.manager.context.workspace,
                limit=self.config.thread_limit,
                headers=self._request_headers(),
            )
        except Exception as exc:
            logger.warning("Failed to load chat threads: %s", exc)
            return
        self.manager.apply_sessions(payload)
        self._sync_panes()

    async def _load_agents(self) -> None:
        try:
            payload = await self.client.list_agents(
                workspace_id=self.manager.context.workspace,
                headers=self._request_headers(),
            )
        except Exception as exc:
            logger.warning("Failed to load agents: %s", exc)
            self.notify(f"Failed to load agents: {exc}", severity="warning")
            return
        logger.debug("Agents loaded: %s", [agent.id for agent in payload.agents])
        self.manager.apply_agents(payload.agents)
        self._sync_panes()

    async def set_workspace(self, workspace: str | None) -> None:
        self.manager.set_workspace(workspace)
        self._update_host()
        self._sync_panes()
        self.run_worker(self._load_agents(), group="agents", exclusive=True)
        self._schedule_refresh(0)

    async def sign_out(self) -> None:
        self.manager.reset()
        self.config = self.config.signed_out()
        self.chat_open = False
        self.expanded = False
        self.split = self.layout_store.load()
        await self.query_one("#panes", ConversationPaneSet).clear()
        self._sync_panes()
        self._apply_layout()
        self.notify("Signed out. Threads and panel layout were cleared.")


def run_tui(
    *,
    client: AgentClient,
    config: ClientConfig,
    connection_info: ConnectionInfo | None = None,
) -> None:
    OverlayApp(client=client, config=config, connection_info=connection_info).run()
