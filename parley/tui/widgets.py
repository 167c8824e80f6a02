from __future__ import annotations

from typing import Any

from rich.text import Text
from textual import on
from textual.containers import Horizontal, Vertical
from textual.message import Message
from textual.widget import Widget
from textual.widgets import Button, Collapsible, Input, Static, TextArea

from parley.core.handlers import ConfirmationHandler, FormHandler, SelectionHandler, ToolHandlerRegistry, form_is_complete
from parley.core.tool_calls import ToolCallProtocol, now_ms
from parley.core.views import ToolView

ROLE_LABELS = {
    "user": "You",
    "assistant": "Agent",
    "thinking": "Thinking",
    "system": "System",
}


class ChatMessage(Static):
    DEFAULT_CSS = """
    ChatMessage {
        margin: 0 0 1 0;
        padding: 0 1;
        color: #e6edf3;
    }
    ChatMessage.user {
        background: #161b22;
        border-left: thick #2f81f7;
    }
    ChatMessage.thinking {
        color: #7d8590;
        text-style: italic;
    }
    ChatMessage.system {
        color: #d29922;
    }
    """

    def __init__(self, role: str, content: str = "") -> None:
        super().__init__(classes=role)
        self.role = role
        self._content = content

    def on_mount(self) -> None:
        self._render_content()

    def append_content(self, delta: str) -> None:
        self._content += delta
        self._render_content()

    @property
    def content(self) -> str:
        return self._content

    def _render_content(self) -> None:
        text = Text()
        text.append(f"{ROLE_LABELS.get(self.role, self.role)}: ", style="bold")
        text.append(self._content)
        self.update(text)


class ToolCallCard(Vertical):
    """One tool call, rendered from its current view projection."""

    DEFAULT_CSS = """
    ToolCallCard {
        height: auto;
        margin: 0 0 1 0;
        padding: 0 1;
        border: round #30363d;
    }
    ToolCallCard.tone-info { border: round #2f81f7; }
    ToolCallCard.tone-success { border: round #3fb950; }
    ToolCallCard.tone-muted { border: round #484f58; color: #7d8590; }
    ToolCallCard.tone-danger { border: round #f85149; }
    ToolCallCard .tool-title { text-style: bold; }
    ToolCallCard .tool-status { color: #7d8590; }
    ToolCallCard .detail-label { color: #7d8590; margin-top: 1; }
    ToolCallCard .detail-block { background: #161b22; padding: 0 1; }
    ToolCallCard Button { margin: 0 1 0 0; }
    ToolCallCard .tool-actions { height: auto; }
    """

    class Responded(Message):
        def __init__(self, tool_call_id: str, payload: dict[str, Any]) -> None:
            super().__init__()
            self.tool_call_id = tool_call_id
            self.payload = payload

    def __init__(self, call: ToolCallProtocol, registry: ToolHandlerRegistry) -> None:
        super().__init__()
        self.call = call
        self.registry = registry
        self.view: ToolView | None = None
        self._values: dict[str, str] = {}
        self._rendered = False

    async def on_mount(self) -> None:
        await self.refresh_view()

    async def refresh_view(self) -> None:
        view = self.registry.render(self.call.record)
        if self._rendered and view == self.view:
            self.sync_controls()
            return
        self.view = view
        self._rendered = True
        await self.remove_children()
        self.display = view is not None
        for tone_class in [c for c in self.classes if c.startswith("tone-")]:
            self.remove_class(tone_class)
        if view is None:
            return
        self.add_class(f"tone-{view.tone.value}")
        await self.mount_all(self._build(view))
        self.sync_controls()

    def _build(self, view: ToolView) -> list[Widget]:
        widgets: list[Widget] = []
        header = Text(view.title, style="bold")
        if view.status_text:
            header.append(f"  {view.status_text}", style="dim")
        if view.busy:
            header.append(" ...", style="dim")
        widgets.append(Static(header, classes="tool-title"))

        if view.question:
            widgets.append(Static(Text(view.question)))
        if view.lines:
            widgets.append(Static(Text("\n".join(view.lines))))

        if view.choices:
            widgets.extend(
                Button(Text(choice), name=f"choice:{index}", variant="default")
                for index, choice in enumerate(view.choices)
            )

        if view.fields:
            for index, field in enumerate(view.fields):
                widgets.append(Static(Text(field.label), classes="detail-label"))
                value = self._values.get(field.name, "")
                if field.multiline:
                    widgets.append(TextArea(value, name=f"field:{index}"))
                else:
                    widgets.append(
                        Input(
                            value=value,
                            placeholder=field.placeholder,
                            name=f"field:{index}",
                            type="number" if field.type == "number" else "text",
                            password=field.type == "password",
                        )
                    )
            widgets.append(Button(Text(view.submit_label), name="submit", variant="primary"))

        if view.actions:
            buttons = [
                Button(Text(action.label), name=f"action:{index}", variant=action.variant)
                for index, action in enumerate(view.actions)
            ]
            widgets.append(Horizontal(*buttons, classes="tool-actions"))

        if view.details:
            blocks: list[Widget] = []
            for block in view.details:
                blocks.append(Static(Text(block.label), classes="detail-label"))
                blocks.append(Static(Text(block.content), classes="detail-block"))
            if view.collapsible:
                widgets.append(Collapsible(*blocks, title=view.disclosure_label, collapsed=True))
            else:
                widgets.extend(blocks)
        return widgets

    def sync_controls(self) -> None:
        if self.view is None:
            return
        enabled = self.call.can_respond
        complete = form_is_complete(self.view.fields, self._values)
        for button in self.query(Button):
            if button.name == "submit":
                button.disabled = not (enabled and complete)
            else:
                button.disabled = not enabled

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _field_for(self, widget_name: str | None) -> str | None:
        if self.view is None or not widget_name or not widget_name.startswith("field:"):
            return None
        index = int(widget_name.split(":", 1)[1])
        if index >= len(self.view.fields):
            return None
        return self.view.fields[index].name

    @on(Input.Changed)
    def _on_input_changed(self, event: Input.Changed) -> None:
        event.stop()
        field_name = self._field_for(event.input.name)
        if field_name is not None:
            self._values[field_name] = event.value
            self.sync_controls()

    @on(TextArea.Changed)
    def _on_text_area_changed(self, event: TextArea.Changed) -> None:
        event.stop()
        field_name = self._field_for(event.text_area.name)
        if field_name is not None:
            self._values[field_name] = event.text_area.text
            self.sync_controls()

    @on(Input.Submitted)
    def _on_input_submitted(self, event: Input.Submitted) -> None:
        event.stop()
        self._submit_form()

    @on(Button.Pressed)
    def _on_button_pressed(self, event: Button.Pressed) -> None:
        event.stop()
        view = self.view
        name = event.button.name or ""
        if view is None:
            return
        handler = self.registry.resolve(self.call.name)
        kind, _, index = name.partition(":")

        if kind == "choice" and isinstance(handler, SelectionHandler):
            choice = view.choices[int(index)]
            self.post_message(self.Responded(self.call.id, handler.payload(self.call.record, choice)))
        elif kind == "action" and isinstance(handler, ConfirmationHandler):
            action = view.actions[int(index)]
            self.post_message(self.Responded(self.call.id, action.payload_at(now_ms())))
        elif kind == "submit":
            self._submit_form()

    def _submit_form(self) -> None:
        view = self.view
        handler = self.registry.resolve(self.call.name)
        if view is None or not isinstance(handler, FormHandler):
            return
        if not form_is_complete(view.fields, self._values):
            return
        self.post_message(self.Responded(self.call.id, handler.payload(view.fields, self._values)))
