"""Tool handlers.

Every tool name resolves to exactly one handler variant. Names registered
with a dedicated handler never reach the wildcard ``UnregisteredHandler``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

from parley.core.arguments import (
    FieldDefinition,
    first_argument,
    get_argument,
    parse_choice_list,
    parse_field_definitions,
    to_display_text,
)
from parley.core.tool_calls import ToolCallRecord, ToolStatus, now_ms
from parley.core.views import DetailBlock, ToolAction, ToolView, ViewTone

logger = logging.getLogger(__name__)

THEMES = frozenset({"dark", "light", "system"})


class HostBridge(Protocol):
    def set_theme(self, theme: str) -> None: ...

    def navigate(self, path: str) -> None: ...


def _pretty(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


# -----------------------------------------------------------------------------
# Silent
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SilentHandler:
    """Runs a client-side effect and renders nothing."""

    name: str
    effect: str
    argument: str
    kind: str = "silent"

    def render(self, record: ToolCallRecord) -> ToolView | None:
        return None

    def apply(self, record: ToolCallRecord, bridge: HostBridge) -> bool:
        value = get_argument(record.arguments, self.argument).strip()
        if self.effect == "theme":
            theme = value.lower()
            if theme not in THEMES:
                logger.info("Ignoring unsupported theme %r", value)
                return False
            bridge.set_theme(theme)
            return True
        if self.effect == "navigate":
            if not value.startswith("/"):
                logger.info("Ignoring navigation to non-route %r", value)
                return False
            bridge.navigate(value)
            return True
        return False


# -----------------------------------------------------------------------------
# Informational
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class InfoHandler:
    name: str
    title: str
    argument_labels: tuple[tuple[str, str], ...] = ()
    kind: str = "info"

    def render(self, record: ToolCallRecord) -> ToolView | None:
        if record.status is ToolStatus.PENDING:
            return None
        lines: list[str] = []
        for key, label in self.argument_labels:
            value = get_argument(record.arguments, key)
            if value:
                lines.append(f"{label}: {value}")
        return ToolView(
            kind=self.kind,
            title=self.title,
            tone=ViewTone.INFO,
            busy=record.status is ToolStatus.EXECUTING,
            lines=tuple(lines),
        )


# -----------------------------------------------------------------------------
# Confirmation gate
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ConfirmationHandler:
    name: str
    title: str
    outcome_key: str
    confirm_label: str
    confirmed_text: str
    cancelled_text: str
    argument_labels: tuple[tuple[str, str], ...] = ()
    list_arguments: tuple[str, ...] = ()
    warning: str = ""
    destructive: bool = False
    confirm_timestamp_key: str | None = None
    cancel_label: str = "Cancel"
    kind: str = "confirmation"

    def _detail_lines(self, args: Mapping[str, Any]) -> tuple[str, ...]:
        lines: list[str] = []
        for key, label in self.argument_labels:
            value = get_argument(args, key)
            if key in self.list_arguments:
                items = parse_choice_list(value)
                lines.append(f"{label} ({len(items)}):")
                lines.extend(f"  - {item}" for item in items)
                continue
            lines.append(f"{label}: {value}")
        return tuple(lines)

    def render(self, record: ToolCallRecord) -> ToolView | None:
        if record.status is ToolStatus.PENDING:
            return None

        if record.status is ToolStatus.EXECUTING:
            return ToolView(
                kind=self.kind,
                title=self.title,
                tone=ViewTone.DANGER if self.destructive else ViewTone.INFO,
                lines=self._detail_lines(record.arguments),
                question=self.warning,
                actions=(
                    ToolAction(
                        label=self.confirm_label,
                        payload={self.outcome_key: True},
                        variant="error" if self.destructive else "primary",
                        timestamp_key=self.confirm_timestamp_key,
                    ),
                    ToolAction(label=self.cancel_label, payload={self.outcome_key: False}),
                ),
            )

        confirmed = self.is_confirmed(record.result)
        return ToolView(
            kind=self.kind,
            title=self.title,
            tone=ViewTone.SUCCESS if confirmed else ViewTone.MUTED,
            status_text="confirmed" if confirmed else "cancelled",
            lines=(self.confirmed_text if confirmed else self.cancelled_text,),
        )

    def is_confirmed(self, result: Any) -> bool:
        return isinstance(result, Mapping) and result.get(self.outcome_key) is True


# -----------------------------------------------------------------------------
# Selection
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class SelectionHandler:
    name: str
    default_question: str = "Please select an option"
    kind: str = "selection"

    def question(self, record: ToolCallRecord) -> str:
        return get_argument(record.arguments, "question") or self.default_question

    def choices(self, record: ToolCallRecord) -> list[str]:
        raw = get_argument(record.arguments, "choices") or get_argument(record.arguments, "options")
        return parse_choice_list(raw)

    def payload(self, record: ToolCallRecord, choice: str, *, timestamp: int | None = None) -> dict[str, Any]:
        return {
            "selected": choice,
            "question": self.question(record),
            "timestamp": timestamp if timestamp is not None else now_ms(),
        }

    def render(self, record: ToolCallRecord) -> ToolView | None:
        if record.status is ToolStatus.PENDING:
            return None

        if record.status is ToolStatus.EXECUTING:
            choices = tuple(self.choices(record))
            return ToolView(
                kind=self.kind,
                title=self.name,
                tone=ViewTone.INFO,
                question=self.question(record),
                choices=choices,
                lines=() if choices else ("No choices were provided.",),
            )

        selected = record.result.get("selected") if isinstance(record.result, Mapping) else None
        return ToolView(
            kind=self.kind,
            title=self.name,
            tone=ViewTone.SUCCESS,
            lines=(f"Selected: {to_display_text(selected)}",),
        )


# -----------------------------------------------------------------------------
# Structured form
# -----------------------------------------------------------------------------

FORM_CLOSED_MESSAGE = "Form was closed before any information was provided."


def form_is_complete(fields: Sequence[FieldDefinition], values: Mapping[str, str]) -> bool:
    return bool(fields) and all((values.get(f.name) or "").strip() for f in fields)


@dataclass(frozen=True)
class FormHandler:
    name: str
    default_question: str = "Please provide the following information"
    kind: str = "form"

    def fields(self, record: ToolCallRecord) -> list[FieldDefinition]:
        return parse_field_definitions(get_argument(record.arguments, "fields"))

    def payload(
        self,
        fields: Sequence[FieldDefinition],
        values: Mapping[str, str],
        *,
        timestamp: int | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {f.name: values.get(f.name, "") for f in fields}
        payload["timestamp"] = timestamp if timestamp is not None else now_ms()
        return payload

    def render(self, record: ToolCallRecord) -> ToolView | None:
        if record.status is ToolStatus.PENDING:
            return None

        if record.status is ToolStatus.EXECUTING:
            fields = tuple(self.fields(record))
            return ToolView(
                kind=self.kind,
                title=self.name,
                tone=ViewTone.INFO,
                question=get_argument(record.arguments, "question") or self.default_question,
                fields=fields,
                submit_label=get_argument(record.arguments, "submit_label") or "Submit",
                lines=() if fields else ("No fields were provided.",),
            )

        result = record.result
        if isinstance(result, Mapping):
            submitted = [key for key in result if key != "timestamp"]
            if submitted:
                return ToolView(
                    kind=self.kind,
                    title=self.name,
                    tone=ViewTone.SUCCESS,
                    lines=tuple(f"{key}: {to_display_text(result[key])}" for key in submitted),
                )

        message = result if isinstance(result, str) and result.strip() else FORM_CLOSED_MESSAGE
        return ToolView(kind=self.kind, title=self.name, tone=ViewTone.MUTED, lines=(message,))


# -----------------------------------------------------------------------------
# Display-only
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class ResultSegment:
    label: str
    keys: tuple[str, ...]


@dataclass(frozen=True)
class DisplayHandler:
    """Echo of a file, command or code execution with progressive disclosure."""

    name: str
    executing_text: str
    complete_text: str
    input_label: str
    input_keys: tuple[str, ...]
    fallback_title: str
    segments: tuple[ResultSegment, ...] = ()
    exit_code_keys: tuple[str, ...] = ()
    leftover_label: str = "result"
    disclosure_label: str = "Show details"
    preview_chars: int | None = None
    kind: str = "display"

    def input_text(self, args: Mapping[str, Any]) -> str:
        value = first_argument(args, self.input_keys)
        if value:
            return value
        commands = args.get("commands") if args else None
        if "command" in self.input_keys and isinstance(commands, list) and commands:
            return " && ".join(str(c) for c in commands)
        return ""

    def title(self, raw_input: str) -> str:
        if not raw_input:
            return self.fallback_title
        if self.preview_chars is None:
            return raw_input.strip()
        preview = " ".join(raw_input.strip().split("\n")[:2])[: self.preview_chars]
        return preview + ("..." if len(raw_input) > self.preview_chars else "")

    def result_blocks(self, result: Any) -> list[DetailBlock]:
        blocks: list[DetailBlock] = []

        def push(label: str, value: Any) -> None:
            content = to_display_text(value).strip()
            if content:
                blocks.append(DetailBlock(label=label, content=content))

        if isinstance(result, Mapping):
            consumed: set[str] = set()
            for segment in self.segments:
                consumed.update(segment.keys)
                push(segment.label, next((result[k] for k in segment.keys if result.get(k) is not None), None))
            consumed.update(self.exit_code_keys)
            exit_code = next((result[k] for k in self.exit_code_keys if k in result), None)
            if isinstance(exit_code, int) and not isinstance(exit_code, bool):
                blocks.append(DetailBlock(label="exit code", content=str(exit_code)))
            leftovers = {k: v for k, v in result.items() if k not in consumed}
            if leftovers:
                push(self.leftover_label, leftovers)
        elif result:
            push(self.leftover_label, result)
        return blocks

    def render(self, record: ToolCallRecord) -> ToolView | None:
        if record.status is ToolStatus.PENDING:
            return None

        raw_input = self.input_text(record.arguments)
        executing = record.status is ToolStatus.EXECUTING
        lines: tuple[str, ...] = ()
        cwd = get_argument(record.arguments, "cwd").strip()
        if cwd:
            lines = (f"cwd: {cwd}",)

        details: list[DetailBlock] = []
        if not executing:
            if raw_input:
                details.append(DetailBlock(label=self.input_label, content=raw_input))
            details.extend(self.result_blocks(record.result))

        return ToolView(
            kind=self.kind,
            title=self.title(raw_input),
            status_text=self.executing_text if executing else self.complete_text,
            busy=executing,
            lines=lines,
            details=tuple(details),
            collapsible=True,
            disclosure_label=self.disclosure_label,
        )


# -----------------------------------------------------------------------------
# Wildcard
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class UnregisteredHandler:
    name: str = "*"
    kind: str = "unregistered"

    def render(self, record: ToolCallRecord) -> ToolView | None:
        status_text = {
            ToolStatus.EXECUTING: "Running...",
            ToolStatus.COMPLETE: "Complete",
        }.get(record.status, "Preparing...")

        details: list[DetailBlock] = []
        if record.arguments:
            details.append(DetailBlock(label="Parameters", content=_pretty(record.arguments)))
        if record.is_complete and record.result is not None and record.result != "":
            details.append(DetailBlock(label="Result", content=_pretty(record.result)))

        return ToolView(
            kind=self.kind,
            title=record.name or "tool",
            status_text=status_text,
            busy=record.status is ToolStatus.EXECUTING,
            details=tuple(details),
        )


ToolHandler = Union[
    SilentHandler,
    InfoHandler,
    ConfirmationHandler,
    SelectionHandler,
    FormHandler,
    DisplayHandler,
    UnregisteredHandler,
]


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@dataclass
class ToolHandlerRegistry:
    handlers: dict[str, ToolHandler] = field(default_factory=dict)
    fallback: UnregisteredHandler = field(default_factory=UnregisteredHandler)

    @classmethod
    def from_handlers(cls, handlers: Iterable[ToolHandler]) -> ToolHandlerRegistry:
        registry = cls()
        for handler in handlers:
            registry.register(handler)
        return registry

    def register(self, handler: ToolHandler) -> None:
        if isinstance(handler, UnregisteredHandler):
            raise ValueError("The wildcard handler cannot be registered by name.")
        if handler.name in self.handlers:
            raise ValueError(f"Tool '{handler.name}' already has a handler.")
        self.handlers[handler.name] = handler

    @property
    def dedicated_names(self) -> frozenset[str]:
        return frozenset(self.handlers)

    def resolve(self, name: str) -> ToolHandler:
        handler = self.handlers.get(name)
        if handler is not None:
            return handler
        return self.fallback

    def render(self, record: ToolCallRecord) -> ToolView | None:
        return self.resolve(record.name).render(record)


def default_handlers() -> list[ToolHandler]:
    return [
        SilentHandler(name="set_theme", effect="theme", argument="theme"),
        SilentHandler(name="navigate_to", effect="navigate", argument="path"),
        InfoHandler(
            name="analyze_contact_insights",
            title="Analyzing Contact Insights",
            argument_labels=(("contact_id", "Contact"), ("analysis_type", "Analysis")),
        ),
        ConfirmationHandler(
            name="send_bulk_email",
            title="Bulk Email Review",
            outcome_key="approved",
            confirm_label="Send Email",
            confirmed_text="Email sent successfully",
            cancelled_text="Email sending cancelled",
            argument_labels=(("recipients", "Recipients"), ("subject", "Subject"), ("message", "Message")),
            list_arguments=("recipients",),
        ),
        ConfirmationHandler(
            name="delete_contact",
            title="Delete Contact?",
            outcome_key="confirmed",
            confirm_label="Delete Contact",
            confirmed_text="Contact deleted",
            cancelled_text="Deletion cancelled",
            argument_labels=(("contact_id", "Contact"), ("reason", "Reason")),
            warning=(
                "Warning: This action cannot be undone. The contact and all "
                "associated data will be permanently deleted."
            ),
            destructive=True,
            confirm_timestamp_key="deleted_at",
        ),
        SelectionHandler(name="prompt_user_selection"),
        FormHandler(name="prompt_user_input"),
        DisplayHandler(
            name="read_file_content",
            executing_text="Reading file...",
            complete_text="File read",
            input_label="path",
            input_keys=("file_path", "path", "file", "filename", "filepath"),
            fallback_title="File",
            segments=(ResultSegment("content", ("content", "text")),),
        ),
        DisplayHandler(
            name="run_command",
            executing_text="Running command...",
            complete_text="Command run",
            input_label="command",
            input_keys=("command", "cmd", "line"),
            fallback_title="Command",
            segments=(
                ResultSegment("stdout", ("stdout", "STDOUT")),
                ResultSegment("stderr", ("stderr", "STDERR")),
                ResultSegment("output", ("output", "OUTPUT")),
            ),
            exit_code_keys=("exitCode", "exit_code", "code"),
            leftover_label="result",
            disclosure_label="Show output",
        ),
        DisplayHandler(
            name="run_python_code",
            executing_text="Executing Python...",
            complete_text="Python executed",
            input_label="code",
            input_keys=("code", "script", "source", "python"),
            fallback_title="Python code",
            segments=(
                ResultSegment("stdout", ("stdout", "STDOUT")),
                ResultSegment("stderr", ("stderr", "STDERR")),
                ResultSegment("result", ("result", "returnValue", "value")),
            ),
            leftover_label="details",
            preview_chars=80,
        ),
    ]


def default_registry() -> ToolHandlerRegistry:
    return ToolHandlerRegistry.from_handlers(default_handlers())
