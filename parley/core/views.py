from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from parley.core.arguments import FieldDefinition


class ViewTone(str, Enum):
    NEUTRAL = "neutral"
    INFO = "info"
    SUCCESS = "success"
    MUTED = "muted"
    DANGER = "danger"


@dataclass(frozen=True)
class DetailBlock:
    label: str
    content: str


@dataclass(frozen=True)
class ToolAction:
    label: str
    payload: Mapping[str, Any]
    variant: str = "default"
    timestamp_key: str | None = None

    def payload_at(self, timestamp: int) -> dict[str, Any]:
        payload = dict(self.payload)
        if self.timestamp_key:
            payload[self.timestamp_key] = timestamp
        return payload


@dataclass(frozen=True)
class ToolView:
    """Render-ready projection of one tool call."""

    kind: str
    title: str
    status_text: str = ""
    tone: ViewTone = ViewTone.NEUTRAL
    busy: bool = False
    lines: tuple[str, ...] = ()
    details: tuple[DetailBlock, ...] = ()
    collapsible: bool = False
    disclosure_label: str = "Show details"
    question: str = ""
    actions: tuple[ToolAction, ...] = ()
    choices: tuple[str, ...] = ()
    fields: tuple[FieldDefinition, ...] = field(default_factory=tuple)
    submit_label: str = "Submit"

    @property
    def interactive(self) -> bool:
        return bool(self.actions or self.choices or self.fields)
