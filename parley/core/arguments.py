from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

_NEWLINE = re.compile(r"\r?\n")


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    label: str
    placeholder: str = ""
    type: str = "text"

    @property
    def multiline(self) -> bool:
        return self.type == "textarea"


def get_argument(args: Mapping[str, Any] | None, key: str) -> str:
    """Read one tool argument as text.

    Non-string values are re-encoded as compact JSON so that a list passed
    where a delimited string was expected still parses as a JSON array.
    """
    if not args:
        return ""
    value = args.get(key)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def first_argument(args: Mapping[str, Any] | None, keys: Iterable[str]) -> str:
    if not args:
        return ""
    for key in keys:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return json.dumps(value, ensure_ascii=False)


def _clean_choice(choice: str) -> str:
    cleaned = choice.strip()
    if cleaned.startswith("["):
        cleaned = cleaned[1:].strip()
    if cleaned.endswith("]"):
        cleaned = cleaned[:-1].strip()
    if cleaned[:1] in ("\"", "'") and cleaned.endswith(cleaned[0]):
        cleaned = cleaned[1:-1].strip()
    return cleaned


def _clean_all(candidates: Iterable[str]) -> list[str]:
    return [cleaned for cleaned in (_clean_choice(c) for c in candidates) if cleaned]


def parse_choice_list(raw: str | None) -> list[str]:
    """Parse an agent-supplied list of choices.

    Accepts a JSON array, or text delimited by newlines, pipes or commas
    (checked in that order). Never raises; malformed input degrades to a
    best-effort list.
    """
    trimmed = (raw or "").strip()
    if not trimmed:
        return []

    try:
        parsed = json.loads(trimmed)
    except (ValueError, RecursionError):
        parsed = None
    if isinstance(parsed, list):
        return _clean_all(_stringify(entry) for entry in parsed)

    newline_split = _clean_all(_NEWLINE.split(trimmed))
    if "\n" in trimmed or len(newline_split) > 1:
        return newline_split

    if "|" in trimmed:
        return _clean_all(trimmed.split("|"))

    if "," in trimmed:
        return _clean_all(trimmed.split(","))

    return _clean_all([trimmed])


def parse_field_definitions(raw: str | None) -> list[FieldDefinition]:
    """Parse ``name:label:placeholder:type`` descriptors separated by ``|``."""
    if not raw or not raw.strip():
        return []

    fields: list[FieldDefinition] = []
    for segment in raw.split("|"):
        segment = segment.strip()
        if not segment:
            continue
        parts = [part.strip() for part in segment.split(":")]
        parts += [""] * (4 - len(parts))
        name, label, placeholder, field_type = parts[:4]
        if not name:
            continue
        fields.append(
            FieldDefinition(
                name=name,
                label=label or name,
                placeholder=placeholder,
                type=(field_type or "text").lower(),
            )
        )
    return fields


def to_display_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return "\n".join(
            entry if isinstance(entry, str) else json.dumps(entry, indent=2, ensure_ascii=False, default=str)
            for entry in value
        )
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)
