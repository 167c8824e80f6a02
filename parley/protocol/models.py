from __future__ import annotations

import math
import time
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel
from pydantic_ai.ui.vercel_ai.request_types import UIMessage

_DATETIME = TypeAdapter(datetime)


def normalize_timestamp(value: Any, *, now: int | None = None) -> int:
    """Normalize a backend timestamp to milliseconds since the epoch.

    Numbers (or numeric strings) below ``1e12`` are seconds. Anything else is
    parsed as a date; on failure the current time is returned.
    """
    current = now if now is not None else int(time.time() * 1000)
    if value is None or value == "" or isinstance(value, bool):
        return current

    number: float | None = None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None
    if number is not None and math.isfinite(number):
        if not number:
            return current
        return int(number * 1000) if number < 1e12 else int(number)

    try:
        parsed = _DATETIME.validate_python(value)
    except ValidationError:
        return current
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionInfo(CamelModel):
    id: str
    title: str = ""
    agent_id: str | None = None
    agent_name: str | None = None
    message_count: int = 0
    created_at: Any = None
    updated_at: Any = None
    workspace_id: str | None = None

    @property
    def last_activity(self) -> int:
        return normalize_timestamp(self.updated_at or self.created_at)


class ChatThreadsResponse(CamelModel):
    sessions: list[SessionInfo] = Field(default_factory=list)
    total: int = 0


class AgentInfo(CamelModel):
    id: str
    name: str
    base_url: str | None = Field(default=None, validation_alias=AliasChoices("base_url", "baseUrl"))
    port: int | None = None
    enabled: bool = True


class AgentListResponse(CamelModel):
    agents: list[AgentInfo] = Field(default_factory=list)


class ThreadMessagesResponse(CamelModel):
    thread_id: str | None = None
    messages: list[UIMessage] = Field(default_factory=list)
