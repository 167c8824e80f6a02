from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"


async def iter_ui_events(lines: AsyncIterable[str]) -> AsyncIterator[dict[str, Any]]:
    """Decode a Vercel AI UI server-sent event stream into event dicts."""
    data_lines: list[str] = []

    async for line in lines:
        line = line.rstrip("\r")
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
            continue
        if line:
            continue
        event = _decode(data_lines)
        data_lines = []
        if event is not None:
            yield event

    event = _decode(data_lines)
    if event is not None:
        yield event


def _decode(data_lines: list[str]) -> dict[str, Any] | None:
    if not data_lines:
        return None
    data = "\n".join(data_lines).strip()
    if not data or data == DONE_SENTINEL:
        return None
    try:
        event = json.loads(data)
    except (ValueError, RecursionError):
        logger.debug("Skipping undecodable stream chunk: %r", data[:200])
        return None
    return event if isinstance(event, dict) else None
