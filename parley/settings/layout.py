from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

LAYOUT_KEY = "layout:global-chat"
DEFAULT_LAYOUT: tuple[float, float] = (70, 30)


class LayoutPreferenceStore:
    """Panel split ratio persisted as a small JSON document.

    The file is keyed like a cookie jar so that other panel layouts can share
    it. Reading never fails; a missing or corrupt entry yields the default.
    """

    def __init__(self, path: Path, *, key: str = LAYOUT_KEY) -> None:
        self.path = path
        self.key = key

    def _read_all(self) -> dict[str, object]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def raw(self) -> object | None:
        return self._read_all().get(self.key)

    def load(self) -> tuple[float, float]:
        value = self.raw()
        if (
            isinstance(value, list)
            and len(value) == 2
            and all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value)
        ):
            return (value[0], value[1])
        return DEFAULT_LAYOUT

    def save(self, sizes: tuple[float, float] | list[float]) -> None:
        if len(sizes) != 2:
            return
        data = self._read_all()
        data[self.key] = [sizes[0], sizes[1]]
        try:
            self._write_all(data)
        except OSError:
            logger.warning("Failed to persist layout to %s", self.path, exc_info=True)

    def clear(self) -> None:
        data = self._read_all()
        if self.key not in data:
            return
        del data[self.key]
        try:
            if data:
                self._write_all(data)
            else:
                self.path.unlink(missing_ok=True)
        except OSError:
            logger.warning("Failed to clear layout at %s", self.path, exc_info=True)
