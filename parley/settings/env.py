from __future__ import annotations

import os

PARLEY_SERVER_URL = "PARLEY_SERVER_URL"
PARLEY_WORKSPACE = "PARLEY_WORKSPACE"
PARLEY_TOKEN = "PARLEY_TOKEN"
PARLEY_USER_ID = "PARLEY_USER_ID"
PARLEY_DATA_DIR = "PARLEY_DATA_DIR"
PARLEY_POLL_INTERVAL = "PARLEY_POLL_INTERVAL"
XDG_DATA_HOME = "XDG_DATA_HOME"


def first_env(*names: str) -> str | None:
    for name in names:
        value = (os.getenv(name) or "").strip()
        if value:
            return value
    return None


def env_float(name: str, default: float) -> float:
    raw = first_env(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default
