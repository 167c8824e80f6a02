from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path

from parley.settings.env import (
    PARLEY_DATA_DIR,
    PARLEY_POLL_INTERVAL,
    PARLEY_SERVER_URL,
    PARLEY_TOKEN,
    PARLEY_USER_ID,
    PARLEY_WORKSPACE,
    XDG_DATA_HOME,
    env_float,
    first_env,
)

DEFAULT_SERVER_URL = "http://127.0.0.1:8000"
DEFAULT_POLL_INTERVAL = 3.0
DEFAULT_THREAD_LIMIT = 20


@dataclass(frozen=True)
class AuthState:
    token: str | None = None
    user_id: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token and self.user_id)


@dataclass(frozen=True)
class ClientConfig:
    server_url: str
    data_dir: Path
    workspace: str | None = None
    auth: AuthState = field(default_factory=AuthState)
    poll_interval: float = DEFAULT_POLL_INTERVAL
    thread_limit: int = DEFAULT_THREAD_LIMIT
    timeout: float | None = 60.0

    @property
    def layout_path(self) -> Path:
        return self.data_dir / "layout.json"

    def signed_out(self) -> ClientConfig:
        return replace(self, auth=AuthState())


def default_data_dir() -> Path:
    base = first_env(XDG_DATA_HOME)
    if base:
        return Path(base) / "parley"
    return Path.home() / ".parley"


def load_config(
    *,
    server_url: str | None = None,
    workspace: str | None = None,
    token: str | None = None,
    user_id: str | None = None,
    data_dir: str | Path | None = None,
    poll_interval: float | None = None,
) -> ClientConfig:
    """Build the client configuration; explicit arguments win over the environment."""
    resolved_dir = Path(data_dir) if data_dir else None
    if resolved_dir is None:
        env_dir = first_env(PARLEY_DATA_DIR)
        resolved_dir = Path(env_dir) if env_dir else default_data_dir()

    return ClientConfig(
        server_url=(server_url or first_env(PARLEY_SERVER_URL) or DEFAULT_SERVER_URL).rstrip("/"),
        data_dir=resolved_dir.expanduser(),
        workspace=(workspace or first_env(PARLEY_WORKSPACE) or None),
        auth=AuthState(
            token=token or first_env(PARLEY_TOKEN),
            user_id=user_id or first_env(PARLEY_USER_ID),
        ),
        poll_interval=poll_interval if poll_interval is not None else env_float(
            PARLEY_POLL_INTERVAL, DEFAULT_POLL_INTERVAL
        ),
    )
