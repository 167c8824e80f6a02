from __future__ import annotations

from pathlib import Path

import pytest

from parley.config import DEFAULT_POLL_INTERVAL, DEFAULT_SERVER_URL, load_config


@pytest.fixture()
def clean_env(monkeypatch):
    for name in (
        "PARLEY_SERVER_URL",
        "PARLEY_WORKSPACE",
        "PARLEY_TOKEN",
        "PARLEY_USER_ID",
        "PARLEY_DATA_DIR",
        "PARLEY_POLL_INTERVAL",
        "XDG_DATA_HOME",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env, tmp_path) -> None:
    clean_env.setenv("HOME", str(tmp_path))
    config = load_config()
    assert config.server_url == DEFAULT_SERVER_URL
    assert config.workspace is None
    assert config.poll_interval == DEFAULT_POLL_INTERVAL
    assert config.auth.is_authenticated is False
    assert config.layout_path == Path(tmp_path) / ".parley" / "layout.json"


def test_environment(clean_env, tmp_path) -> None:
    clean_env.setenv("PARLEY_SERVER_URL", "http://agents.local:9000/")
    clean_env.setenv("PARLEY_WORKSPACE", "acme")
    clean_env.setenv("PARLEY_TOKEN", "tok")
    clean_env.setenv("PARLEY_USER_ID", "u1")
    clean_env.setenv("PARLEY_DATA_DIR", str(tmp_path))
    clean_env.setenv("PARLEY_POLL_INTERVAL", "not-a-number")

    config = load_config()

    assert config.server_url == "http://agents.local:9000"
    assert config.workspace == "acme"
    assert config.auth.is_authenticated is True
    assert config.data_dir == tmp_path
    assert config.poll_interval == DEFAULT_POLL_INTERVAL


def test_arguments_win_over_environment(clean_env, tmp_path) -> None:
    clean_env.setenv("PARLEY_WORKSPACE", "acme")
    clean_env.setenv("PARLEY_POLL_INTERVAL", "9")
    config = load_config(workspace="beta", data_dir=tmp_path, token="tok", poll_interval=1.5)
    assert config.workspace == "beta"
    assert config.poll_interval == 1.5
    assert config.auth.token == "tok"
    assert config.auth.is_authenticated is False


def test_signed_out_drops_credentials(clean_env, tmp_path) -> None:
    config = load_config(data_dir=tmp_path, token="tok", user_id="u1")
    signed_out = config.signed_out()
    assert signed_out.auth.is_authenticated is False
    assert signed_out.data_dir == config.data_dir
