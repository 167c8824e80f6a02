from __future__ import annotations

import asyncio

from parley.tui.commands import COMMANDS, CommandSuggester, build_help_text, parse_command


def _run(coro):
    return asyncio.run(coro)


def test_parse_command_aliases() -> None:
    command = parse_command("/?")
    assert command is not None
    assert command.name == "help"
    assert command.args == []
    assert command.raw == "/?"

    command = parse_command("/exit now")
    assert command is not None
    assert command.name == "quit"
    assert command.args == ["now"]

    command = parse_command("  /T 2 ")
    assert command is not None
    assert command.name == "thread"
    assert command.args == ["2"]

    command = parse_command("/signout")
    assert command is not None
    assert command.name == "logout"


def test_parse_command_non_command() -> None:
    assert parse_command("") is None
    assert parse_command("hello") is None
    assert parse_command("/") is None


def test_command_name_suggestion() -> None:
    suggester = CommandSuggester()
    assert _run(suggester.get_suggestion("/lo")) == "/logout"
    assert _run(suggester.get_suggestion("/th")) == "/threads"
    assert _run(suggester.get_suggestion("/logout")) is None
    assert _run(suggester.get_suggestion("hello")) is None


def test_agent_id_suggestion() -> None:
    suggester = CommandSuggester(agent_provider=lambda: ["main", "research"])
    assert _run(suggester.get_suggestion("/agent r")) == "/agent research"
    assert _run(suggester.get_suggestion("/agent ")) is None
    assert _run(suggester.get_suggestion("/agent main")) is None


def test_thread_id_suggestion_through_alias() -> None:
    suggester = CommandSuggester(thread_provider=lambda: ["ws:acme:1700000000000-abcdefgh"])
    assert _run(suggester.get_suggestion("/t ws:a")) == "/t ws:acme:1700000000000-abcdefgh"
    assert _run(CommandSuggester().get_suggestion("/thread ws")) is None


def test_help_lists_every_command() -> None:
    text = build_help_text()
    for name in COMMANDS:
        assert f"/{name}" in text
