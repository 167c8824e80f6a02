from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from textual.suggester import Suggester

COMMANDS: dict[str, str] = {
    "help": "Show this help",
    "new": "Start a new conversation with the current agent",
    "threads": "List known threads",
    "thread": "Switch to a thread: /thread <id|number>",
    "agents": "List available agents",
    "agent": "Start a conversation with an agent: /agent <id|number>",
    "workspace": "Show or switch the workspace: /workspace [id]",
    "panel": "Open or close the chat panel",
    "expand": "Toggle the full-width chat panel",
    "logout": "Sign out and forget threads and layout",
    "quit": "Exit",
}

ALIASES: dict[str, str] = {
    "?": "help",
    "h": "help",
    "n": "new",
    "t": "thread",
    "exit": "quit",
    "q": "quit",
    "signout": "logout",
    "ws": "workspace",
}


@dataclass
class ParsedCommand:
    name: str
    args: list[str] = field(default_factory=list)
    raw: str = ""


def parse_command(text: str) -> ParsedCommand | None:
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped[1:].split()
    if not parts:
        return None
    name = parts[0].lower()
    name = ALIASES.get(name, name)
    return ParsedCommand(name=name, args=parts[1:], raw=stripped)


def build_help_text() -> str:
    width = max(len(name) for name in COMMANDS)
    lines = ["Commands:"]
    for name, description in COMMANDS.items():
        lines.append(f"  /{name.ljust(width)}  {description}")
    return "\n".join(lines)


class CommandSuggester(Suggester):
    """Completes command names plus agent and thread ids."""

    def __init__(
        self,
        *,
        agent_provider: Callable[[], list[str]] | None = None,
        thread_provider: Callable[[], list[str]] | None = None,
    ) -> None:
        super().__init__(use_cache=False, case_sensitive=True)
        self._agent_provider = agent_provider
        self._thread_provider = thread_provider

    async def get_suggestion(self, value: str) -> str | None:
        if not value.startswith("/"):
            return None

        head, sep, tail = value[1:].partition(" ")
        if not sep:
            needle = head.lower()
            for name in COMMANDS:
                if name.startswith(needle) and name != needle:
                    return f"/{name}"
            return None

        command = ALIASES.get(head.lower(), head.lower())
        if command == "agent" and self._agent_provider:
            candidates = self._agent_provider()
        elif command == "thread" and self._thread_provider:
            candidates = self._thread_provider()
        else:
            return None

        needle = tail.strip()
        if not needle:
            return None
        for candidate in candidates:
            if candidate.lower().startswith(needle.lower()) and candidate != needle:
                return f"/{head} {candidate}"
        return None
