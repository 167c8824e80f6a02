from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal

PLACEHOLDER_AGENT_NAME = "AI Assistant"

BindingSource = Literal["session", "thread", "selected", "placeholder"]


@dataclass(frozen=True)
class AgentIdentity:
    agent_id: str
    agent_name: str = ""


@dataclass(frozen=True)
class AgentBinding:
    thread_id: str
    agent_id: str
    agent_name: str
    source: BindingSource

    @property
    def has_agent(self) -> bool:
        return bool(self.agent_id)

    @property
    def is_placeholder(self) -> bool:
        return self.source == "placeholder"


def resolve_agent_binding(
    thread_id: str,
    sessions: Mapping[str, AgentIdentity],
    fallback: AgentIdentity | None,
    recorded: AgentIdentity | None = None,
) -> AgentBinding:
    """Resolve the agent a thread talks to.

    Session metadata wins once it is known, then the agent recorded when the
    thread was started locally, then the last agent the user picked, then a
    placeholder so the pane always has an identity.
    """
    meta = sessions.get(thread_id)
    if meta is not None and meta.agent_id.strip():
        return AgentBinding(
            thread_id=thread_id,
            agent_id=meta.agent_id.strip(),
            agent_name=meta.agent_name or (fallback.agent_name if fallback else "") or PLACEHOLDER_AGENT_NAME,
            source="session",
        )

    if recorded is not None and recorded.agent_id.strip():
        return AgentBinding(
            thread_id=thread_id,
            agent_id=recorded.agent_id.strip(),
            agent_name=recorded.agent_name or PLACEHOLDER_AGENT_NAME,
            source="thread",
        )

    if fallback is not None and fallback.agent_id.strip():
        return AgentBinding(
            thread_id=thread_id,
            agent_id=fallback.agent_id.strip(),
            agent_name=fallback.agent_name or PLACEHOLDER_AGENT_NAME,
            source="selected",
        )

    return AgentBinding(
        thread_id=thread_id,
        agent_id="",
        agent_name=PLACEHOLDER_AGENT_NAME,
        source="placeholder",
    )
