from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from parley.protocol.models import AgentInfo, SessionInfo


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_agents() -> list[AgentInfo]:
    return [
        AgentInfo(id="main", name="Main Agent"),
        AgentInfo(id="research", name="Research Agent", port=8101),
        AgentInfo(id="archived", name="Archived Agent", enabled=False),
    ]


@dataclass
class StubThread:
    id: str
    workspace_id: str | None = None
    title: str = ""
    agent_id: str | None = None
    agent_name: str | None = None
    created_at: str = field(default_factory=_utcnow)
    updated_at: str = field(default_factory=_utcnow)
    messages: list[dict[str, Any]] = field(default_factory=list)

    def to_session(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            title=self.title or self.id,
            agent_id=self.agent_id,
            agent_name=self.agent_name,
            message_count=len(self.messages),
            created_at=self.created_at,
            updated_at=self.updated_at,
            workspace_id=self.workspace_id,
        )


@dataclass
class StubState:
    """In-memory threads and agents served by the stub backend."""

    agents: list[AgentInfo] = field(default_factory=default_agents)
    threads: dict[str, StubThread] = field(default_factory=dict)

    def find_agent(self, agent_id: str | None) -> AgentInfo | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def get_or_create_thread(
        self,
        thread_id: str,
        *,
        workspace_id: str | None = None,
        agent_id: str | None = None,
    ) -> StubThread:
        thread = self.threads.get(thread_id)
        if thread is None:
            agent = self.find_agent(agent_id)
            thread = StubThread(
                id=thread_id,
                workspace_id=workspace_id,
                agent_id=agent.id if agent else None,
                agent_name=agent.name if agent else None,
            )
            self.threads[thread_id] = thread
        return thread

    def list_threads(self, workspace_id: str | None, *, limit: int) -> list[StubThread]:
        threads = [
            thread
            for thread in self.threads.values()
            if not workspace_id or thread.workspace_id == workspace_id
        ]
        threads.sort(key=lambda t: t.updated_at, reverse=True)
        return threads[:limit]

    def append_message(self, thread: StubThread, message: dict[str, Any]) -> None:
        thread.messages.append(message)
        thread.updated_at = _utcnow()
