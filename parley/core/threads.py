from __future__ import annotations

import logging
import random
import string
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from parley.domain.agent_binding import AgentBinding, AgentIdentity, resolve_agent_binding
from parley.protocol.models import AgentInfo, ChatThreadsResponse
from parley.settings.layout import LayoutPreferenceStore

logger = logging.getLogger(__name__)

MAIN_AGENT_NAME = "Main Agent"
NEW_THREAD_TITLE = "New conversation"
THREAD_REFRESH_DELAY = 0.75

_ID_ALPHABET = string.ascii_lowercase + string.digits


class ThreadNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class ThreadRecord:
    id: str
    title: str
    agent_id: str = ""
    agent_name: str = ""
    last_activity: int = 0


@dataclass
class SessionContext:
    """Selection state that used to live in ambient storage."""

    workspace: str | None = None
    authenticated: bool = False

    @property
    def can_refresh(self) -> bool:
        return bool(self.workspace) and self.authenticated


def _now_ms() -> int:
    return int(time.time() * 1000)


def generate_thread_id(
    workspace: str | None = None,
    *,
    now: int | None = None,
    rng: random.Random | None = None,
) -> str:
    timestamp = now if now is not None else _now_ms()
    chooser = rng or random
    suffix = "".join(chooser.choice(_ID_ALPHABET) for _ in range(8))
    if workspace:
        return f"ws:{workspace}:{timestamp}-{suffix}"
    return f"{timestamp}-{suffix}"


class ThreadSessionManager:
    """Active threads, the visible thread and thread history for one user.

    The manager performs no I/O. List refreshes are requested through
    ``on_refresh(delay_seconds)``; the caller decides how to run them.
    """

    def __init__(
        self,
        *,
        context: SessionContext | None = None,
        on_refresh: Callable[[float], None] | None = None,
        layout: LayoutPreferenceStore | None = None,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[str | None], str] = generate_thread_id,
    ) -> None:
        self.context = context or SessionContext()
        self._on_refresh = on_refresh
        self._layout = layout
        self._clock = clock
        self._id_factory = id_factory

        self.active_thread_ids: list[str] = []
        self.current_thread_id: str | None = None
        self.history: list[ThreadRecord] = []
        self.sessions: dict[str, AgentIdentity] = {}
        self.agents: list[AgentInfo] = []
        self.selected_agent: AgentIdentity | None = None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def history_entry(self, thread_id: str) -> ThreadRecord | None:
        for record in self.history:
            if record.id == thread_id:
                return record
        return None

    def find_agent(self, agent_id: str) -> AgentInfo | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def binding_for(self, thread_id: str) -> AgentBinding:
        record = self.history_entry(thread_id)
        recorded = AgentIdentity(record.agent_id, record.agent_name) if record is not None else None
        return resolve_agent_binding(thread_id, self.sessions, self.selected_agent, recorded)

    @property
    def current_binding(self) -> AgentBinding | None:
        if self.current_thread_id is None:
            return None
        return self.binding_for(self.current_thread_id)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create_thread(self, workspace: str | None = None) -> str:
        scope = workspace if workspace is not None else self.context.workspace
        known = set(self.active_thread_ids) | {record.id for record in self.history}
        thread_id = self._id_factory(scope)
        while thread_id in known:
            thread_id = self._id_factory(scope)

        agent = self.selected_agent or AgentIdentity(agent_id="")
        self._upsert_history(
            ThreadRecord(
                id=thread_id,
                title=NEW_THREAD_TITLE,
                agent_id=agent.agent_id,
                agent_name=agent.agent_name,
                last_activity=self._clock(),
            )
        )
        self._show(thread_id)
        logger.info("Created thread %s (agent=%s)", thread_id, agent.agent_id or "-")
        self._request_refresh(THREAD_REFRESH_DELAY)
        return thread_id

    def select_thread(self, thread_id: str) -> AgentBinding:
        self._show(thread_id)
        if self.history_entry(thread_id) is None:
            self._upsert_history(ThreadRecord(id=thread_id, title=thread_id, last_activity=self._clock()))

        meta = self.sessions.get(thread_id)
        if meta is not None and meta.agent_id:
            self.selected_agent = AgentIdentity(agent_id=meta.agent_id, agent_name=meta.agent_name or "Agent")
        else:
            logger.debug("No agent metadata for thread %s; keeping %s", thread_id, self.selected_agent)

        self._request_refresh(0)
        return self.binding_for(thread_id)

    def select_agent(self, agent_id: str) -> str:
        agent = self.find_agent(agent_id)
        self.selected_agent = AgentIdentity(agent_id=agent_id, agent_name=agent.name if agent else "")
        return self.create_thread()

    def apply_agents(self, agents: Iterable[AgentInfo]) -> str | None:
        self.agents = [agent for agent in agents if agent.enabled]
        return self.ensure_bootstrap()

    def ensure_bootstrap(self) -> str | None:
        """Start a thread with the main agent when nothing is open."""
        if self.active_thread_ids:
            return None
        for agent in self.agents:
            if agent.name == MAIN_AGENT_NAME:
                logger.info("Auto-starting a thread with %s (%s)", agent.name, agent.id)
                return self.select_agent(agent.id)
        return None

    def apply_sessions(self, response: ChatThreadsResponse) -> None:
        sessions: dict[str, AgentIdentity] = {}
        fetched: list[ThreadRecord] = []
        for session in response.sessions:
            if not session.id:
                continue
            sessions[session.id] = AgentIdentity(
                agent_id=session.agent_id or "",
                agent_name=session.agent_name or "",
            )
            fetched.append(
                ThreadRecord(
                    id=session.id,
                    title=session.title or session.id,
                    agent_id=session.agent_id or "",
                    agent_name=session.agent_name or "",
                    last_activity=session.last_activity,
                )
            )

        fetched_ids = {record.id for record in fetched}
        # Threads started locally stay listed until the backend materializes them.
        pending = [
            record
            for record in self.history
            if record.id not in fetched_ids and record.id in self.active_thread_ids
        ]
        self.sessions = sessions
        self.history = sorted(fetched + pending, key=lambda r: r.last_activity, reverse=True)
        logger.debug("Loaded %d sessions for workspace %s", len(fetched), self.context.workspace)

    def touch_thread(self, thread_id: str, at: int | None = None) -> None:
        record = self.history_entry(thread_id)
        if record is None:
            raise ThreadNotFoundError(f"Thread '{thread_id}' not found.")
        self._upsert_history(replace(record, last_activity=at if at is not None else self._clock()))

    def rename_thread(self, thread_id: str, title: str) -> None:
        record = self.history_entry(thread_id)
        if record is None:
            raise ThreadNotFoundError(f"Thread '{thread_id}' not found.")
        title = title.strip()
        if title:
            self._upsert_history(replace(record, title=title))

    def set_workspace(self, workspace: str | None) -> None:
        self.context.workspace = workspace or None

    def set_authenticated(self, authenticated: bool) -> None:
        self.context.authenticated = authenticated

    def reset(self) -> None:
        """Forget everything tied to the signed-in user."""
        self.active_thread_ids = []
        self.current_thread_id = None
        self.history = []
        self.sessions = {}
        self.agents = []
        self.selected_agent = None
        self.context.authenticated = False
        if self._layout is not None:
            self._layout.clear()
        logger.info("Thread session state reset")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _show(self, thread_id: str) -> None:
        if thread_id not in self.active_thread_ids:
            self.active_thread_ids.append(thread_id)
        self.current_thread_id = thread_id

    def _upsert_history(self, record: ThreadRecord) -> None:
        others = [r for r in self.history if r.id != record.id]
        self.history = sorted([record, *others], key=lambda r: r.last_activity, reverse=True)

    def _request_refresh(self, delay: float) -> None:
        if self._on_refresh is None or not self.context.can_refresh:
            return
        try:
            self._on_refresh(delay)
        except Exception:
            logger.warning("Thread list refresh could not be scheduled", exc_info=True)
