from __future__ import annotations

import hashlib
from dataclasses import dataclass

from parley.client.routing import build_routing_headers
from parley.config import AuthState
from parley.core.threads import ThreadSessionManager
from parley.domain.agent_binding import AgentBinding


def pane_dom_id(thread_id: str) -> str:
    digest = hashlib.sha1(thread_id.encode("utf-8")).hexdigest()[:16]
    return f"pane-{digest}"


@dataclass(frozen=True)
class PaneSpec:
    thread_id: str
    dom_id: str
    visible: bool
    binding: AgentBinding
    headers: dict[str, str]


def build_pane_specs(manager: ThreadSessionManager, auth: AuthState) -> list[PaneSpec]:
    """One pane per active thread, in activation order; only the current one is visible."""
    specs: list[PaneSpec] = []
    for thread_id in manager.active_thread_ids:
        binding = manager.binding_for(thread_id)
        specs.append(
            PaneSpec(
                thread_id=thread_id,
                dom_id=pane_dom_id(thread_id),
                visible=thread_id == manager.current_thread_id,
                binding=binding,
                headers=build_routing_headers(thread_id, binding, auth, manager.context.workspace),
            )
        )
    return specs
