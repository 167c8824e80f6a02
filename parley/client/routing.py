from __future__ import annotations

from parley.config import AuthState
from parley.domain.agent_binding import AgentBinding


def build_routing_headers(
    thread_id: str,
    binding: AgentBinding | None,
    auth: AuthState,
    workspace: str | None = None,
) -> dict[str, str]:
    """Headers attached to every request made on behalf of a thread."""
    headers = {
        "X-User-Context": "authenticated" if auth.is_authenticated else "unauthenticated",
        "X-Session-ID": thread_id,
        "X-Thread-ID": thread_id,
    }
    if binding is not None and binding.agent_id:
        headers["X-Selected-Agent-ID"] = binding.agent_id
    if auth.is_authenticated:
        headers["Authorization"] = f"Bearer {auth.token}"
        headers["X-User-ID"] = str(auth.user_id)
    if workspace:
        headers["X-Workspace-ID"] = workspace
    return headers
