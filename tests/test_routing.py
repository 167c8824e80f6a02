from __future__ import annotations

import re

from parley.client.routing import build_routing_headers
from parley.config import AuthState
from parley.core.panes import build_pane_specs, pane_dom_id
from parley.core.threads import SessionContext, ThreadSessionManager
from parley.domain.agent_binding import AgentBinding
from parley.protocol.models import AgentInfo


def test_headers_for_guest() -> None:
    headers = build_routing_headers("t1", None, AuthState())
    assert headers == {
        "X-User-Context": "unauthenticated",
        "X-Session-ID": "t1",
        "X-Thread-ID": "t1",
    }


def test_headers_for_signed_in_user() -> None:
    binding = AgentBinding(thread_id="t1", agent_id="a1", agent_name="Main Agent", source="selected")
    headers = build_routing_headers("t1", binding, AuthState(token="tok", user_id="u1"), "acme")
    assert headers["X-User-Context"] == "authenticated"
    assert headers["X-Selected-Agent-ID"] == "a1"
    assert headers["Authorization"] == "Bearer tok"
    assert headers["X-User-ID"] == "u1"
    assert headers["X-Workspace-ID"] == "acme"


def test_placeholder_binding_sends_no_agent() -> None:
    binding = AgentBinding(thread_id="t1", agent_id="", agent_name="AI Assistant", source="placeholder")
    assert "X-Selected-Agent-ID" not in build_routing_headers("t1", binding, AuthState(token="tok"))


def test_pane_dom_ids_are_safe_and_stable() -> None:
    dom_id = pane_dom_id("ws:acme:1700000000000-abcdefgh")
    assert re.match(r"^pane-[0-9a-f]{16}$", dom_id)
    assert dom_id == pane_dom_id("ws:acme:1700000000000-abcdefgh")
    assert dom_id != pane_dom_id("ws:acme:1700000000000-abcdefgi")


def test_one_visible_pane_per_active_thread() -> None:
    manager = ThreadSessionManager(context=SessionContext(workspace="acme", authenticated=True))
    manager.apply_agents([AgentInfo(id="a1", name="Main Agent"), AgentInfo(id="b1", name="Beta")])
    first = manager.current_thread_id
    second = manager.select_agent("b1")

    specs = build_pane_specs(manager, AuthState(token="tok", user_id="u1"))

    assert [spec.thread_id for spec in specs] == [first, second]
    assert [spec.visible for spec in specs] == [False, True]
    assert specs[0].headers["X-Thread-ID"] == first
    assert specs[0].headers["X-Selected-Agent-ID"] == "a1"
    assert specs[1].headers["X-Selected-Agent-ID"] == "b1"
    assert len({spec.dom_id for spec in specs}) == 2

    manager.select_thread(first)
    specs = build_pane_specs(manager, AuthState())
    assert [spec.visible for spec in specs] == [True, False]
