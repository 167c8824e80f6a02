from __future__ import annotations

from fastapi import Request

from parley.server.state import StubState


def get_state(request: Request) -> StubState:
    return request.app.state.stub
