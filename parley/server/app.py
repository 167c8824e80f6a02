from __future__ import annotations

from fastapi import FastAPI

from parley.server.routers import agents, meta, threads, ui
from parley.server.state import StubState


def create_app(state: StubState | None = None) -> FastAPI:
    app = FastAPI(title="parley stub backend")
    app.state.stub = state or StubState()
    app.include_router(meta.router)
    app.include_router(agents.router)
    app.include_router(threads.router)
    app.include_router(ui.router)
    return app
