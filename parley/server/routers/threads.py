from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from parley.protocol.models import ChatThreadsResponse
from parley.server.deps import get_state
from parley.server.state import StubState

router = APIRouter()


@router.get("/chat/threads", response_model=ChatThreadsResponse)
async def api_list_threads(
    workspace_id: str | None = Query(default=None, alias="workspaceId"),
    limit: int = Query(default=20, ge=1, le=200),
    state: StubState = Depends(get_state),
) -> ChatThreadsResponse:
    threads = state.list_threads(workspace_id, limit=limit)
    return ChatThreadsResponse(sessions=[thread.to_session() for thread in threads], total=len(threads))


@router.get("/threads/{thread_id}/messages")
async def api_thread_messages(thread_id: str, state: StubState = Depends(get_state)) -> dict[str, Any]:
    thread = state.threads.get(thread_id)
    if thread is None:
        raise HTTPException(status_code=404, detail="Thread not found.")
    return {"threadId": thread.id, "messages": thread.messages}
