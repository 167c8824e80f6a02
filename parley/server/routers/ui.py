from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from pydantic_ai.ui.vercel_ai import VercelAIAdapter

from parley.server.deps import get_state
from parley.server.services.chat import build_reply, encode_events, message_text
from parley.server.state import StubState

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/ui/chat")
async def ui_chat(request: Request, state: StubState = Depends(get_state)) -> StreamingResponse:
    body = await request.body()
    try:
        run_input = VercelAIAdapter.build_run_input(body)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="Invalid chat request.") from exc

    thread_id = (request.headers.get("x-thread-id") or "").strip()
    if not thread_id:
        raise HTTPException(status_code=400, detail="Missing thread id.")

    user_messages = [message for message in run_input.messages if message.role == "user"]
    text = message_text(user_messages[-1]) if user_messages else ""
    if not text:
        raise HTTPException(status_code=400, detail="Missing user message.")

    thread = state.get_or_create_thread(
        thread_id,
        workspace_id=request.headers.get("x-workspace-id"),
        agent_id=request.headers.get("x-selected-agent-id"),
    )
    events = build_reply(state, thread, text)
    logger.debug("ui_chat thread=%s agent=%s events=%d", thread_id, thread.agent_id, len(events))
    return StreamingResponse(encode_events(events), media_type="text/event-stream")
