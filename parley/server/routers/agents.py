from __future__ import annotations

from fastapi import APIRouter, Depends

from parley.protocol.models import AgentListResponse
from parley.server.deps import get_state
from parley.server.state import StubState

router = APIRouter()


@router.get("/agents", response_model=AgentListResponse)
async def api_list_agents(enabled: bool | None = None, state: StubState = Depends(get_state)) -> AgentListResponse:
    agents = state.agents
    if enabled is not None:
        agents = [agent for agent in agents if agent.enabled == enabled]
    return AgentListResponse(agents=agents)
