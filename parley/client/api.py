from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping

import httpx
from pydantic_ai.ui.vercel_ai.request_types import RequestData

from parley.client.streaming import iter_ui_events
from parley.protocol.models import AgentListResponse, ChatThreadsResponse, ThreadMessagesResponse


class AgentClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @staticmethod
    def _format_error_message(fallback: str, detail: str) -> str:
        return f"{fallback}. {detail}" if detail else fallback

    def _extract_detail(self, response: httpx.Response, *, body: bytes | None = None) -> str:
        raw = body if body is not None else response.content
        try:
            data = json.loads(raw) if raw else None
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("detail"):
            return str(data["detail"])
        return raw.decode("utf-8", errors="ignore").strip() if raw else ""

    def _raise_for_status(self, response: httpx.Response, fallback: str) -> None:
        try:
            response.raise_for_status()
            return
        except httpx.HTTPStatusError as exc:
            detail = self._extract_detail(response)
            message = self._format_error_message(fallback, detail)
            raise RuntimeError(message) from exc

    async def _raise_for_status_async(self, response: httpx.Response, fallback: str) -> None:
        if response.status_code < 400:
            return
        body: bytes | None = None
        try:
            body = await response.aread()
        except httpx.HTTPError:
            body = None
        detail = self._extract_detail(response, body=body or b"")
        message = self._format_error_message(fallback, detail)
        raise RuntimeError(message)

    async def close(self) -> None:
        await self._client.aclose()

    async def list_sessions(
        self,
        workspace_id: str | None,
        *,
        limit: int = 20,
        headers: Mapping[str, str] | None = None,
    ) -> ChatThreadsResponse:
        params: dict[str, str | int] = {"limit": limit}
        if workspace_id:
            params["workspaceId"] = workspace_id
        response = await self._client.get("/chat/threads", params=params, headers=dict(headers or {}))
        self._raise_for_status(response, "Failed to load threads")
        return ChatThreadsResponse.model_validate(response.json())

    async def list_agents(
        self,
        *,
        workspace_id: str | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> AgentListResponse:
        params: dict[str, str] = {"enabled": "true"}
        if workspace_id:
            params["workspaceId"] = workspace_id
        response = await self._client.get("/agents", params=params, headers=dict(headers or {}))
        self._raise_for_status(response, "Failed to load agents")
        payload = AgentListResponse.model_validate(response.json())
        payload.agents = [agent for agent in payload.agents if agent.enabled]
        return payload

    async def get_thread_messages(
        self,
        thread_id: str,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> ThreadMessagesResponse:
        response = await self._client.get(f"/threads/{thread_id}/messages", headers=dict(headers or {}))
        self._raise_for_status(response, "Failed to load messages")
        return ThreadMessagesResponse.model_validate(response.json())

    async def run_stream(
        self,
        run_input: RequestData,
        *,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[dict]:
        payload = run_input.model_dump(mode="json", by_alias=True, exclude_none=True)
        request_headers = {"accept": "text/event-stream", **(headers or {})}
        async with self._client.stream("POST", "/ui/chat", json=payload, headers=request_headers) as response:
            await self._raise_for_status_async(response, "Failed to run agent")
            async for event in iter_ui_events(response.aiter_lines()):
                yield event
