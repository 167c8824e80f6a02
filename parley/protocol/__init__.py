from parley.protocol.models import (
    AgentInfo,
    AgentListResponse,
    ChatThreadsResponse,
    SessionInfo,
    ThreadMessagesResponse,
    normalize_timestamp,
)

__all__ = [
    "AgentInfo",
    "AgentListResponse",
    "ChatThreadsResponse",
    "SessionInfo",
    "ThreadMessagesResponse",
    "normalize_timestamp",
]
