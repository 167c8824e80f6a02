from parley.client.api import AgentClient

__all__ = ["AgentClient"]
