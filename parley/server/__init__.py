"""Development stub of the agent backend."""

from parley.server.app import create_app

__all__ = ["create_app"]
