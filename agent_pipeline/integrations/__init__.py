"""Integration clients used by the agent pipeline.

Available Clients:
- AgentClient: HTTP access to remote agents (capabilities, negotiate, execute)
"""

from .agent_client import AgentClient

__all__ = ["AgentClient"]
