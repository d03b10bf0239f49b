"""Agent executors invoked by agent steps."""

from .base import AgentExecutor, SessionMode
from .echo import EchoAgentExecutor

__all__ = ["AgentExecutor", "EchoAgentExecutor", "SessionMode"]
