"""Agent executor interface consumed by the step executor."""

from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol


class SessionMode(str, Enum):
    """Whether an agent invocation continues a prior session."""

    FRESH = "fresh"
    REUSE = "reuse"


class AgentExecutor(Protocol):
    """Runs a rendered prompt against an agent and returns its raw text."""

    async def invoke(
        self,
        agent_id: str,
        prompt: str,
        task_id: Optional[str] = None,
        session_mode: SessionMode = SessionMode.FRESH,
    ) -> str:
        """Execute ``prompt`` with ``agent_id`` and return the raw result."""
