"""Deterministic placeholder executor that echoes the prompt."""

from __future__ import annotations

import logging
from typing import Optional

from .base import AgentExecutor, SessionMode

logger = logging.getLogger(__name__)


class EchoAgentExecutor(AgentExecutor):
    """Return a fixed report containing the prompt.

    Suitable for exercising the engine without a model; swap in a real
    executor before production use.
    """

    async def invoke(
        self,
        agent_id: str,
        prompt: str,
        task_id: Optional[str] = None,
        session_mode: SessionMode = SessionMode.FRESH,
    ) -> str:
        logger.info(
            f"Echo agent invoked agent={agent_id} task_id={task_id} session={session_mode.value}"
        )
        return (
            f"Agent {agent_id} executed step\n\nPrompt:\n{prompt}\n\n"
            "STATUS: done\nOUTPUT: Placeholder result"
        )
