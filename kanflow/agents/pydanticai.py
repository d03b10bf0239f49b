"""Agent executor backed by pydantic-ai agents."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic_ai import Agent

from ..errors import StepExecutionError
from .base import AgentExecutor, SessionMode

logger = logging.getLogger(__name__)


class PydanticAIAgentExecutor(AgentExecutor):
    """Run prompts through ``pydantic_ai.Agent`` instances keyed by agent id.

    ``reuse`` sessions continue the message history of the previous
    invocation of the same agent for the same task.
    """

    def __init__(self, agents: Dict[str, Agent]) -> None:
        self._agents = dict(agents)
        self._sessions: Dict[Tuple[Optional[str], str], List[Any]] = {}

    def register(self, agent_id: str, agent: Agent) -> None:
        self._agents[agent_id] = agent

    def reset_session(self, agent_id: str, task_id: Optional[str] = None) -> None:
        """Drop the stored history for ``agent_id`` and ``task_id``."""
        self._sessions.pop((task_id, agent_id), None)

    async def invoke(
        self,
        agent_id: str,
        prompt: str,
        task_id: Optional[str] = None,
        session_mode: SessionMode = SessionMode.FRESH,
    ) -> str:
        agent = self._agents.get(agent_id)
        if agent is None:
            raise StepExecutionError(f"Agent {agent_id} is not registered")

        key = (task_id, agent_id)
        history = self._sessions.get(key) if session_mode == SessionMode.REUSE else None
        logger.debug(
            f"Running pydantic-ai agent {agent_id} session={session_mode.value} "
            f"history={len(history or [])}"
        )

        result = await agent.run(prompt, message_history=history)
        self._sessions[key] = result.all_messages()

        output = result.output
        return output if isinstance(output, str) else str(output)
