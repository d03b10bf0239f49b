"""Tests for the pydantic-ai backed agent executor."""

import pytest
from pydantic_ai import Agent
from pydantic_ai.messages import ModelResponse, TextPart
from pydantic_ai.models.function import FunctionModel

from kanflow.agents import SessionMode
from kanflow.agents.pydanticai import PydanticAIAgentExecutor
from kanflow.errors import StepExecutionError


def _count_messages(messages, info) -> ModelResponse:
    return ModelResponse(parts=[TextPart(f"messages={len(messages)}")])


@pytest.mark.asyncio
async def test_reuse_session_continues_history():
    executor = PydanticAIAgentExecutor({"dev": Agent(FunctionModel(_count_messages))})

    first = await executor.invoke("dev", "hello", "task_1", SessionMode.FRESH)
    reused = await executor.invoke("dev", "again", "task_1", SessionMode.REUSE)
    fresh = await executor.invoke("dev", "anew", "task_1", SessionMode.FRESH)

    assert first == "messages=1"
    assert reused == "messages=3"
    assert fresh == "messages=1"


@pytest.mark.asyncio
async def test_sessions_are_scoped_per_task():
    executor = PydanticAIAgentExecutor({"dev": Agent(FunctionModel(_count_messages))})

    await executor.invoke("dev", "hello", "task_1", SessionMode.FRESH)
    other_task = await executor.invoke("dev", "hello", "task_2", SessionMode.REUSE)

    assert other_task == "messages=1"


@pytest.mark.asyncio
async def test_unknown_agent_raises():
    executor = PydanticAIAgentExecutor({})
    with pytest.raises(StepExecutionError):
        await executor.invoke("ghost", "hello")
