import pytest

from kanflow.agents import EchoAgentExecutor, SessionMode


@pytest.mark.asyncio
async def test_echo_executor_reports_prompt_without_keeping_state():
    executor = EchoAgentExecutor()

    for _ in range(3):
        output = await executor.invoke("dev", "Fix bug", "task_1", SessionMode.REUSE)

    assert output == (
        "Agent dev executed step\n\nPrompt:\nFix bug\n\n"
        "STATUS: done\nOUTPUT: Placeholder result"
    )
    assert vars(executor) == {}
