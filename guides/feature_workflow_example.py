"""Feature-development workflow example using kanflow with pydantic-ai agents."""

import asyncio

from pydantic_ai import Agent

from kanflow import InMemoryWorkflowStore, RunOrchestrator, WorkflowDefinition, get_run_store
from kanflow.agents.pydanticai import PydanticAIAgentExecutor
from kanflow.broadcast import InMemoryBroadcast
from kanflow.tasks import InMemoryTaskService

planner = Agent(
    "anthropic:claude-3-5-sonnet-latest",
    system_prompt="Break the task into a short numbered implementation plan.",
)

developer = Agent(
    "anthropic:claude-3-5-sonnet-latest",
    system_prompt=(
        "Implement the plan you are given. Finish with a line reading "
        "'STATUS: done' once every item is covered."
    ),
)

workflow = WorkflowDefinition.model_validate(
    {
        "id": "feature-dev",
        "name": "Feature development",
        "agents": [
            {"id": "planner", "model": "claude-3-5-sonnet"},
            {"id": "developer", "model": "claude-3-5-sonnet"},
        ],
        "steps": [
            {"id": "plan", "agent": "planner", "input": "Plan: {{task.title}}"},
            {
                "id": "implement",
                "agent": "developer",
                "session": "feature",
                "input": "Implement this plan:\n{{steps.plan.output}}",
                "acceptance_criteria": ["STATUS: done"],
                "on_fail": {"retry": 1, "escalate_to": "human"},
            },
        ],
    }
)


async def main():
    print("Running feature workflow with kanflow...")
    broadcast = InMemoryBroadcast()
    updates = broadcast.subscribe()

    orchestrator = RunOrchestrator(
        store=get_run_store(),
        workflows=InMemoryWorkflowStore([workflow]),
        agent_executor=PydanticAIAgentExecutor({"planner": planner, "developer": developer}),
        tasks=InMemoryTaskService({"task_1": {"id": "task_1", "title": "Add a dark mode toggle"}}),
        broadcast=broadcast,
    )

    run = await orchestrator.start_run("feature-dev", task_id="task_1")
    run = await orchestrator.wait_for_run(run.id)

    while not updates.empty():
        update = updates.get_nowait()
        print(f"update: {update.status.value} current_step={update.current_step}")
    print("Persisted status:", run.status.value)
    if run.error:
        print("Error:", run.error)


if __name__ == "__main__":
    asyncio.run(main())
