import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent))

from kanflow import FileRunStore, InMemoryWorkflowStore, RunOrchestrator, WorkflowDefinition
from kanflow.broadcast import InMemoryBroadcast


def make_definition(workflow_id: str = "feature-dev", steps=None, **kwargs) -> WorkflowDefinition:
    """Build a definition with one agent per step unless steps are given."""
    steps = steps or [
        {"id": "plan", "agent": "planner", "input": "Plan {{task.title}}"},
        {"id": "implement", "agent": "developer", "input": "Implement {{steps.plan.output}}"},
        {"id": "review", "agent": "reviewer", "input": "Review"},
    ]
    return WorkflowDefinition.model_validate({"id": workflow_id, "steps": steps, **kwargs})


@pytest.fixture
def store(tmp_path):
    return FileRunStore(tmp_path / "runs")


@pytest.fixture
def broadcast():
    return InMemoryBroadcast()


@pytest.fixture
def workflows():
    return InMemoryWorkflowStore()


@pytest.fixture
def orchestrator_factory(store, workflows, broadcast):
    def _factory(agent_executor, **kwargs) -> RunOrchestrator:
        kwargs.setdefault("broadcast", broadcast)
        return RunOrchestrator(store, workflows, agent_executor, **kwargs)

    return _factory
