"""Workflow definition and run state models."""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware current time used for every run timestamp."""
    return datetime.now(timezone.utc)


def new_run_id() -> str:
    """Return a new ``run_<epoch-millis>_<opaque>`` identifier."""
    return f"run_{int(time.time() * 1000)}_{secrets.token_urlsafe(6)}"


class StepType(str, Enum):
    """Kinds of workflow step. Only ``agent`` has a handler."""

    AGENT = "agent"
    LOOP = "loop"
    GATE = "gate"
    PARALLEL = "parallel"


class RunStatus(str, Enum):
    RUNNING = "running"
    BLOCKED = "blocked"
    COMPLETED = "completed"
    FAILED = "failed"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


# ----------------------------------------------------------------------
# Definition


class OnFailPolicy(BaseModel):
    """Failure policy attached to a step, evaluated in field order."""

    model_config = ConfigDict(extra="allow")

    retry: Optional[int] = Field(default=None, ge=0)
    retry_step: Optional[str] = None
    escalate_to: Optional[str] = None
    escalate_message: Optional[str] = None


class OutputSpec(BaseModel):
    """Output hints; the ``file`` extension selects the parser."""

    model_config = ConfigDict(extra="allow")

    file: Optional[str] = None


class AgentDefinition(BaseModel):
    """Roster entry describing an agent's tool and model settings."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None
    tools: List[str] = Field(default_factory=list)


class WorkflowStep(BaseModel):
    """Defines one step in a workflow."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: StepType = StepType.AGENT
    name: Optional[str] = None
    agent: Optional[str] = None
    input: str = ""
    output: Optional[OutputSpec] = None
    acceptance_criteria: List[str] = Field(default_factory=list)
    on_fail: Optional[OnFailPolicy] = None
    session: Optional[Union[str, bool]] = None
    fresh_session: Optional[bool] = None

    @field_validator("id")
    @classmethod
    def _ensure_id(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("step id must be a non-empty string")
        return v


class WorkflowDefinition(BaseModel):
    """Immutable workflow definition identified by ``id`` and ``version``."""

    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    version: int = 1
    description: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    agents: List[AgentDefinition] = Field(default_factory=list)
    steps: List[WorkflowStep]

    @model_validator(mode="after")
    def _check_steps(self) -> "WorkflowDefinition":
        if not self.steps:
            raise ValueError(f"workflow {self.id} must define at least one step")
        seen = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id}")
            seen.add(step.id)
        return self

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)

    def step_index(self, step_id: str) -> int:
        """Position of ``step_id`` in the definition, or ``-1``."""
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1

    def get_agent(self, agent_id: Optional[str]) -> Optional[AgentDefinition]:
        if not agent_id:
            return None
        return next((a for a in self.agents if a.id == agent_id), None)


# ----------------------------------------------------------------------
# Run state


class StepRun(BaseModel):
    """Execution record of one definition step within a run."""

    step_id: str
    status: StepStatus = StepStatus.PENDING
    retries: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[int] = None
    output: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_done(self) -> bool:
        """``True`` once the step must not be executed again by this run."""
        return self.status in (StepStatus.COMPLETED, StepStatus.SKIPPED)


class WorkflowRun(BaseModel):
    """One execution instance of a workflow definition."""

    id: str = Field(default_factory=new_run_id)
    workflow_id: str
    workflow_version: int
    task_id: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING
    current_step: Optional[str] = None
    context: Dict[str, JsonValue] = Field(default_factory=dict)
    steps: List[StepRun] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[str] = None

    def get_step_run(self, step_id: str) -> Optional[StepRun]:
        return next((s for s in self.steps if s.step_id == step_id), None)

    @property
    def is_terminal(self) -> bool:
        return self.status in (RunStatus.COMPLETED, RunStatus.FAILED)

    def to_json(self) -> str:
        """Serialize the run document."""
        return self.model_dump_json(indent=2)

    @classmethod
    def from_json(cls, data: str) -> "WorkflowRun":
        """Deserialize a run document."""
        return cls.model_validate_json(data)


class StepExecutionResult(BaseModel):
    """Parsed output of an executed step plus its artifact reference."""

    output: Any = None
    output_path: str
