"""kanflow: Durable workflow run engine for AI agents."""

from .admission import RunAdmission
from .agents import AgentExecutor, EchoAgentExecutor, SessionMode
from .broadcast import get_broadcast
from .definitions import InMemoryWorkflowStore, YamlWorkflowStore, get_workflow_store
from .errors import (
    AcceptanceCriterionError,
    NotFoundError,
    StepExecutionError,
    UnsupportedStepType,
    ValidationError,
)
from .executor import StepExecutor
from .models import (
    RunStatus,
    StepRun,
    StepStatus,
    StepType,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
)
from .orchestrator import RunOrchestrator, build_orchestrator
from .persistence import FileRunStore, get_run_store

__version__ = "0.1.0"
__all__ = [
    "AcceptanceCriterionError",
    "AgentExecutor",
    "EchoAgentExecutor",
    "FileRunStore",
    "InMemoryWorkflowStore",
    "NotFoundError",
    "RunAdmission",
    "RunOrchestrator",
    "RunStatus",
    "SessionMode",
    "StepExecutionError",
    "StepExecutor",
    "StepRun",
    "StepStatus",
    "StepType",
    "UnsupportedStepType",
    "ValidationError",
    "WorkflowDefinition",
    "WorkflowRun",
    "WorkflowStep",
    "YamlWorkflowStore",
    "build_orchestrator",
    "get_broadcast",
    "get_run_store",
    "get_workflow_store",
]
