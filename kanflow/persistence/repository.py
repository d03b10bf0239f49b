"""Repository abstraction for run state persistence."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from ..models import WorkflowDefinition, WorkflowRun


class RunStore(Protocol):
    """Protocol for run persistence backends.

    Stores only persist and retrieve snapshots; they never mutate a run.
    """

    async def save(self, run: WorkflowRun) -> None:
        """Persist the full run document."""

    async def get(self, run_id: str) -> WorkflowRun | None:
        """Retrieve a run by id, ``None`` when it does not exist."""

    async def list(
        self,
        task_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[WorkflowRun]:
        """Return persisted runs matching the filters, newest first."""

    async def snapshot_definition(
        self, run_id: str, definition: WorkflowDefinition
    ) -> None:
        """Persist an immutable copy of the resolved workflow definition."""

    async def load_definition_snapshot(
        self, run_id: str
    ) -> WorkflowDefinition | None:
        """Return the definition snapshotted for ``run_id``."""

    async def read_progress(self, run_id: str) -> str | None:
        """Return the run's progress log, ``None`` before the first entry."""

    async def append_progress(self, run_id: str, step_id: str, output: Any) -> None:
        """Append a timestamped entry to the run's progress log."""

    async def write_step_output(
        self,
        run_id: str,
        step_id: str,
        output: Any,
        filename: Optional[str] = None,
    ) -> str:
        """Persist a step's raw output and return its artifact path."""
