"""Workflow definition store interface."""

from __future__ import annotations

from typing import Protocol

from ..models import WorkflowDefinition


class WorkflowStore(Protocol):
    """Read-only source of workflow definitions."""

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        """Return the definition for ``workflow_id`` or ``None``."""

    async def list_workflows(self) -> list[WorkflowDefinition]:
        """Return every available definition."""
