"""Dictionary-backed workflow store."""

from __future__ import annotations

from typing import Dict, Iterable, List

from ..models import WorkflowDefinition
from .base import WorkflowStore


class InMemoryWorkflowStore(WorkflowStore):
    """Hold definitions in local memory, mainly for tests."""

    def __init__(self, definitions: Iterable[WorkflowDefinition] = ()) -> None:
        self._definitions: Dict[str, WorkflowDefinition] = {}
        for definition in definitions:
            self.add(definition)

    def add(self, definition: WorkflowDefinition) -> None:
        """Register or replace ``definition`` under its id."""
        self._definitions[definition.id] = definition

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        definition = self._definitions.get(workflow_id)
        return definition.model_copy(deep=True) if definition else None

    async def list_workflows(self) -> List[WorkflowDefinition]:
        return [d.model_copy(deep=True) for d in self._definitions.values()]
