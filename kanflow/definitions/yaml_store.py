"""Load workflow definitions from a directory of YAML files."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError as ModelValidationError

from ..models import WorkflowDefinition
from .base import WorkflowStore

logger = logging.getLogger(__name__)

_EXTENSIONS = (".yml", ".yaml")


def parse_workflow(text: str, default_id: Optional[str] = None) -> WorkflowDefinition:
    """Parse a workflow definition from YAML text.

    Raises:
        ValueError: If the YAML or the definition schema is invalid.
    """

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML: {e}")

    if not isinstance(data, dict):
        raise ValueError("Workflow YAML must be a mapping")
    if default_id and not data.get("id"):
        data["id"] = default_id

    try:
        return WorkflowDefinition.model_validate(data)
    except ModelValidationError as e:
        raise ValueError(f"Invalid workflow definition: {e}")


class YamlWorkflowStore(WorkflowStore):
    """Resolve ``<workflows_dir>/<id>.yml`` (or ``.yaml``) files."""

    def __init__(self, workflows_dir: str | Path) -> None:
        self.workflows_dir = Path(workflows_dir)

    def _path_for(self, workflow_id: str) -> Optional[Path]:
        if not workflow_id or "/" in workflow_id or "\\" in workflow_id or ".." in workflow_id:
            return None
        for ext in _EXTENSIONS:
            candidate = self.workflows_dir / f"{workflow_id}{ext}"
            if candidate.is_file():
                return candidate
        return None

    def _load(self, workflow_id: str) -> WorkflowDefinition | None:
        path = self._path_for(workflow_id)
        if path is None:
            return None
        return parse_workflow(path.read_text(encoding="utf-8"), default_id=workflow_id)

    def _load_all(self) -> List[WorkflowDefinition]:
        if not self.workflows_dir.is_dir():
            return []
        definitions: List[WorkflowDefinition] = []
        for path in sorted(self.workflows_dir.iterdir()):
            if path.suffix not in _EXTENSIONS:
                continue
            try:
                definitions.append(
                    parse_workflow(path.read_text(encoding="utf-8"), default_id=path.stem)
                )
            except ValueError as exc:
                logger.warning(f"Skipping invalid workflow file {path}: {exc}")
        return definitions

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition | None:
        return await asyncio.to_thread(self._load, workflow_id)

    async def list_workflows(self) -> List[WorkflowDefinition]:
        return await asyncio.to_thread(self._load_all)
