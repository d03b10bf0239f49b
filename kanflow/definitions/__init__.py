"""Workflow definition stores."""

from __future__ import annotations

import os
from typing import Optional

from ..config import KanflowConfig, load_config
from .base import WorkflowStore
from .inmemory import InMemoryWorkflowStore
from .yaml_store import YamlWorkflowStore, parse_workflow


def get_workflow_store(
    workflows_dir: Optional[str] = None, config: Optional[KanflowConfig] = None
) -> WorkflowStore:
    """Return a YAML store rooted at the configured workflows directory."""

    config = config or load_config()
    workflows_dir = (
        workflows_dir or os.getenv("KANFLOW_WORKFLOWS_DIR") or config.workflows_dir
    )
    return YamlWorkflowStore(workflows_dir)


__all__ = [
    "InMemoryWorkflowStore",
    "WorkflowStore",
    "YamlWorkflowStore",
    "get_workflow_store",
    "parse_workflow",
]
