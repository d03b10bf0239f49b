"""Task service collaborators used to snapshot task payloads into runs."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from .config import KanflowConfig, load_config

logger = logging.getLogger(__name__)


class TaskService(Protocol):
    """Resolve a task id to its full payload."""

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        """Return the task payload or ``None`` if it does not exist."""


class InMemoryTaskService(TaskService):
    """Serve tasks from a local dictionary."""

    def __init__(self, tasks: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._tasks: Dict[str, Dict[str, Any]] = dict(tasks or {})

    def add(self, task_id: str, task: Dict[str, Any]) -> None:
        self._tasks[task_id] = task

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        task = self._tasks.get(task_id)
        return dict(task) if task is not None else None


class HttpTaskService(TaskService):
    """Fetch tasks from a remote task API at ``GET /api/tasks/<id>``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def get_task(self, task_id: str) -> Optional[Dict[str, Any]]:
        async with httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        ) as client:
            response = await client.get(f"/api/tasks/{task_id}")
        if response.status_code == 404:
            logger.info(f"Task {task_id} not found at {self.base_url}")
            return None
        response.raise_for_status()
        payload = response.json()
        # Some task APIs wrap the payload in a ``data`` envelope.
        if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
            return payload["data"]
        return payload


def get_task_service(config: Optional[KanflowConfig] = None) -> Optional[TaskService]:
    """Return an HTTP task service when a URL is configured, else ``None``."""

    config = config or load_config()
    if config.task_service_url:
        return HttpTaskService(config.task_service_url)
    return None
