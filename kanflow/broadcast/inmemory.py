"""In-memory broadcast for tests and single-process use."""

from __future__ import annotations

import asyncio
from typing import List

from ..models import WorkflowRun
from .base import BaseBroadcast


class InMemoryBroadcast(BaseBroadcast):
    """Keep published snapshots and fan them out to local subscribers."""

    def __init__(self) -> None:
        self.published: List[WorkflowRun] = []
        self._subscribers: List[asyncio.Queue] = []

    async def publish(self, run: WorkflowRun) -> None:
        snapshot = run.model_copy(deep=True)
        self.published.append(snapshot)
        for queue in self._subscribers:
            queue.put_nowait(snapshot)

    def subscribe(self) -> asyncio.Queue:
        """Return a queue receiving every snapshot published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def statuses(self, run_id: str) -> List[str]:
        """Return the sequence of run statuses published for ``run_id``."""
        return [r.status.value for r in self.published if r.id == run_id]
