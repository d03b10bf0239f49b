"""Base broadcast interface for run status notifications."""

from __future__ import annotations

import abc

from ..models import WorkflowRun


class BaseBroadcast(metaclass=abc.ABCMeta):
    """Abstract publisher of run snapshots.

    Publishing is best-effort: the orchestrator logs and ignores failures.
    """

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, run: WorkflowRun) -> None:
        """Announce the current state of ``run``."""
        raise NotImplementedError


class NullBroadcast(BaseBroadcast):
    """Discard every notification."""

    async def publish(self, run: WorkflowRun) -> None:
        pass
