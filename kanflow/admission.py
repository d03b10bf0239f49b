"""Admission control for concurrently executing run loops."""

from __future__ import annotations

from .constants import MAX_CONCURRENT_RUNS


class RunAdmission:
    """Non-blocking counting limiter.

    Callers that cannot acquire a slot are rejected rather than queued.
    All calls happen on the event loop thread, so no lock is needed.
    """

    def __init__(self, limit: int = MAX_CONCURRENT_RUNS) -> None:
        if limit < 1:
            raise ValueError("admission limit must be at least 1")
        self.limit = limit
        self._active = 0

    @property
    def active(self) -> int:
        return self._active

    @property
    def available(self) -> int:
        return self.limit - self._active

    def try_acquire(self) -> bool:
        """Reserve a slot; return ``False`` when the ceiling is reached."""
        if self._active >= self.limit:
            return False
        self._active += 1
        return True

    def release(self) -> None:
        if self._active <= 0:
            raise RuntimeError("release() called without a matching acquire")
        self._active -= 1
