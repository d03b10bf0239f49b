"""Persistence layer for kanflow runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import KanflowConfig, load_config
from .files import FileRunStore, sanitize_filename, step_output_filename, validate_run_id
from .repository import RunStore

_store_instance: RunStore | None = None


def get_run_store(
    runs_dir: Optional[str] = None, config: Optional[KanflowConfig] = None
) -> RunStore:
    """Factory function to obtain the run store.

    ``runs_dir`` can be provided explicitly, via the ``KANFLOW_RUNS_DIR``
    environment variable, or from loaded configuration.
    """

    global _store_instance
    if _store_instance is not None and runs_dir is None and config is None:
        return _store_instance

    config = config or load_config()
    runs_dir = runs_dir or os.getenv("KANFLOW_RUNS_DIR") or config.runs_dir
    _store_instance = FileRunStore(runs_dir, progress_max_bytes=config.progress_max_bytes)
    return _store_instance


__all__ = [
    "FileRunStore",
    "RunStore",
    "get_run_store",
    "sanitize_filename",
    "step_output_filename",
    "validate_run_id",
]
