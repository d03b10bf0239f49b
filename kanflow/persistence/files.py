"""File-per-run implementation of the run store."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, List, Optional

import yaml
from pathvalidate import sanitize_filename as _sanitize
from pydantic import ValidationError as ModelValidationError

from ..constants import (
    MAX_PROGRESS_FILE_SIZE,
    PROGRESS_FILENAME,
    RUN_FILENAME,
    RUN_ID_PATTERN,
    SNAPSHOT_FILENAME,
    STEP_OUTPUTS_DIRNAME,
)
from ..errors import ValidationError
from ..models import WorkflowDefinition, WorkflowRun, utcnow
from .repository import RunStore

logger = logging.getLogger(__name__)

_RUN_ID_RE = re.compile(RUN_ID_PATTERN)


def validate_run_id(run_id: Optional[str]) -> str:
    """Return the normalised ``run_id`` or raise ``ValidationError``.

    The id addresses a directory on disk, so anything that could escape the
    runs directory is rejected before it reaches the filesystem.
    """

    trimmed = (run_id or "").strip()
    if not trimmed:
        raise ValidationError("Run ID is required")
    if "/" in trimmed or "\\" in trimmed or ".." in trimmed:
        raise ValidationError("Run ID contains illegal path characters")
    if not _RUN_ID_RE.match(trimmed):
        raise ValidationError("Run ID format is invalid")
    return trimmed


def sanitize_filename(name: str) -> str:
    """Return ``name`` as a safe single path component, or ``""``."""
    cleaned = _sanitize(name or "", platform="universal")
    if not cleaned.strip("."):
        return ""
    return cleaned


def step_output_filename(step_id: str, filename: Optional[str] = None) -> str:
    """Resolve the artifact name for ``step_id``.

    Names altered by sanitising get a short digest of the requested name so
    that distinct step ids never share an artifact.
    """

    requested = filename or f"{step_id}.md"
    safe = sanitize_filename(requested)
    if safe == requested:
        return safe

    digest = hashlib.sha1(requested.encode("utf-8")).hexdigest()[:8]
    path = Path(safe)
    stem = path.stem if safe else "output"
    return f"{stem}-{digest}{path.suffix or '.md'}"


class FileRunStore(RunStore):
    """Persist each run as a directory of plain files.

    Layout under ``runs_dir``::

        <run_id>/run.json
        <run_id>/workflow.yml
        <run_id>/progress.md
        <run_id>/step-outputs/<step>.md

    The full run document is rewritten on every save.
    """

    def __init__(
        self, runs_dir: str | Path, progress_max_bytes: int = MAX_PROGRESS_FILE_SIZE
    ) -> None:
        self.runs_dir = Path(runs_dir)
        self.progress_max_bytes = progress_max_bytes
        self.runs_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Helper methods
    def _run_dir(self, run_id: str) -> Path:
        return self.runs_dir / validate_run_id(run_id)

    @staticmethod
    def _write_atomic(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _read_run(self, run_id: str) -> WorkflowRun | None:
        path = self._run_dir(run_id) / RUN_FILENAME
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        return WorkflowRun.from_json(content)

    def _list_runs(
        self,
        task_id: Optional[str],
        workflow_id: Optional[str],
        status: Optional[str],
    ) -> List[WorkflowRun]:
        if not self.runs_dir.exists():
            return []

        runs: List[WorkflowRun] = []
        for entry in sorted(self.runs_dir.iterdir()):
            if not entry.name.startswith("run_") or not entry.is_dir():
                continue
            try:
                run = self._read_run(entry.name)
            except ValidationError:
                logger.warning(f"Skipping run directory with invalid ID: {entry.name}")
                continue
            except (ModelValidationError, OSError) as exc:
                logger.warning(f"Skipping unreadable run {entry.name}: {exc}")
                continue
            if run is None:
                continue

            if task_id and run.task_id != task_id:
                continue
            if workflow_id and run.workflow_id != workflow_id:
                continue
            if status and run.status != status:
                continue
            runs.append(run)

        runs.sort(key=lambda r: r.started_at, reverse=True)
        return runs

    def _append_progress(self, run_id: str, step_id: str, output: Any) -> None:
        path = self._run_dir(run_id) / PROGRESS_FILENAME
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            size = 0
        if size > self.progress_max_bytes:
            logger.warning(
                f"Progress file exceeds size limit, skipping append run_id={run_id} size={size}"
            )
            return

        body = output if isinstance(output, str) else json.dumps(output, indent=2, default=str)
        entry = f"## Step: {step_id} ({utcnow().isoformat()})\n\n{body}\n\n---\n\n"
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(entry)

    def _write_step_output(
        self, run_id: str, step_id: str, output: Any, filename: Optional[str]
    ) -> str:
        output_dir = self._run_dir(run_id) / STEP_OUTPUTS_DIRNAME
        output_path = output_dir / step_output_filename(step_id, filename)

        content = output if isinstance(output, str) else json.dumps(output, indent=2, default=str)
        self._write_atomic(output_path, content)
        return str(output_path)

    # ------------------------------------------------------------------
    # Store API
    async def save(self, run: WorkflowRun) -> None:
        path = self._run_dir(run.id) / RUN_FILENAME
        await asyncio.to_thread(self._write_atomic, path, run.to_json())

    async def get(self, run_id: str) -> WorkflowRun | None:
        return await asyncio.to_thread(self._read_run, run_id)

    async def list(
        self,
        task_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[WorkflowRun]:
        return await asyncio.to_thread(self._list_runs, task_id, workflow_id, status)

    async def snapshot_definition(
        self, run_id: str, definition: WorkflowDefinition
    ) -> None:
        path = self._run_dir(run_id) / SNAPSHOT_FILENAME
        data = definition.model_dump(mode="json", exclude_none=True)
        await asyncio.to_thread(
            self._write_atomic, path, yaml.safe_dump(data, sort_keys=False)
        )

    async def load_definition_snapshot(
        self, run_id: str
    ) -> WorkflowDefinition | None:
        path = self._run_dir(run_id) / SNAPSHOT_FILENAME
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        return WorkflowDefinition.model_validate(yaml.safe_load(content) or {})

    async def read_progress(self, run_id: str) -> str | None:
        path = self._run_dir(run_id) / PROGRESS_FILENAME
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None

    async def append_progress(self, run_id: str, step_id: str, output: Any) -> None:
        await asyncio.to_thread(self._append_progress, run_id, step_id, output)
        logger.debug(f"Progress file updated run_id={run_id} step_id={step_id}")

    async def write_step_output(
        self,
        run_id: str,
        step_id: str,
        output: Any,
        filename: Optional[str] = None,
    ) -> str:
        path = await asyncio.to_thread(
            self._write_step_output, run_id, step_id, output, filename
        )
        logger.info(f"Step output saved run_id={run_id} step_id={step_id} path={path}")
        return path
