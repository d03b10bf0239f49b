"""Command line interface for starting and inspecting workflow runs."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import typer

from kanflow.config import load_config
from kanflow.definitions import get_workflow_store
from kanflow.errors import KanflowError
from kanflow.models import WorkflowRun
from kanflow.orchestrator import build_orchestrator

app = typer.Typer(help="CLI for kanflow workflow runs")

# Command groups
run_app = typer.Typer(help="Commands for managing workflow runs")
workflow_app = typer.Typer(help="Commands for inspecting workflow definitions")

app.add_typer(run_app, name="run")
app.add_typer(workflow_app, name="workflow")


@app.callback()
def main() -> None:
    """kanflow CLI entry point."""
    config = load_config()
    logging.basicConfig(level=config.log_level.upper())


def _parse_context(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        typer.secho(f"Invalid --context JSON: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not isinstance(data, dict):
        typer.secho("--context must be a JSON object", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    return data


def _echo_run_summary(run: WorkflowRun) -> None:
    typer.echo(f"Run {run.id}: {run.status.value}")
    if run.error:
        typer.echo(f"Error: {run.error}")


@run_app.command("start")
def run_start(
    workflow_id: str,
    task_id: Optional[str] = typer.Option(None, help="Task to snapshot into the run context"),
    context: Optional[str] = typer.Option(None, help="Extra context as a JSON object"),
) -> None:
    """
    Start a new run of a workflow definition.

    The run is persisted before any step executes; the command then waits
    for the run to complete, fail or block.

    Example:
        kanflow run start feature-dev --task-id task_123
        kanflow run start feature-dev --context '{"branch": "main"}'
    """
    extra_context = _parse_context(context)

    async def _start() -> WorkflowRun:
        orchestrator = build_orchestrator()
        run = await orchestrator.start_run(workflow_id, task_id, extra_context)
        return await orchestrator.wait_for_run(run.id) or run

    try:
        run = asyncio.run(_start())
    except KanflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    _echo_run_summary(run)


@run_app.command("list")
def run_list(
    task_id: Optional[str] = typer.Option(None, help="Only runs for this task"),
    workflow_id: Optional[str] = typer.Option(None, help="Only runs of this workflow"),
    status: Optional[str] = typer.Option(None, help="Only runs with this status"),
) -> None:
    """
    List runs, newest first.

    Example:
        kanflow run list --status blocked
        # Output: run_1718000000000_abc12345    blocked    feature-dev    2024-06-10T06:13:20+00:00
    """
    orchestrator = build_orchestrator()
    runs = asyncio.run(
        orchestrator.list_runs(task_id=task_id, workflow_id=workflow_id, status=status)
    )
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.id}\t{run.status.value}\t{run.workflow_id}\t{run.started_at.isoformat()}"
        )


@run_app.command("show")
def run_show(run_id: str) -> None:
    """
    Show detailed information for a run.

    Displays run status, current step and step-by-step execution history.

    Example:
        kanflow run show run_1718000000000_abc12345
        # Output: Run run_1718000000000_abc12345: blocked
        #         Current step: review
        #         - implement: completed (12s)
        #         - review: failed (retries: 0) Acceptance criterion not met: "LGTM"
    """
    orchestrator = build_orchestrator()
    try:
        run = asyncio.run(orchestrator.get_run(run_id))
    except KanflowError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1)
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)

    _echo_run_summary(run)
    typer.echo(f"Workflow: {run.workflow_id} v{run.workflow_version}")
    if run.current_step:
        typer.echo(f"Current step: {run.current_step}")
    for step in run.steps:
        line = f"- {step.step_id}: {step.status.value}"
        if step.duration is not None:
            line += f" ({step.duration}s)"
        if step.retries:
            line += f" (retries: {step.retries})"
        if step.error:
            line += f" {step.error}"
        typer.echo(line)


@run_app.command("resume")
def run_resume(
    run_id: str,
    context: Optional[str] = typer.Option(None, help="Context merged before resuming"),
) -> None:
    """
    Resume a blocked run and wait for it to finish or block again.

    Example:
        kanflow run resume run_1718000000000_abc12345 --context '{"approved": true}'
    """
    resume_context = _parse_context(context)

    async def _resume() -> WorkflowRun:
        orchestrator = build_orchestrator()
        run = await orchestrator.resume_run(run_id, resume_context)
        return await orchestrator.wait_for_run(run.id) or run

    try:
        run = asyncio.run(_resume())
    except KanflowError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    _echo_run_summary(run)


@workflow_app.command("list")
def workflow_list() -> None:
    """List workflow definitions found in the workflows directory."""
    store = get_workflow_store()
    definitions = asyncio.run(store.list_workflows())
    if not definitions:
        typer.echo("No workflows found")
        return
    for definition in definitions:
        typer.echo(
            f"{definition.id}\tv{definition.version}\t{len(definition.steps)} steps"
            + (f"\t{definition.name}" if definition.name else "")
        )


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """Show the ordered steps and failure policies of a workflow."""
    store = get_workflow_store()
    try:
        definition = asyncio.run(store.load_workflow(workflow_id))
    except ValueError as exc:
        typer.secho(str(exc), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if definition is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    typer.echo(f"Workflow {definition.id} v{definition.version}")
    for step in definition.steps:
        policy = ""
        if step.on_fail:
            policy = " on_fail=" + json.dumps(step.on_fail.model_dump(exclude_none=True))
        typer.echo(f"- {step.id} [{step.type.value}] agent={step.agent or '-'}{policy}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
