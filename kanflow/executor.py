"""Step execution for kanflow workflow runs."""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Dict, Optional

import yaml

from .agents import AgentExecutor, SessionMode
from .context import find_unresolved, merge_context, render_template
from .errors import AcceptanceCriterionError, StepExecutionError, UnsupportedStepType
from .models import (
    StepExecutionResult,
    StepStatus,
    StepType,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
)
from .persistence import RunStore

logger = logging.getLogger(__name__)

StepHandler = Callable[
    [WorkflowStep, WorkflowRun, Optional[WorkflowDefinition]],
    Awaitable[StepExecutionResult],
]


def resolve_session_mode(step: WorkflowStep) -> SessionMode:
    """``reuse`` when the step names a session or opts out of a fresh one."""
    if step.session or step.fresh_session is False:
        return SessionMode.REUSE
    return SessionMode.FRESH


def build_steps_context(run: WorkflowRun) -> Dict[str, Any]:
    """Map completed step ids to ``{output, status, duration}``.

    Enables ``{{steps.<id>.output}}`` references in later templates.
    """

    steps: Dict[str, Any] = {}
    for step_run in run.steps:
        if step_run.status != StepStatus.COMPLETED:
            continue
        output = run.context.get(step_run.step_id)
        if output is None:
            continue
        steps[step_run.step_id] = {
            "output": output,
            "status": step_run.status.value,
            "duration": step_run.duration,
        }
    return steps


def parse_step_output(raw_output: str, step: WorkflowStep) -> Any:
    """Parse ``raw_output`` according to the step's ``output.file`` hint.

    A parse failure falls back to the raw string.
    """

    if not raw_output:
        return raw_output

    hinted_file = step.output.file if step.output and step.output.file else ""
    extension = PurePosixPath(hinted_file).suffix.lower()

    try:
        if extension in (".yml", ".yaml"):
            return yaml.safe_load(raw_output)
        if extension == ".json":
            return json.loads(raw_output)
    except (yaml.YAMLError, ValueError) as exc:
        logger.warning(
            f"Failed to parse output of step {step.id} as structured data: {exc}"
        )
        return raw_output
    return raw_output


def validate_acceptance_criteria(step: WorkflowStep, raw_output: str) -> None:
    """Raise ``AcceptanceCriterionError`` for the first criterion not found."""
    if not step.acceptance_criteria:
        return

    for criterion in step.acceptance_criteria:
        if criterion not in raw_output:
            raise AcceptanceCriterionError(criterion)

    logger.info(
        f"All acceptance criteria passed step_id={step.id} count={len(step.acceptance_criteria)}"
    )


class StepExecutor:
    """Execute one workflow step against the current run context."""

    def __init__(self, store: RunStore, agent_executor: AgentExecutor) -> None:
        self._store = store
        self._agent_executor = agent_executor
        self._handlers: Dict[StepType, Optional[StepHandler]] = {
            StepType.AGENT: self._execute_agent_step,
            StepType.LOOP: None,
            StepType.GATE: None,
            StepType.PARALLEL: None,
        }

    async def execute_step(
        self,
        step: WorkflowStep,
        run: WorkflowRun,
        definition: Optional[WorkflowDefinition] = None,
    ) -> StepExecutionResult:
        """Run ``step`` and return its parsed output and artifact path.

        Args:
            step: The definition step to execute.
            run: The owning run; its context feeds template rendering.
            definition: Snapshotted definition used to look up the agent roster.

        Raises:
            UnsupportedStepType: For reserved step kinds.
            AcceptanceCriterionError: When the output misses a criterion.
            StepExecutionError: For any other step-level failure.
        """

        logger.info(
            f"Executing step run_id={run.id} step_id={step.id} type={step.type.value}"
        )
        handler = self._handlers.get(step.type)
        if handler is None:
            raise UnsupportedStepType(step.type.value)
        return await handler(step, run, definition)

    async def _execute_agent_step(
        self,
        step: WorkflowStep,
        run: WorkflowRun,
        definition: Optional[WorkflowDefinition],
    ) -> StepExecutionResult:
        if not step.agent:
            raise StepExecutionError(f"Agent step {step.id} has no agent")

        progress = await self._store.read_progress(run.id)
        context = merge_context(
            run.context,
            {"progress": progress or "", "steps": build_steps_context(run)},
        )

        prompt = render_template(step.input, context)
        unresolved = find_unresolved(prompt)
        if unresolved:
            logger.debug(f"Unresolved template expressions in step {step.id}: {unresolved}")

        session_mode = resolve_session_mode(step)
        agent_def = definition.get_agent(step.agent) if definition else None
        logger.info(
            f"Invoking agent run_id={run.id} step_id={step.id} agent={step.agent} "
            f"session={session_mode.value} model={agent_def.model if agent_def else None}"
        )

        raw = await self._agent_executor.invoke(
            step.agent, prompt, run.task_id, session_mode
        )
        raw = raw if isinstance(raw, str) else str(raw)

        parsed = parse_step_output(raw, step)
        validate_acceptance_criteria(step, raw)

        output_path = await self._store.write_step_output(run.id, step.id, raw)
        await self._store.append_progress(run.id, step.id, raw)

        return StepExecutionResult(output=parsed, output_path=output_path)
