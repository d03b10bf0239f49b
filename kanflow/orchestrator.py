"""Run orchestrator: drives the step queue and applies failure policy."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from .admission import RunAdmission
from .agents import AgentExecutor, EchoAgentExecutor
from .broadcast import BaseBroadcast, NullBroadcast, get_broadcast
from .config import KanflowConfig, load_config
from .constants import BROADCAST_TIMEOUT, RETRY_CONTEXT_KEY
from .context import merge_context
from .definitions import WorkflowStore, get_workflow_store
from .errors import NotFoundError, ValidationError
from .executor import StepExecutor
from .models import (
    RunStatus,
    StepRun,
    StepStatus,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
    new_run_id,
    utcnow,
)
from .persistence import RunStore, get_run_store, validate_run_id
from .tasks import TaskService, get_task_service

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Owns the lifecycle of workflow runs.

    ``start_run`` and ``resume_run`` return once the initial state is
    persisted; the run loop continues on its own ``asyncio.Task``. Use
    ``wait_for_run`` to await completion.
    """

    def __init__(
        self,
        store: RunStore,
        workflows: WorkflowStore,
        agent_executor: AgentExecutor,
        tasks: Optional[TaskService] = None,
        broadcast: Optional[BaseBroadcast] = None,
        admission: Optional[RunAdmission] = None,
        step_executor: Optional[StepExecutor] = None,
        broadcast_timeout: float = BROADCAST_TIMEOUT,
    ) -> None:
        self._store = store
        self._workflows = workflows
        self._tasks = tasks
        self._broadcast = broadcast or NullBroadcast()
        self._broadcast_timeout = broadcast_timeout
        self.admission = admission or RunAdmission()
        self._step_executor = step_executor or StepExecutor(store, agent_executor)
        self._loops: Dict[str, asyncio.Task] = {}
        self._resuming: Set[str] = set()

    # ------------------------------------------------------------------
    # Public API
    async def start_run(
        self,
        workflow_id: str,
        task_id: Optional[str] = None,
        extra_context: Optional[Dict[str, Any]] = None,
    ) -> WorkflowRun:
        """Create, persist and schedule a new run of ``workflow_id``.

        Raises:
            ValidationError: If the concurrent run ceiling is reached.
            NotFoundError: If the workflow does not exist.
        """

        if not self.admission.try_acquire():
            raise ValidationError(
                f"Maximum concurrent workflow runs ({self.admission.limit}) exceeded. "
                "Wait for active runs to complete."
            )

        try:
            workflow = await self._workflows.load_workflow(workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow {workflow_id} not found")

            task = None
            if task_id and self._tasks is not None:
                task = await self._tasks.get_task(task_id)
                if task is None:
                    logger.warning(f"Task {task_id} not found; starting run without task payload")

            run = self._build_run(workflow, task_id, task, extra_context)

            await self._store.save(run)
            await self._store.snapshot_definition(run.id, workflow)
        except BaseException:
            self.admission.release()
            raise

        logger.info(
            f"Workflow run started run_id={run.id} workflow_id={workflow.id} "
            f"version={workflow.version}"
        )
        snapshot = run.model_copy(deep=True)
        self._schedule(run, workflow)
        return snapshot

    async def resume_run(
        self, run_id: str, resume_context: Optional[Dict[str, Any]] = None
    ) -> WorkflowRun:
        """Resume a ``blocked`` run from its current queue state.

        Raises:
            ValidationError: Malformed id, run not blocked, a loop already
                active for the run, or the concurrent run ceiling reached.
            NotFoundError: Unknown run, or no definition to resume against.
        """

        run_id = validate_run_id(run_id)
        if run_id in self._loops or run_id in self._resuming:
            raise ValidationError(f"Run {run_id} is already executing")

        self._resuming.add(run_id)
        try:
            run = await self._store.get(run_id)
            if run is None:
                raise NotFoundError(f"Run {run_id} not found")
            if run.status != RunStatus.BLOCKED:
                raise ValidationError(
                    f"Run {run_id} is not blocked (status: {run.status.value})"
                )

            workflow = await self._store.load_definition_snapshot(run_id)
            if workflow is None:
                logger.warning(f"No definition snapshot for run {run_id}; using live definition")
                workflow = await self._workflows.load_workflow(run.workflow_id)
            if workflow is None:
                raise NotFoundError(f"Workflow {run.workflow_id} not found")

            if not self.admission.try_acquire():
                raise ValidationError(
                    f"Maximum concurrent workflow runs ({self.admission.limit}) exceeded. "
                    "Wait for active runs to complete."
                )

            try:
                run.context = merge_context(run.context, resume_context)
                run.status = RunStatus.RUNNING
                await self._store.save(run)
            except BaseException:
                self.admission.release()
                raise

            logger.info(f"Resuming workflow run run_id={run_id}")
            snapshot = run.model_copy(deep=True)
            self._schedule(run, workflow)
        finally:
            self._resuming.discard(run_id)
        return snapshot

    async def get_run(self, run_id: str) -> Optional[WorkflowRun]:
        """Return the persisted run, ``None`` for an unknown well-formed id."""
        return await self._store.get(run_id)

    async def list_runs(
        self,
        task_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[WorkflowRun]:
        return await self._store.list(
            task_id=task_id, workflow_id=workflow_id, status=status
        )

    def is_running(self, run_id: str) -> bool:
        return run_id in self._loops

    async def wait_for_run(self, run_id: str) -> Optional[WorkflowRun]:
        """Wait until the loop for ``run_id`` returns, then read it back."""
        task = self._loops.get(run_id)
        if task is not None:
            await asyncio.shield(task)
        return await self._store.get(run_id)

    async def wait_all(self) -> None:
        """Wait for every active run loop."""
        while self._loops:
            await asyncio.gather(*list(self._loops.values()), return_exceptions=True)

    # ------------------------------------------------------------------
    # Run construction
    def _build_run(
        self,
        workflow: WorkflowDefinition,
        task_id: Optional[str],
        task: Optional[Dict[str, Any]],
        extra_context: Optional[Dict[str, Any]],
    ) -> WorkflowRun:
        run_id = new_run_id()
        now = utcnow()
        context = merge_context(
            workflow.variables,
            {"task": task} if task else None,
            extra_context,
            {
                "workflow": {"id": workflow.id, "version": workflow.version},
                "run": {"id": run_id, "startedAt": now.isoformat()},
            },
        )
        return WorkflowRun(
            id=run_id,
            workflow_id=workflow.id,
            workflow_version=workflow.version,
            task_id=task_id,
            status=RunStatus.RUNNING,
            current_step=workflow.steps[0].id,
            context=context,
            started_at=now,
            steps=[StepRun(step_id=step.id) for step in workflow.steps],
        )

    @staticmethod
    def _build_step_queue(run: WorkflowRun, workflow: WorkflowDefinition) -> Deque[str]:
        queue: Deque[str] = deque()
        for step in workflow.steps:
            state = run.get_step_run(step.id)
            if state is None or not state.is_done:
                queue.append(step.id)
        return queue

    # ------------------------------------------------------------------
    # Execution loop
    def _schedule(self, run: WorkflowRun, workflow: WorkflowDefinition) -> None:
        task = asyncio.create_task(self._execute_run(run, workflow), name=f"kanflow:{run.id}")
        self._loops[run.id] = task

    async def _execute_run(self, run: WorkflowRun, workflow: WorkflowDefinition) -> None:
        """Drive the step queue. Never raises; the admission slot is released on exit."""
        try:
            queue = self._build_step_queue(run, workflow)

            while queue:
                step_id = queue.popleft()
                step = workflow.get_step(step_id)
                step_run = run.get_step_run(step_id)
                if step is None or step_run is None:
                    raise NotFoundError(f"Step {step_id} not found in workflow {workflow.id}")

                # A redirect retry may have re-queued a step that is already done.
                if step_run.is_done:
                    continue

                run.current_step = step.id
                await self._store.save(run)
                await self._notify(run)

                step_run.status = StepStatus.RUNNING
                step_run.started_at = utcnow()
                await self._store.save(run)

                try:
                    result = await self._step_executor.execute_step(step, run, workflow)
                except Exception as err:
                    step_run.status = StepStatus.FAILED
                    step_run.error = str(err) or type(err).__name__
                    step_run.completed_at = utcnow()
                    await self._store.save(run)
                    await self._notify(run)

                    logger.warning(
                        f"Step failed run_id={run.id} step_id={step.id}: {step_run.error}"
                    )
                    handled = await self._handle_step_failure(step, step_run, queue, workflow, run)
                    if not handled:
                        raise

                    if run.status == RunStatus.BLOCKED:
                        logger.info(
                            f"Workflow run blocked, awaiting resume run_id={run.id} step_id={step.id}"
                        )
                        return
                    continue

                step_run.status = StepStatus.COMPLETED
                step_run.completed_at = utcnow()
                step_run.duration = int(
                    (step_run.completed_at - step_run.started_at).total_seconds()
                )
                step_run.output = result.output_path
                step_run.error = None
                run.context = merge_context(run.context, {step.id: result.output})

                await self._store.save(run)
                await self._notify(run)

            run.status = RunStatus.COMPLETED
            run.completed_at = utcnow()
            await self._store.save(run)
            await self._notify(run)
            logger.info(f"Workflow run completed run_id={run.id} workflow_id={run.workflow_id}")
        except Exception as err:
            await self._fail_run(run, err)
        finally:
            self._loops.pop(run.id, None)
            self.admission.release()

    async def _fail_run(self, run: WorkflowRun, err: Exception) -> None:
        run.status = RunStatus.FAILED
        run.error = str(err) or type(err).__name__
        run.completed_at = utcnow()
        logger.error(f"Workflow run failed run_id={run.id}: {run.error}")
        try:
            await self._store.save(run)
        except Exception as exc:
            logger.error(f"Failed to persist failed state run_id={run.id}: {exc}")
            return
        await self._notify(run)

    async def _handle_step_failure(
        self,
        step: WorkflowStep,
        step_run: StepRun,
        queue: Deque[str],
        workflow: WorkflowDefinition,
        run: WorkflowRun,
    ) -> bool:
        """Apply the step's ``on_fail`` policy.

        Returns ``True`` when the failure was handled (retry queued, run
        blocked or step skipped) and ``False`` when the run must fail.
        """

        policy = step.on_fail
        if policy is None:
            return False

        if policy.retry and step_run.retries < policy.retry:
            step_run.retries += 1
            step_run.status = StepStatus.PENDING
            step_run.error = None
            queue.appendleft(step.id)

            await self._store.save(run)
            logger.info(
                f"Retrying step run_id={run.id} step_id={step.id} "
                f"attempt={step_run.retries}/{policy.retry}"
            )
            return True

        if policy.retry_step:
            # Redirects are unbounded: a step that keeps failing keeps
            # routing back here while the run holds its admission slot.
            target_index = workflow.step_index(policy.retry_step)
            if target_index < 0:
                raise NotFoundError(
                    f"retry_step references unknown step: {policy.retry_step}"
                )

            # Record the failure before the target's state is reset.
            run.context[RETRY_CONTEXT_KEY] = {
                "failedStep": step.id,
                "error": step_run.error,
                "retries": step_run.retries,
            }

            target_run = run.get_step_run(policy.retry_step)
            target_run.status = StepStatus.PENDING
            target_run.retries = 0
            target_run.error = None

            queue.clear()
            queue.extend(s.id for s in workflow.steps[target_index:])

            await self._store.save(run)
            logger.info(
                f"Routing to retry step run_id={run.id} failed_step={step.id} "
                f"retry_step={policy.retry_step}"
            )
            return True

        escalate_to = policy.escalate_to or ""
        if escalate_to == "human":
            run.status = RunStatus.BLOCKED
            run.error = policy.escalate_message or f"Step {step.id} failed"
            await self._store.save(run)
            await self._notify(run)
            logger.warning(f"Workflow blocked run_id={run.id} step_id={step.id}")
            return True

        if escalate_to == "skip":
            step_run.status = StepStatus.SKIPPED
            await self._store.save(run)
            logger.info(f"Skipping failed step run_id={run.id} step_id={step.id}")
            return True

        if escalate_to.startswith("agent:"):
            raise NotImplementedError("Agent escalation not yet implemented")

        return False

    async def _notify(self, run: WorkflowRun) -> None:
        """Publish ``run`` within ``broadcast_timeout``; failures are logged and swallowed."""
        try:
            await asyncio.wait_for(self._broadcast.publish(run), self._broadcast_timeout)
        except asyncio.TimeoutError:
            logger.error(
                f"Broadcast timed out after {self._broadcast_timeout}s run_id={run.id}"
            )
        except Exception as exc:
            logger.error(f"Broadcast failed run_id={run.id}: {exc}")


def build_orchestrator(
    config: Optional[KanflowConfig] = None,
    agent_executor: Optional[AgentExecutor] = None,
) -> RunOrchestrator:
    """Assemble an orchestrator from configuration.

    Falls back to the echo executor when no agent executor is supplied.
    """

    config = config or load_config()
    return RunOrchestrator(
        store=get_run_store(config=config),
        workflows=get_workflow_store(config=config),
        agent_executor=agent_executor or EchoAgentExecutor(),
        tasks=get_task_service(config),
        broadcast=get_broadcast(config=config),
        admission=RunAdmission(config.max_concurrent_runs),
        broadcast_timeout=config.broadcast.timeout,
    )
