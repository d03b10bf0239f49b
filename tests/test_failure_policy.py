"""Tests for step failure policies and resuming blocked runs."""

import pytest
from conftest import make_definition
from fixtures.scripted_agents import ScriptedAgentExecutor

from kanflow import NotFoundError, RunStatus, StepStatus, ValidationError
from kanflow.errors import StepExecutionError


def _steps(on_fail=None, **review):
    review_step = {"id": "review", "agent": "reviewer", "input": "Review", **review}
    if on_fail is not None:
        review_step["on_fail"] = on_fail
    return [
        {"id": "plan", "agent": "planner", "input": "Plan"},
        {"id": "implement", "agent": "developer", "input": "Implement"},
        review_step,
        {"id": "ship", "agent": "shipper", "input": "Ship"},
    ]


async def _run_to_rest(orchestrator, workflow_id="feature-dev"):
    started = await orchestrator.start_run(workflow_id)
    return await orchestrator.wait_for_run(started.id)


@pytest.mark.asyncio
async def test_retry_exhausted_fails_run(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"retry": 2})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")] * 3})
    run = await _run_to_rest(orchestrator_factory(agents))

    review = run.get_step_run("review")
    assert len(agents.calls_for("reviewer")) == 3
    assert review.retries == 2
    assert review.status == StepStatus.FAILED
    assert run.status == RunStatus.FAILED
    assert run.error == "nope"
    assert agents.calls_for("shipper") == []


@pytest.mark.asyncio
async def test_retry_then_success(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"retry": 1})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("flaky"), "LGTM"]})
    run = await _run_to_rest(orchestrator_factory(agents))

    review = run.get_step_run("review")
    assert run.status == RunStatus.COMPLETED
    assert review.status == StepStatus.COMPLETED
    assert review.retries == 1
    assert review.error is None
    assert run.context["review"] == "LGTM"


@pytest.mark.asyncio
async def test_acceptance_criteria_failure_is_retried(orchestrator_factory, workflows):
    workflows.add(
        make_definition(steps=_steps({"retry": 1}, acceptance_criteria=["LGTM"]))
    )
    agents = ScriptedAgentExecutor({"reviewer": ["needs work", "LGTM, ship it"]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.COMPLETED
    assert run.get_step_run("review").retries == 1


@pytest.mark.asyncio
async def test_exhausted_retry_falls_through_to_skip(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"retry": 1, "escalate_to": "skip"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")] * 2})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert len(agents.calls_for("reviewer")) == 2
    assert run.get_step_run("review").status == StepStatus.SKIPPED
    assert run.get_step_run("ship").status == StepStatus.COMPLETED
    assert run.status == RunStatus.COMPLETED
    assert "review" not in run.context


@pytest.mark.asyncio
async def test_skip_continues_with_next_step(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"escalate_to": "skip"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")]})
    run = await _run_to_rest(orchestrator_factory(agents))

    review = run.get_step_run("review")
    assert review.status == StepStatus.SKIPPED
    assert review.error == "nope"
    assert run.status == RunStatus.COMPLETED
    assert len(agents.calls_for("shipper")) == 1


@pytest.mark.asyncio
async def test_redirect_retry_reruns_from_target(orchestrator_factory, workflows):
    steps = _steps({"retry_step": "implement"})
    steps[1]["input"] = "Implement, previous error: {{_retryContext.error}}"
    workflows.add(make_definition(steps=steps))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("tests fail"), "LGTM"]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.COMPLETED
    assert len(agents.calls_for("planner")) == 1
    assert len(agents.calls_for("developer")) == 2
    assert len(agents.calls_for("reviewer")) == 2
    assert agents.calls_for("developer")[1].prompt == "Implement, previous error: tests fail"
    assert run.context["_retryContext"] == {
        "failedStep": "review",
        "error": "tests fail",
        "retries": 0,
    }


@pytest.mark.asyncio
async def test_redirect_to_unknown_step_fails_run(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"retry_step": "ghost"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.FAILED
    assert run.error == "retry_step references unknown step: ghost"


@pytest.mark.asyncio
async def test_agent_escalation_is_not_implemented(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"escalate_to": "agent:fixer"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.FAILED
    assert run.error == "Agent escalation not yet implemented"


@pytest.mark.asyncio
async def test_no_policy_fails_run(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps()))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("nope")]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.FAILED
    assert run.get_step_run("ship").status == StepStatus.PENDING


@pytest.mark.asyncio
async def test_human_escalation_blocks_and_resume_uses_snapshot(
    orchestrator_factory, workflows, broadcast
):
    workflows.add(
        make_definition(
            steps=_steps({"escalate_to": "human", "escalate_message": "Needs a human review"})
        )
    )
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("unsure"), "LGTM"]})
    orchestrator = orchestrator_factory(agents)

    blocked = await _run_to_rest(orchestrator)

    assert blocked.status == RunStatus.BLOCKED
    assert blocked.error == "Needs a human review"
    assert blocked.current_step == "review"
    assert blocked.get_step_run("review").status == StepStatus.FAILED
    assert blocked.completed_at is None
    assert "blocked" in broadcast.statuses(blocked.id)
    assert orchestrator.admission.active == 0
    assert await orchestrator.list_runs(status="blocked") != []

    live_steps = _steps()
    live_steps[2]["input"] = "Live definition prompt"
    workflows.add(make_definition(steps=live_steps, version=2))

    resumed = await orchestrator.resume_run(blocked.id, {"approved": True})
    assert resumed.status == RunStatus.RUNNING
    run = await orchestrator.wait_for_run(blocked.id)

    assert run.status == RunStatus.COMPLETED
    assert run.context["approved"] is True
    assert run.workflow_version == 1
    assert agents.calls_for("reviewer")[-1].prompt == "Review"
    assert len(agents.calls_for("planner")) == 1
    assert len(agents.calls_for("developer")) == 1
    assert len(agents.calls_for("shipper")) == 1


@pytest.mark.asyncio
async def test_resume_falls_back_to_live_definition(orchestrator_factory, workflows, store):
    workflows.add(make_definition(steps=_steps({"escalate_to": "human"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("unsure")]})
    orchestrator = orchestrator_factory(agents)

    blocked = await _run_to_rest(orchestrator)
    assert blocked.error == "Step review failed"
    (store.runs_dir / blocked.id / "workflow.yml").unlink()

    await orchestrator.resume_run(blocked.id)
    run = await orchestrator.wait_for_run(blocked.id)

    assert run.status == RunStatus.COMPLETED


@pytest.mark.asyncio
async def test_resume_rejects_concurrent_resume(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"escalate_to": "human"})))
    agents = ScriptedAgentExecutor({"reviewer": [StepExecutionError("unsure")]})
    orchestrator = orchestrator_factory(agents)
    blocked = await _run_to_rest(orchestrator)

    await orchestrator.resume_run(blocked.id)
    with pytest.raises(ValidationError, match="already executing"):
        await orchestrator.resume_run(blocked.id)

    await orchestrator.wait_all()
    assert orchestrator.admission.active == 0


@pytest.mark.asyncio
async def test_resume_rejections(orchestrator_factory, workflows):
    workflows.add(make_definition())
    orchestrator = orchestrator_factory(ScriptedAgentExecutor())
    completed = await _run_to_rest(orchestrator)

    with pytest.raises(ValidationError, match="is not blocked"):
        await orchestrator.resume_run(completed.id)
    with pytest.raises(NotFoundError):
        await orchestrator.resume_run("run_1718000000000_abcdef")
    with pytest.raises(ValidationError):
        await orchestrator.resume_run("../../etc")
    assert orchestrator.admission.active == 0


@pytest.mark.asyncio
async def test_redirect_retry_repeats_while_failure_recurs(orchestrator_factory, workflows):
    workflows.add(make_definition(steps=_steps({"retry_step": "implement"})))
    failures = [StepExecutionError(f"attempt {n}") for n in range(3)]
    agents = ScriptedAgentExecutor({"reviewer": [*failures, "LGTM"]})
    run = await _run_to_rest(orchestrator_factory(agents))

    assert run.status == RunStatus.COMPLETED
    assert len(agents.calls_for("developer")) == 4
    assert len(agents.calls_for("reviewer")) == 4
    assert run.context["_retryContext"]["error"] == "attempt 2"
