"""Unit tests for the workflow orchestrator."""

from __future__ import annotations

from typing import Any
from unittest.mock import Mock

from thread_agent.errors import NotionAuthError, NotionError, SlackError, ValidationError
from thread_agent.models import RunStatus, StepStatus, WorkflowRun
from thread_agent.orchestrator import WorkflowOrchestrator
from thread_agent.pipeline import PipelineStep
from thread_agent.retry import RetryPolicy

NO_JITTER = RetryPolicy(max_attempts=3, jitter=False)


def _steps(*calls: Any) -> list[PipelineStep]:
    names = ["capture_thread", "transform_content", "publish_document"]
    return [
        PipelineStep(name, call, NO_JITTER, SlackError) for name, call in zip(names, calls, strict=False)
    ]


def test_all_steps_succeed(workflow_run: WorkflowRun, sleeper) -> None:
    first = Mock(return_value={"text": "thread"})
    second = Mock(return_value={"doc": "summary"})
    third = Mock(return_value={"page_id": "p1"})
    saved: list[RunStatus] = []
    observer = Mock()

    orchestrator = WorkflowOrchestrator(_steps(first, second, third), observer, sleep=sleeper)
    result = orchestrator.execute_workflow(workflow_run, persist=lambda r: saved.append(r.status))

    assert result.is_success
    run = result.data
    assert run.status is RunStatus.COMPLETED
    assert run.output_data == {"page_id": "p1"}
    assert [s.status for s in run.steps] == [StepStatus.SUCCEEDED] * 3
    first.assert_called_once_with(run, workflow_run.input_data)
    second.assert_called_once_with(run, {"text": "thread"})
    third.assert_called_once_with(run, {"doc": "summary"})
    assert saved[0] is RunStatus.RUNNING
    assert saved[-1] is RunStatus.COMPLETED
    assert observer.step_started.call_count == 3
    observer.run_finished.assert_called_once_with(run)
    assert sleeper.calls == []


def test_failing_step_stops_pipeline(workflow_run: WorkflowRun, sleeper) -> None:
    first = Mock(return_value="content")
    second = Mock(side_effect=NotionAuthError("invalid token"))
    third = Mock()
    steps = [
        PipelineStep("capture_thread", first, NO_JITTER, SlackError),
        PipelineStep("publish_document", second, NO_JITTER, NotionError),
        PipelineStep("notify_thread", third, NO_JITTER, SlackError),
    ]

    result = WorkflowOrchestrator(steps, sleep=sleeper).execute_workflow(workflow_run)

    assert result.is_failure
    assert isinstance(result.error, NotionError)
    assert result.error.message == "Operation failed after 0 retries: invalid token"
    assert result.metadata == {"step": "publish_document", "workflow_run_id": workflow_run.id}
    third.assert_not_called()
    assert workflow_run.status is RunStatus.FAILED
    assert workflow_run.error_message == result.error.message
    assert [s.status for s in workflow_run.steps] == [StepStatus.SUCCEEDED, StepStatus.FAILED]
    assert workflow_run.steps[-1].error == result.error.message
    assert sleeper.calls == []


def test_transient_step_failure_is_retried_in_isolation(workflow_run: WorkflowRun, sleeper) -> None:
    first = Mock(return_value="content")
    second = Mock(side_effect=[TimeoutError("slow"), "document"])

    orchestrator = WorkflowOrchestrator(_steps(first, second), sleep=sleeper)
    result = orchestrator.execute_workflow(workflow_run)

    assert result.is_success
    assert first.call_count == 1
    assert second.call_count == 2
    assert sleeper.calls == [1.0]
    assert result.data.output_data == {"result": "document"}


def test_terminal_run_is_rejected_without_side_effects(workflow_run: WorkflowRun) -> None:
    workflow_run.mark_running()
    workflow_run.mark_completed({"page_id": "p1"})
    snapshot = workflow_run.model_dump()
    call = Mock()
    persist = Mock()

    result = WorkflowOrchestrator(_steps(call)).execute_workflow(workflow_run, persist=persist)

    assert result.is_failure
    assert isinstance(result.error, ValidationError)
    assert result.error.code == "workflow.already_finished"
    assert result.metadata["skipped"] is True
    assert result.metadata["status"] == "completed"
    call.assert_not_called()
    persist.assert_not_called()
    assert workflow_run.model_dump() == snapshot
