"""Unit tests for the workflow run status machine."""

from __future__ import annotations

import pytest

from thread_agent.errors import ValidationError
from thread_agent.models import (
    ERROR_MESSAGE_LIMIT,
    IllegalTransitionError,
    RunStatus,
    StepStatus,
    Template,
    ThreadRef,
)


def test_new_run_is_pending(run_factory) -> None:
    run = run_factory()

    assert run.status is RunStatus.PENDING
    assert run.is_active is True
    assert run.is_terminal is False
    assert run.started_at is None
    assert run.finished_at is None
    assert len(run.id) == 32


def test_running_then_completed_sets_timestamps(run_factory) -> None:
    run = run_factory()
    run.mark_running()
    started = run.started_at

    run.mark_running()
    assert run.started_at == started

    run.mark_completed({"page_id": "p1"})
    assert run.status is RunStatus.COMPLETED
    assert run.finished_at is not None
    assert run.output_data == {"page_id": "p1"}
    assert run.duration is not None


def test_terminal_runs_never_transition(run_factory) -> None:
    run = run_factory()
    run.mark_running()
    run.mark_failed("boom")

    with pytest.raises(IllegalTransitionError):
        run.mark_running()
    with pytest.raises(IllegalTransitionError):
        run.mark_completed()
    assert run.status is RunStatus.FAILED


def test_pending_cannot_complete_directly(run_factory) -> None:
    with pytest.raises(IllegalTransitionError):
        run_factory().mark_completed()


def test_pending_can_be_cancelled(run_factory) -> None:
    run = run_factory()
    run.mark_cancelled()
    assert run.status is RunStatus.CANCELLED
    assert run.finished_at is not None


def test_failed_requires_message_and_truncates(run_factory) -> None:
    run = run_factory()
    run.mark_running()
    with pytest.raises(ValueError):
        run.mark_failed("")

    run.mark_failed("x" * (ERROR_MESSAGE_LIMIT + 50))
    assert len(run.error_message or "") == ERROR_MESSAGE_LIMIT


def test_steps_are_finalized_once(run_factory) -> None:
    run = run_factory()
    run.start_step("capture_thread")
    assert run.current_step == "capture_thread"

    entry = run.finish_step("capture_thread")
    assert entry.status is StepStatus.SUCCEEDED
    assert entry.finished_at is not None

    with pytest.raises(IllegalTransitionError):
        run.finish_step("capture_thread", error="late")

    run.start_step("transform_content")
    failed = run.finish_step("transform_content", error="OpenAI down")
    assert failed.status is StepStatus.FAILED
    assert failed.error == "OpenAI down"
    assert [s.name for s in run.steps] == ["capture_thread", "transform_content"]


def test_workflow_name_is_required(run_factory) -> None:
    with pytest.raises(Exception):
        run_factory(workflow_name="")


def test_thread_ref_from_run(run_factory) -> None:
    ref = ThreadRef.from_run(run_factory())
    assert ref.channel_id == "C123"
    assert ref.thread_ts == "1700000000.000100"

    with pytest.raises(ValidationError):
        ThreadRef.from_run(
            run_factory(input_data={}, slack_channel_id=None, slack_thread_ts=None)
        )


def test_template_name_length_is_validated() -> None:
    assert Template(id="t1", name="Summary", content="Summarize").is_active is True
    with pytest.raises(Exception):
        Template(id="t1", name="ab", content="Summarize")
