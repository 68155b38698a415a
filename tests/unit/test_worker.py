"""Unit tests for background job execution."""

from __future__ import annotations

from unittest.mock import Mock

from thread_agent.errors import SlackError
from thread_agent.models import RunStatus
from thread_agent.store import JsonRunStore
from thread_agent.worker import drain_pending_runs, start_workflow_job


def test_start_workflow_job_runs_on_daemon_thread() -> None:
    job = Mock()

    thread = start_workflow_job("r1", job)
    thread.join(timeout=5)

    assert thread.daemon is True
    job.run.assert_called_once_with("r1")


def test_drain_pending_runs_collects_outcomes(run_store: JsonRunStore, run_factory) -> None:
    ok = run_store.create(run_factory())
    bad = run_store.create(run_factory(slack_channel_id="C2"))
    done = run_store.create(run_factory(slack_channel_id="C3"))
    done.mark_cancelled()
    run_store.save(done)

    error = SlackError("down")

    def run(run_id: str):
        if run_id == ok.id:
            return ok
        raise error

    job = Mock()
    job.run.side_effect = run

    outcomes = drain_pending_runs(run_store, job, max_workers=2)

    assert set(outcomes) == {ok.id, bad.id}
    assert outcomes[ok.id] is ok
    assert outcomes[bad.id] is error
    assert ok.status is RunStatus.PENDING


def test_drain_with_nothing_pending(run_store: JsonRunStore) -> None:
    job = Mock()
    assert drain_pending_runs(run_store, job) == {}
    job.run.assert_not_called()
