"""Background execution of workflow jobs on threads."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

from thread_agent.errors import ThreadAgentError
from thread_agent.jobs import ProcessWorkflowJob
from thread_agent.models import RunStatus, WorkflowRun
from thread_agent.store import RunStore

logger = logging.getLogger(__name__)


def start_workflow_job(run_id: str, job: ProcessWorkflowJob) -> threading.Thread:
    """Run one workflow job on a daemon thread and return the started thread."""

    thread = threading.Thread(
        target=_run_job,
        name=f"workflow-run-{run_id}",
        daemon=True,
        kwargs={"run_id": run_id, "job": job},
    )
    thread.start()
    return thread


def _run_job(*, run_id: str, job: ProcessWorkflowJob) -> WorkflowRun | ThreadAgentError:
    try:
        return job.run(run_id)
    except ThreadAgentError as exc:
        # Already logged by the job; the run record carries the failure.
        return exc


def drain_pending_runs(
    store: RunStore,
    job: ProcessWorkflowJob,
    *,
    max_workers: int = 4,
) -> dict[str, WorkflowRun | ThreadAgentError]:
    """Execute every pending run, one run per worker at a time."""

    pending = [run.id for run in store.list(RunStatus.PENDING)]
    if not pending:
        logger.info("No pending workflow runs", extra={"component": "worker"})
        return {}

    logger.info(
        "Draining pending workflow runs",
        extra={"count": len(pending), "max_workers": max_workers, "component": "worker"},
    )
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="workflow-run") as pool:
        futures = {run_id: pool.submit(_run_job, run_id=run_id, job=job) for run_id in pending}
        return {run_id: future.result() for run_id, future in futures.items()}
