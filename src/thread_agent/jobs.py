"""Job executor: the outer supervision layer around a workflow run."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from thread_agent.errors import (
    StorageTimeoutError,
    ThreadAgentError,
    ValidationError,
    log_error,
    standardize_error,
)
from thread_agent.models import WorkflowRun
from thread_agent.observability import span
from thread_agent.orchestrator import WorkflowOrchestrator
from thread_agent.retry import JobRetryPolicy
from thread_agent.store import RunStore

logger = logging.getLogger(__name__)


class ProcessWorkflowJob:
    """Load a run by id, execute it and surface unrecoverable failures.

    ``perform`` is one attempt. ``run`` wraps it in the job-level retry loop,
    which is independent of the per-step retry budget.
    """

    def __init__(
        self,
        store: RunStore,
        orchestrator: WorkflowOrchestrator,
        retry_policy: JobRetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._retry_policy = retry_policy or JobRetryPolicy()
        self._sleep = sleep

    @property
    def retry_policy(self) -> JobRetryPolicy:
        return self._retry_policy

    def perform(self, run_id: str) -> WorkflowRun:
        context = {"operation": "workflow_execution", "workflow_run_id": run_id}
        log_fields = {**context, "component": "process_workflow_job"}
        try:
            run = self._store.get(run_id)
            if run is None:
                raise ValidationError(
                    f"Workflow run {run_id} not found",
                    code="validation.record_not_found",
                    context=context,
                    retryable=False,
                )
            with span("thread_agent.workflow.process", workflow_run_id=run_id) as fields:
                result = self._orchestrator.execute_workflow(run, persist=self._store.save)
                fields["outcome_status"] = run.status.value
        except ThreadAgentError as exc:
            log_error(exc, logger=logger, extra=log_fields)
            raise
        except Exception as exc:
            error = standardize_error(exc, context=context)
            log_error(error, logger=logger, extra=log_fields)
            raise error from exc

        if result.is_success:
            return result.data

        if result.metadata.get("skipped"):
            logger.info(
                "Workflow run already finished; nothing to do",
                extra={
                    "workflow_run_id": run_id,
                    "status": result.metadata.get("status"),
                    "component": "process_workflow_job",
                },
            )
            return run

        error = standardize_error(result.error, context=context)
        log_error(error, logger=logger, extra={**log_fields, "step_name": result.metadata.get("step")})
        raise error

    def run(self, run_id: str) -> WorkflowRun:
        attempts = self._retry_policy.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                return self.perform(run_id)
            except ThreadAgentError as exc:
                if attempt >= attempts or not self._should_retry(run_id, exc):
                    raise
                logger.warning(
                    "Re-attempting workflow job %d/%d in %.1fs",
                    attempt + 1,
                    attempts,
                    self._retry_policy.wait_seconds,
                    extra={
                        "workflow_run_id": run_id,
                        "error_code": exc.code,
                        "component": "process_workflow_job",
                    },
                )
                self._sleep(self._retry_policy.wait_seconds)
        raise AssertionError("unreachable")

    def _should_retry(self, run_id: str, error: ThreadAgentError) -> bool:
        if not self._retry_policy.should_retry(error):
            return False
        try:
            stored = self._store.get(run_id)
        except StorageTimeoutError:
            return True
        except Exception:
            # The caller re-raises ``error``; this failure must not replace it.
            logger.exception(
                "Could not reload workflow run to decide on a re-attempt",
                extra={
                    "workflow_run_id": run_id,
                    "error_code": error.code,
                    "component": "process_workflow_job",
                },
            )
            return False
        # A run the pipeline already finalized cannot be helped by another attempt.
        return stored is not None and not stored.is_terminal
