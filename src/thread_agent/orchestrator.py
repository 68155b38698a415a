"""Workflow orchestrator.

Drives a run through its pipeline steps in order, retrying each step in
isolation and recording progress on the run record.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel

from thread_agent.errors import ValidationError, standardize_error
from thread_agent.models import WorkflowRun
from thread_agent.observability import LoggingObserver, WorkflowObserver
from thread_agent.pipeline import PipelineStep
from thread_agent.result import Result
from thread_agent.retry import RetryExecutor

logger = logging.getLogger(__name__)

Persist = Callable[[WorkflowRun], Any]


def _to_output(value: Any) -> dict[str, Any]:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return value
    return {"result": value}


class WorkflowOrchestrator:
    """Execute a fixed, linear sequence of steps against a run."""

    def __init__(
        self,
        steps: Sequence[PipelineStep],
        observer: WorkflowObserver | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not steps:
            raise ValueError("A workflow needs at least one step")
        self._steps = tuple(steps)
        self._observer = observer or LoggingObserver()
        self._sleep = sleep

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self._steps]

    def _executor(self, step: PipelineStep) -> RetryExecutor:
        return RetryExecutor(step.retry_policy, final_error=step.final_error, sleep=self._sleep)

    def execute_workflow(
        self, run: WorkflowRun, persist: Persist | None = None
    ) -> Result[WorkflowRun]:
        save: Persist = persist or (lambda _run: None)

        if run.is_terminal:
            logger.info(
                "Workflow run already finished; skipping",
                extra={
                    "workflow_run_id": run.id,
                    "status": run.status.value,
                    "component": "workflow_orchestrator",
                },
            )
            return Result.failure(
                ValidationError(
                    f"Workflow run {run.id} is already {run.status.value}",
                    code="workflow.already_finished",
                    context={"workflow_run_id": run.id, "status": run.status.value},
                ),
                metadata={"skipped": True, "status": run.status.value},
            )

        run.mark_running()
        save(run)
        logger.info(
            "Workflow execution started",
            extra={
                "workflow_run_id": run.id,
                "workflow_name": run.workflow_name,
                "component": "workflow_orchestrator",
            },
        )

        carried: Any = run.input_data
        for step in self._steps:
            run.start_step(step.name)
            self._observer.step_started(run, step.name)

            def invoke(step: PipelineStep = step, previous: Any = carried) -> Any:
                return step.call(run, previous)

            try:
                carried = self._executor(step).retry_with(invoke, context=step.name)
            except Exception as exc:
                error = standardize_error(exc, context={"step": step.name, "workflow_run_id": run.id})
                run.finish_step(step.name, error=error.message)
                run.mark_failed(error.message)
                save(run)
                self._observer.step_finished(run, step.name, error)
                self._observer.run_finished(run)
                return Result.failure(
                    error, metadata={"step": step.name, "workflow_run_id": run.id}
                )

            run.finish_step(step.name)
            save(run)
            self._observer.step_finished(run, step.name)

        run.mark_completed(_to_output(carried))
        save(run)
        self._observer.run_finished(run)
        return Result.success(run)
