"""Observer hooks and timing spans for workflow execution."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Protocol

from thread_agent.errors import ThreadAgentError
from thread_agent.models import WorkflowRun

logger = logging.getLogger(__name__)


class WorkflowObserver(Protocol):
    def step_started(self, run: WorkflowRun, step_name: str) -> None: ...

    def step_finished(
        self, run: WorkflowRun, step_name: str, error: ThreadAgentError | None = None
    ) -> None: ...

    def run_finished(self, run: WorkflowRun) -> None: ...


class LoggingObserver:
    """Default observer: one structured log line per event."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def step_started(self, run: WorkflowRun, step_name: str) -> None:
        self._log.info(
            "Step started",
            extra={
                "workflow_run_id": run.id,
                "step_name": step_name,
                "component": "workflow_orchestrator",
            },
        )

    def step_finished(
        self, run: WorkflowRun, step_name: str, error: ThreadAgentError | None = None
    ) -> None:
        extra: dict[str, Any] = {
            "workflow_run_id": run.id,
            "step_name": step_name,
            "component": "workflow_orchestrator",
            "outcome": "failed" if error is not None else "succeeded",
        }
        if error is not None:
            extra["error_code"] = error.code
            self._log.warning("Step failed", extra=extra)
        else:
            self._log.info("Step succeeded", extra=extra)

    def run_finished(self, run: WorkflowRun) -> None:
        duration = run.duration
        self._log.info(
            "Workflow run finished",
            extra={
                "workflow_run_id": run.id,
                "status": run.status.value,
                "duration_ms": int(duration.total_seconds() * 1000) if duration else None,
                "component": "workflow_orchestrator",
            },
        )


@contextmanager
def span(name: str, **payload: Any) -> Iterator[dict[str, Any]]:
    """Log the start and end of a unit of work with its duration.

    The yielded dict may be updated by the caller; its contents are added to
    the closing log line.
    """

    fields: dict[str, Any] = dict(payload)
    logger.debug("%s started", name, extra={"span": name, **fields})
    started = time.monotonic()
    outcome = "ok"
    try:
        yield fields
    except BaseException:
        outcome = "error"
        raise
    finally:
        logger.info(
            "%s finished",
            name,
            extra={
                "span": name,
                **fields,
                "outcome": outcome,
                "duration_ms": round((time.monotonic() - started) * 1000, 3),
            },
        )
