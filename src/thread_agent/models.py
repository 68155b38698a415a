"""Persisted workflow run records and templates.

A run moves through an explicit status machine. Once it reaches a terminal
status (completed, failed, cancelled) it never transitions again, and its step
log is append-only.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from thread_agent.errors import ValidationError

ERROR_MESSAGE_LIMIT = 2000


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_run_id() -> str:
    return uuid.uuid4().hex


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: frozenset[RunStatus] = frozenset(
    {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[RunStatus, set[RunStatus]] = {
    RunStatus.PENDING: {RunStatus.RUNNING, RunStatus.CANCELLED},
    # running -> running is a re-attempted job re-entering the pipeline.
    RunStatus.RUNNING: {
        RunStatus.RUNNING,
        RunStatus.COMPLETED,
        RunStatus.FAILED,
        RunStatus.CANCELLED,
    },
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELLED: set(),
}


class IllegalTransitionError(ValueError):
    pass


class StepStatus(str, Enum):
    STARTED = "started"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StepLogEntry(BaseModel):
    name: str
    status: StepStatus = StepStatus.STARTED
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None
    error: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.status is not StepStatus.STARTED


def truncate_error(message: str) -> str:
    return message[:ERROR_MESSAGE_LIMIT]


class WorkflowRun(BaseModel):
    """One execution of the thread-to-document pipeline."""

    id: str = Field(default_factory=new_run_id)
    workflow_name: str = Field(min_length=1, max_length=255)
    status: RunStatus = RunStatus.PENDING

    input_data: dict[str, Any] = Field(default_factory=dict)
    output_data: dict[str, Any] | None = None
    error_message: str | None = None
    steps: list[StepLogEntry] = Field(default_factory=list)

    slack_message_id: str | None = None
    slack_channel_id: str | None = None
    slack_thread_ts: str | None = None
    template_id: str | None = None

    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active(self) -> bool:
        return self.status in (RunStatus.PENDING, RunStatus.RUNNING)

    @property
    def duration(self) -> timedelta | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def current_step(self) -> str | None:
        """Name of the most recently started step, if any."""

        return self.steps[-1].name if self.steps else None

    def _transition(self, to: RunStatus) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self.status, set())
        if to not in allowed:
            raise IllegalTransitionError(
                f"Illegal transition: {self.status.value} -> {to.value}"
            )
        self.status = to
        if to.is_terminal:
            self.finished_at = utc_now()

    def mark_running(self) -> None:
        self._transition(RunStatus.RUNNING)
        if self.started_at is None:
            self.started_at = utc_now()

    def mark_completed(self, output_data: dict[str, Any] | None = None) -> None:
        self._transition(RunStatus.COMPLETED)
        self.output_data = output_data

    def mark_failed(self, error_message: str) -> None:
        if not error_message:
            raise ValueError("A failed run requires an error message")
        self._transition(RunStatus.FAILED)
        self.error_message = truncate_error(error_message)

    def mark_cancelled(self) -> None:
        self._transition(RunStatus.CANCELLED)

    def start_step(self, name: str) -> StepLogEntry:
        entry = StepLogEntry(name=name)
        self.steps.append(entry)
        return entry

    def finish_step(self, name: str, *, error: str | None = None) -> StepLogEntry:
        """Finalize the open entry for ``name`` as succeeded, or failed when ``error`` is set."""

        for entry in reversed(self.steps):
            if entry.name != name:
                continue
            if entry.is_finished:
                raise IllegalTransitionError(f"Step {name!r} is already finalized")
            entry.status = StepStatus.FAILED if error is not None else StepStatus.SUCCEEDED
            entry.finished_at = utc_now()
            entry.error = truncate_error(error) if error is not None else None
            return entry
        raise KeyError(name)


class TemplateStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Template(BaseModel):
    """A transformation prompt plus its destination database."""

    id: str
    name: str = Field(min_length=3, max_length=100)
    description: str | None = Field(default=None, max_length=500)
    content: str
    notion_database_id: str | None = None
    status: TemplateStatus = TemplateStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status is TemplateStatus.ACTIVE


class ThreadRef(BaseModel):
    """Identifies a Slack thread to capture."""

    model_config = ConfigDict(frozen=True)

    channel_id: str
    thread_ts: str
    message_id: str | None = None

    @classmethod
    def from_run(cls, run: WorkflowRun) -> ThreadRef:
        data = run.input_data
        channel_id = data.get("channel_id") or run.slack_channel_id
        thread_ts = data.get("thread_ts") or run.slack_thread_ts
        if not channel_id or not thread_ts:
            raise ValidationError(
                "Run has no Slack thread reference",
                code="validation.thread_ref_missing",
                context={"workflow_run_id": run.id},
            )
        return cls(
            channel_id=channel_id,
            thread_ts=thread_ts,
            message_id=data.get("message_id") or run.slack_message_id,
        )
