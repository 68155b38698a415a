"""Run and template persistence.

Run records are kept in a single JSON file guarded by a lock. Each write goes
to a temporary file first and then replaces the target, so readers never see a
half-written file.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Protocol

from thread_agent.errors import StorageTimeoutError, ThreadAgentError
from thread_agent.models import RunStatus, Template, WorkflowRun

logger = logging.getLogger(__name__)


class DuplicateRunError(ThreadAgentError):
    """A run with the same Slack correlation key already exists."""

    default_code = "validation.duplicate_run"
    default_retryable = False


class RunStore(Protocol):
    def create(self, run: WorkflowRun) -> WorkflowRun: ...

    def get(self, run_id: str) -> WorkflowRun | None: ...

    def save(self, run: WorkflowRun) -> WorkflowRun: ...

    def list(self, status: RunStatus | None = None) -> list[WorkflowRun]: ...

    def find_by_slack_message(self, channel_id: str, message_id: str) -> WorkflowRun | None: ...


def _conflicts(existing: WorkflowRun, candidate: WorkflowRun) -> str | None:
    if existing.id == candidate.id:
        return "id"
    if not candidate.slack_channel_id or existing.slack_channel_id != candidate.slack_channel_id:
        return None
    if candidate.slack_message_id and existing.slack_message_id == candidate.slack_message_id:
        return "slack_message_id"
    if candidate.slack_thread_ts and existing.slack_thread_ts == candidate.slack_thread_ts:
        return "slack_thread_ts"
    return None


class JsonRunStore:
    """File-backed :class:`RunStore`."""

    def __init__(self, path: Path, *, lock_timeout: float = 5.0) -> None:
        self._path = path
        self._lock_timeout = lock_timeout
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StorageTimeoutError(
                f"Timed out after {self._lock_timeout}s waiting for the run store lock",
                context={"path": str(self._path)},
            )
        try:
            yield
        finally:
            self._lock.release()

    def _load_unlocked(self) -> list[WorkflowRun]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Run store {self._path} does not contain a list")
        return [WorkflowRun.model_validate(item) for item in raw]

    def _save_unlocked(self, runs: list[WorkflowRun]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = [run.model_dump(mode="json") for run in runs]
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        os.replace(tmp, self._path)

    def create(self, run: WorkflowRun) -> WorkflowRun:
        with self._locked():
            runs = self._load_unlocked()
            for existing in runs:
                field = _conflicts(existing, run)
                if field is not None:
                    raise DuplicateRunError(
                        f"A workflow run already exists for this {field}",
                        context={"existing_run_id": existing.id, "field": field},
                    )
            runs.append(run)
            self._save_unlocked(runs)
        logger.info(
            "Workflow run created",
            extra={"workflow_run_id": run.id, "component": "run_store"},
        )
        return run

    def get(self, run_id: str) -> WorkflowRun | None:
        with self._locked():
            for run in self._load_unlocked():
                if run.id == run_id:
                    return run
            return None

    def save(self, run: WorkflowRun) -> WorkflowRun:
        with self._locked():
            runs = self._load_unlocked()
            for idx, existing in enumerate(runs):
                if existing.id == run.id:
                    runs[idx] = run
                    self._save_unlocked(runs)
                    return run
            raise KeyError(run.id)

    def list(self, status: RunStatus | None = None) -> list[WorkflowRun]:  # noqa: A003
        with self._locked():
            runs = self._load_unlocked()
        if status is None:
            return runs
        return [run for run in runs if run.status is status]

    def find_by_slack_message(self, channel_id: str, message_id: str) -> WorkflowRun | None:
        with self._locked():
            for run in self._load_unlocked():
                if run.slack_channel_id == channel_id and run.slack_message_id == message_id:
                    return run
            return None


class TemplateStore:
    """Read-only template catalogue loaded from a JSON list."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def load(self) -> list[Template]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Template file {self._path} does not contain a list")
        return [Template.model_validate(item) for item in raw]

    def resolve(self, template_id: str | None) -> Template | None:
        """Return the template for ``template_id``; ``None`` when the reference dangles."""

        if template_id is None:
            return None
        for template in self.load():
            if template.id == template_id:
                return template
        logger.warning(
            "Template not found",
            extra={"template_id": template_id, "component": "template_store"},
        )
        return None
