"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from thread_agent.config import ThreadAgentSettings
from thread_agent.models import ThreadRef, WorkflowRun
from thread_agent.pipeline import (
    Document,
    NotificationAck,
    PublishReceipt,
    ThreadContent,
    ThreadMessage,
)
from thread_agent.store import JsonRunStore


class SleepRecorder:
    """Stand-in for ``time.sleep`` that records requested waits."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings(tmp_path: Path) -> ThreadAgentSettings:
    """Provide fully configured settings that ignore the environment's .env file."""
    return ThreadAgentSettings(
        _env_file=None,
        slack_bot_token="xoxb-test",
        openai_api_key="sk-test",
        notion_token="secret_test",
        notion_database_id="db-fallback",
        retry_jitter=False,
        state_path=tmp_path / "state",
    )


@pytest.fixture
def run_store(tmp_path: Path) -> JsonRunStore:
    return JsonRunStore(tmp_path / "state" / "workflow_runs.json", lock_timeout=0.5)


def make_run(**overrides: Any) -> WorkflowRun:
    fields: dict[str, Any] = {
        "workflow_name": "slack_thread_to_notion",
        "input_data": {"channel_id": "C123", "thread_ts": "1700000000.000100"},
        "slack_channel_id": "C123",
        "slack_message_id": "1700000000.000100",
        "slack_thread_ts": "1700000000.000100",
    }
    fields.update(overrides)
    return WorkflowRun(**fields)


@pytest.fixture
def run_factory() -> Callable[..., WorkflowRun]:
    return make_run


@pytest.fixture
def workflow_run() -> WorkflowRun:
    return make_run()


@pytest.fixture
def thread_ref() -> ThreadRef:
    return ThreadRef(channel_id="C123", thread_ts="1700000000.000100")


@pytest.fixture
def thread_content(thread_ref: ThreadRef) -> ThreadContent:
    return ThreadContent(
        source=thread_ref,
        parent_message=ThreadMessage(user="U1", text="Should we ship v2 on Friday?", ts="1"),
        replies=[
            ThreadMessage(user="U2", text="Yes, after QA signs off.", ts="2"),
            ThreadMessage(user="U1", text="Agreed.", ts="3"),
        ],
    )


@pytest.fixture
def document(thread_content: ThreadContent) -> Document:
    return Document(
        thread=thread_content,
        title="Should we ship v2 on Friday?",
        body="- Ship v2 on Friday\n- QA signs off first",
        model="gpt-4o-mini",
    )


@pytest.fixture
def receipt(thread_ref: ThreadRef) -> PublishReceipt:
    return PublishReceipt(
        source=thread_ref,
        page_id="page-1",
        url="https://www.notion.so/page-1",
        database_id="db-fallback",
        title="Should we ship v2 on Friday?",
    )


@pytest.fixture
def ack(thread_ref: ThreadRef) -> NotificationAck:
    return NotificationAck(
        source=thread_ref,
        channel_id="C123",
        message_ts="1700000001.000200",
        page_id="page-1",
        document_url="https://www.notion.so/page-1",
    )
