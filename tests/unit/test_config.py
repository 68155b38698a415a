"""Unit tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from thread_agent.config import ThreadAgentSettings
from thread_agent.errors import ConfigurationError


def _clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "SLACK_BOT_TOKEN",
        "SLACK_CLIENT_ID",
        "SLACK_CLIENT_SECRET",
        "SLACK_SIGNING_SECRET",
        "OPENAI_API_KEY",
        "NOTION_TOKEN",
        "NOTION_CLIENT_ID",
        "NOTION_CLIENT_SECRET",
        "LOG_LEVEL",
        "MAX_RETRIES",
    ):
        monkeypatch.delenv(f"THREAD_AGENT_{name}", raising=False)


def test_settings_loads_from_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "THREAD_AGENT_SLACK_BOT_TOKEN=xoxb-1",
                "THREAD_AGENT_OPENAI_API_KEY=sk-1",
                "THREAD_AGENT_NOTION_TOKEN=secret_1",
                "THREAD_AGENT_LOG_LEVEL=DEBUG",
                "THREAD_AGENT_MAX_RETRIES=5",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = ThreadAgentSettings()

    assert settings.slack_bot_token == "xoxb-1"
    assert settings.log_level == "DEBUG"
    assert settings.max_retries == 5
    assert settings.fully_configured is True


def test_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.chdir(tmp_path)

    settings = ThreadAgentSettings()

    assert settings.openai_model == "gpt-4o-mini"
    assert settings.default_timeout == 30
    assert settings.runs_state_file == Path("thread_agent_state") / "workflow_runs.json"
    assert settings.configuration_status() == {
        "slack": False,
        "openai": False,
        "notion": False,
        "fully_configured": False,
    }


def test_slack_oauth_triple_counts_as_configured() -> None:
    settings = ThreadAgentSettings(
        _env_file=None,
        slack_client_id="id",
        slack_client_secret="secret",
        slack_signing_secret="signing",
    )
    assert settings.slack_configured is True

    partial = ThreadAgentSettings(_env_file=None, slack_client_id="id", slack_client_secret=" ")
    assert partial.slack_configured is False


def test_require_raises_configuration_error() -> None:
    settings = ThreadAgentSettings(_env_file=None, openai_api_key=None)

    with pytest.raises(ConfigurationError) as excinfo:
        settings.require("openai")
    assert excinfo.value.code == "configuration.openai.missing"
    assert excinfo.value.retryable is False


def test_settings_are_frozen(settings: ThreadAgentSettings) -> None:
    with pytest.raises(Exception):
        settings.max_retries = 10  # type: ignore[misc]


def test_retry_policies_follow_settings(settings: ThreadAgentSettings) -> None:
    step = settings.step_retry_policy()
    job = settings.job_retry_policy()

    assert step.max_attempts == 3
    assert step.base_interval == 1.0
    assert step.jitter is False
    assert job.max_attempts == 3
    assert job.wait_seconds == 30.0
