"""Configuration for thread-agent.

Configuration is loaded once from:
- environment variables (prefixed with ``THREAD_AGENT_``)
- and a local `.env` file (if present)

The settings object is immutable and is passed explicitly to the job executor,
the pipeline builder and the collaborator factory. Nothing reads configuration
from module-level state.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from thread_agent.errors import ConfigurationError
from thread_agent.retry import JobRetryPolicy, RetryPolicy

Service = Literal["slack", "openai", "notion"]


def _present(value: str | None) -> bool:
    return bool(value and value.strip())


class ThreadAgentSettings(BaseSettings):
    """Settings for the thread-agent workflow engine.

    Environment variables (all prefixed with ``THREAD_AGENT_``):
    - SLACK_BOT_TOKEN, SLACK_SIGNING_SECRET, SLACK_CLIENT_ID, SLACK_CLIENT_SECRET
    - OPENAI_API_KEY, OPENAI_MODEL
    - NOTION_TOKEN, NOTION_CLIENT_ID, NOTION_CLIENT_SECRET, NOTION_DATABASE_ID
    - DEFAULT_TIMEOUT, MAX_RETRIES
    - LOG_LEVEL, STATE_PATH

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `ThreadAgentSettings(_env_file=path_to_env)`.
    """

    # Slack
    slack_bot_token: str | None = Field(default=None, description="Slack bot token (xoxb-...)")
    slack_signing_secret: str | None = Field(default=None)
    slack_client_id: str | None = Field(default=None)
    slack_client_secret: str | None = Field(default=None)
    slack_base_url: str = Field(
        default="https://slack.com/api",
        description="Slack Web API base URL",
    )

    # OpenAI
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model to use")
    openai_temperature: float = Field(default=0.3, ge=0.0, le=2.0)

    # Notion
    notion_token: str | None = Field(default=None, description="Notion integration token")
    notion_client_id: str | None = Field(default=None)
    notion_client_secret: str | None = Field(default=None)
    notion_base_url: str = Field(default="https://api.notion.com/v1")
    notion_version: str = Field(default="2022-06-28")
    notion_database_id: str | None = Field(
        default=None,
        description="Fallback database for templates without their own database",
    )

    # Retry budgets
    default_timeout: int = Field(default=30, gt=0, description="HTTP timeout in seconds")
    max_retries: int = Field(default=3, ge=0, description="Per-step retry budget")
    retry_base_interval: float = Field(default=1.0, ge=0.0)
    retry_max_interval: float = Field(default=30.0, ge=0.0)
    retry_jitter: bool = Field(default=True)
    job_max_attempts: int = Field(default=3, ge=1, description="Whole-run attempt budget")
    job_retry_wait_seconds: float = Field(default=30.0, ge=0.0)

    log_level: str = Field(default="INFO", description="Root logging level")
    state_path: Path = Field(
        default=Path("thread_agent_state"),
        description="Directory where run records and templates are persisted",
    )

    model_config = SettingsConfigDict(
        env_prefix="THREAD_AGENT_",
        env_file=".env",
        extra="ignore",
        frozen=True,
    )

    @property
    def runs_state_file(self) -> Path:
        """Path where workflow run records are persisted."""

        return self.state_path / "workflow_runs.json"

    @property
    def templates_state_file(self) -> Path:
        """Path where templates are loaded from."""

        return self.state_path / "templates.json"

    @property
    def slack_configured(self) -> bool:
        return (
            _present(self.slack_client_id)
            and _present(self.slack_client_secret)
            and _present(self.slack_signing_secret)
        ) or _present(self.slack_bot_token)

    @property
    def openai_configured(self) -> bool:
        return _present(self.openai_api_key)

    @property
    def notion_configured(self) -> bool:
        # Either the OAuth pair or a direct integration token.
        oauth = _present(self.notion_client_id) and _present(self.notion_client_secret)
        return oauth or _present(self.notion_token)

    @property
    def fully_configured(self) -> bool:
        return self.slack_configured and self.openai_configured and self.notion_configured

    def configuration_status(self) -> dict[str, bool]:
        return {
            "slack": self.slack_configured,
            "openai": self.openai_configured,
            "notion": self.notion_configured,
            "fully_configured": self.fully_configured,
        }

    def require(self, service: Service) -> None:
        """Raise :class:`ConfigurationError` if ``service`` is not configured."""

        configured = {
            "slack": self.slack_configured,
            "openai": self.openai_configured,
            "notion": self.notion_configured,
        }[service]
        if not configured:
            raise ConfigurationError(
                f"{service} is not configured",
                code=f"configuration.{service}.missing",
                context={"service": service},
            )

    def step_retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_retries,
            base_interval=self.retry_base_interval,
            max_interval=self.retry_max_interval,
            jitter=self.retry_jitter,
        )

    def job_retry_policy(self) -> JobRetryPolicy:
        return JobRetryPolicy(
            max_attempts=self.job_max_attempts,
            wait_seconds=self.job_retry_wait_seconds,
        )
