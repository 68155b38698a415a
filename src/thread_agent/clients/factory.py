"""Factory for wiring concrete collaborators from settings."""

from __future__ import annotations

import logging

from thread_agent.clients.notion import NotionClient, NotionPublisher
from thread_agent.clients.openai_transformer import OpenAITransformer
from thread_agent.clients.slack import SlackClient, SlackNotifier, SlackThreadCapture
from thread_agent.config import ThreadAgentSettings
from thread_agent.errors import ConfigurationError
from thread_agent.pipeline import Collaborators

logger = logging.getLogger(__name__)


def _missing(setting: str, service: str) -> ConfigurationError:
    return ConfigurationError(
        f"{setting} is required to call {service}",
        code=f"configuration.{service}.missing",
        context={"service": service, "setting": setting},
    )


def build_collaborators(settings: ThreadAgentSettings) -> Collaborators:
    """Create the Slack, OpenAI and Notion collaborators.

    Raises:
        ConfigurationError: If a service is not configured or lacks an API credential.
    """
    settings.require("slack")
    settings.require("openai")
    settings.require("notion")

    # OAuth app credentials alone are enough to count as configured, but API
    # calls need the installed tokens.
    if not settings.slack_bot_token:
        raise _missing("THREAD_AGENT_SLACK_BOT_TOKEN", "slack")
    if not settings.notion_token:
        raise _missing("THREAD_AGENT_NOTION_TOKEN", "notion")

    slack = SlackClient(
        token=settings.slack_bot_token,
        base_url=settings.slack_base_url,
        timeout=settings.default_timeout,
    )
    notion = NotionClient(
        token=settings.notion_token,
        base_url=settings.notion_base_url,
        notion_version=settings.notion_version,
        timeout=settings.default_timeout,
    )
    transformer = OpenAITransformer(
        api_key=settings.openai_api_key or "",
        model=settings.openai_model,
        temperature=settings.openai_temperature,
        timeout=settings.default_timeout,
    )

    logger.info("Collaborators created", extra={"openai_model": settings.openai_model})
    return Collaborators(
        capture=SlackThreadCapture(slack),
        transformer=transformer,
        publisher=NotionPublisher(notion),
        notifier=SlackNotifier(slack),
    )
