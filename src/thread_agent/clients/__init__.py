"""Concrete Slack, OpenAI and Notion collaborators."""

from thread_agent.clients.factory import build_collaborators
from thread_agent.clients.notion import NotionClient, NotionPublisher
from thread_agent.clients.openai_transformer import OpenAITransformer
from thread_agent.clients.slack import SlackClient, SlackNotifier, SlackThreadCapture

__all__ = [
    "NotionClient",
    "NotionPublisher",
    "OpenAITransformer",
    "SlackClient",
    "SlackNotifier",
    "SlackThreadCapture",
    "build_collaborators",
]
