"""OpenAI-backed document transformer."""

from __future__ import annotations

import logging
from typing import Any

import openai
from openai import OpenAI

from thread_agent.clients.slack import slack_permalink
from thread_agent.errors import OpenaiError, standardize_error
from thread_agent.models import Template
from thread_agent.pipeline import Document, ThreadContent, build_title

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an expert assistant. Summarize the following Slack thread, highlighting key "
    "decisions, action items, and main discussion points. Use bullet points for clarity. "
    "Exclude greetings and unrelated chatter."
)
MAX_TOKENS = 1000


def system_prompt(template: Template | None, custom_prompt: str | None = None) -> str:
    """A non-blank ``custom_prompt`` wins over the template, which wins over the default."""

    if custom_prompt and custom_prompt.strip():
        return custom_prompt
    if template is not None and template.content.strip():
        return template.content
    return DEFAULT_SYSTEM_PROMPT


def build_user_content(content: ThreadContent) -> str:
    """Render a thread as the user message: link, original message, replies, metadata."""

    source = content.source
    parent = content.parent_message
    lines = [
        f"**Thread Link:** {slack_permalink(source.channel_id, source.thread_ts)}",
        "",
        "**Original Message:**",
        f"User: {parent.user}",
        f"Message: {parent.text}",
        f"Timestamp: {parent.ts}",
    ]

    if content.replies:
        lines += ["", "**Thread Replies:**"]
        for index, reply in enumerate(content.replies, start=1):
            lines += [
                f"{index}. User: {reply.user}",
                f"   Message: {reply.text}",
                f"   Timestamp: {reply.ts}",
            ]

    lines += [
        "",
        "**Thread Metadata:**",
        f"Channel ID: {source.channel_id}",
        f"Thread Timestamp: {source.thread_ts}",
    ]
    return "\n".join(lines)


def build_messages(
    content: ThreadContent, template: Template | None, custom_prompt: str | None = None
) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt(template, custom_prompt)},
        {"role": "user", "content": build_user_content(content)},
    ]


class OpenAITransformer:
    """Summarize a captured thread with the chat completions API."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        timeout: float = 30,
        client: Any | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("OpenAI API key is required")

        # Retries are handled by the pipeline's retry executor.
        self.client = client or OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self.model = model
        self.temperature = temperature

        logger.info(f"OpenAI transformer initialized with model: {self.model}")

    def transform(
        self,
        content: ThreadContent,
        template: Template | None,
        custom_prompt: str | None = None,
    ) -> Document:
        messages = build_messages(content, template, custom_prompt)
        logger.debug(f"Generating chat completion with {len(messages)} messages")

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=messages,  # type: ignore
                max_tokens=MAX_TOKENS,
                temperature=self.temperature,
            )
        except openai.OpenAIError as exc:
            raise standardize_error(exc, service="openai") from exc

        body = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not body:
            raise OpenaiError(
                "OpenAI returned an empty completion",
                code="openai.response.empty",
                context={"model": self.model},
            )
        logger.debug(f"Generated {len(body)} characters")

        return Document(
            thread=content,
            title=build_title(content, fallback="Thread Analysis"),
            body=body,
            model=self.model,
            template_id=template.id if template else None,
        )
