"""The fixed thread-to-document pipeline.

Collaborators are exposed to the orchestrator only as four narrow
capabilities (capture, transform, publish, notify). ``build_pipeline`` binds
concrete collaborators, settings and the template catalogue into the ordered
list of :class:`PipelineStep` values the orchestrator executes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from thread_agent.config import ThreadAgentSettings
from thread_agent.errors import (
    ConfigurationError,
    NotionError,
    OpenaiError,
    SlackError,
    ThreadAgentError,
    ValidationError,
)
from thread_agent.models import Template, ThreadRef, WorkflowRun
from thread_agent.retry import RetryPolicy
from thread_agent.store import TemplateStore

logger = logging.getLogger(__name__)

TITLE_LIMIT = 100


class ThreadMessage(BaseModel):
    user: str | None = None
    text: str = ""
    ts: str


class ThreadContent(BaseModel):
    source: ThreadRef
    parent_message: ThreadMessage
    replies: list[ThreadMessage] = Field(default_factory=list)

    @property
    def participants(self) -> list[str]:
        seen: list[str] = []
        for message in [self.parent_message, *self.replies]:
            if message.user and message.user not in seen:
                seen.append(message.user)
        return seen

    @property
    def message_count(self) -> int:
        return len(self.replies) + 1


class CapturedThread(BaseModel):
    """Thread messages supplied with the run as ``input_data["thread_data"]``."""

    parent_message: ThreadMessage
    replies: list[ThreadMessage]


def thread_from_input(run: WorkflowRun) -> ThreadContent | None:
    """Return the pre-captured thread carried by ``run``, or ``None`` when it must be fetched.

    Raises a non-retryable :class:`ValidationError` when the payload is present
    but malformed.
    """

    raw = run.input_data.get("thread_data")
    if raw is None:
        return None
    try:
        captured = CapturedThread.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError(
            f"Invalid thread_data in workflow input: {exc.error_count()} error(s)",
            code="validation.thread_data_invalid",
            context={
                "workflow_run_id": run.id,
                "errors": [
                    {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
                    for err in exc.errors()
                ],
            },
        ) from exc
    return ThreadContent(
        source=ThreadRef.from_run(run),
        parent_message=captured.parent_message,
        replies=captured.replies,
    )


class Document(BaseModel):
    """AI-transformed thread ready to be published."""

    thread: ThreadContent
    title: str
    body: str
    model: str | None = None
    template_id: str | None = None
    workflow_run_id: str | None = None


class PublishReceipt(BaseModel):
    source: ThreadRef
    page_id: str
    url: str
    database_id: str
    title: str | None = None


class NotificationAck(BaseModel):
    source: ThreadRef
    channel_id: str
    message_ts: str
    page_id: str
    document_url: str


class ThreadCapture(Protocol):
    def capture(self, thread_ref: ThreadRef) -> ThreadContent: ...


class DocumentTransformer(Protocol):
    def transform(
        self,
        content: ThreadContent,
        template: Template | None,
        custom_prompt: str | None = None,
    ) -> Document: ...


class DocumentPublisher(Protocol):
    def publish(self, document: Document, destination: str) -> PublishReceipt: ...


class Notifier(Protocol):
    def notify(self, receipt: PublishReceipt) -> NotificationAck: ...


@dataclass(frozen=True, slots=True)
class Collaborators:
    capture: ThreadCapture
    transformer: DocumentTransformer
    publisher: DocumentPublisher
    notifier: Notifier


StepCall = Callable[[WorkflowRun, Any], Any]


@dataclass(frozen=True, slots=True)
class PipelineStep:
    """One named, independently retried stage of the pipeline.

    ``call`` receives the run and the previous step's output (the run's
    ``input_data`` for the first step).
    """

    name: str
    call: StepCall
    retry_policy: RetryPolicy = RetryPolicy()
    final_error: type[ThreadAgentError] = ThreadAgentError


def build_title(content: ThreadContent, fallback: str) -> str:
    """Parent message text with whitespace collapsed, cut to ``TITLE_LIMIT`` characters."""

    title = re.sub(r"\s+", " ", content.parent_message.text).strip()
    if len(title) > TITLE_LIMIT:
        title = title[: TITLE_LIMIT - 3] + "..."
    return title or fallback


def resolve_destination(
    template: Template | None, settings: ThreadAgentSettings
) -> str:
    """Template database first, then the configured fallback database."""

    if template is not None and template.notion_database_id:
        return template.notion_database_id
    if settings.notion_database_id:
        return settings.notion_database_id
    raise ConfigurationError(
        "No Notion database configured for this run",
        code="configuration.notion.database_missing",
        context={"template_id": template.id if template else None},
    )


def build_pipeline(
    collaborators: Collaborators,
    settings: ThreadAgentSettings,
    templates: TemplateStore,
) -> list[PipelineStep]:
    policy = settings.step_retry_policy()

    def capture_thread(run: WorkflowRun, _input: Any) -> ThreadContent:
        content = thread_from_input(run)
        if content is not None:
            logger.info(
                "Using thread data supplied with the run",
                extra={
                    "workflow_run_id": run.id,
                    "step_name": "capture_thread",
                    "component": "pipeline",
                },
            )
            return content
        return collaborators.capture.capture(ThreadRef.from_run(run))

    def transform_content(run: WorkflowRun, content: ThreadContent) -> Document:
        document = collaborators.transformer.transform(
            content,
            templates.resolve(run.template_id),
            custom_prompt=run.input_data.get("custom_prompt"),
        )
        return document.model_copy(
            update={"workflow_run_id": run.id, "template_id": run.template_id}
        )

    def publish_document(run: WorkflowRun, document: Document) -> PublishReceipt:
        destination = resolve_destination(templates.resolve(run.template_id), settings)
        return collaborators.publisher.publish(document, destination)

    def notify_thread(run: WorkflowRun, receipt: PublishReceipt) -> NotificationAck:
        return collaborators.notifier.notify(receipt)

    return [
        PipelineStep("capture_thread", capture_thread, policy, SlackError),
        PipelineStep("transform_content", transform_content, policy, OpenaiError),
        PipelineStep("publish_document", publish_document, policy, NotionError),
        PipelineStep("notify_thread", notify_thread, policy, SlackError),
    ]
