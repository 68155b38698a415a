"""Error taxonomy and normalization.

Every failure that leaves a collaborator or the job boundary is expressed as a
:class:`ThreadAgentError`. Errors belong to a closed set of kinds
(:class:`ErrorKind`) and carry a stable ``code``, a read-only ``context``
mapping and a ``retryable`` flag.

``standardize_error`` converts arbitrary raised exceptions into this taxonomy,
and ``log_error`` is the one place failure detail is written to the log.
"""

from __future__ import annotations

import json
import logging
import socket
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

import openai
import requests

from thread_agent.logging import CONTEXT_KEYS
from thread_agent.result import Failure, Result


class ErrorKind(str, Enum):
    CONFIGURATION = "configuration"
    SLACK = "slack"
    OPENAI = "openai"
    NOTION = "notion"
    GENERIC = "generic"


class ThreadAgentError(Exception):
    """Base error for thread-agent.

    Instances are immutable: ``message``, ``code``, ``context`` and
    ``retryable`` are fixed at construction.
    """

    kind: ErrorKind = ErrorKind.GENERIC
    default_code: str = "error.unknown"
    default_retryable: bool = True

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        context: Mapping[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self._message = message
        self._code = code or self.default_code
        self._context: Mapping[str, Any] = MappingProxyType(dict(context or {}))
        self._retryable = self.default_retryable if retryable is None else retryable

    @property
    def message(self) -> str:
        return self._message

    @property
    def code(self) -> str:
        return self._code

    @property
    def context(self) -> Mapping[str, Any]:
        return self._context

    @property
    def retryable(self) -> bool:
        return self._retryable

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "context": dict(self.context),
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, code={self.code!r})"


class ConfigurationError(ThreadAgentError):
    """Missing or invalid setup. Never retried."""

    kind = ErrorKind.CONFIGURATION
    default_code = "configuration.invalid"
    default_retryable = False


class SlackError(ThreadAgentError):
    kind = ErrorKind.SLACK
    default_code = "slack.request.failed"


class SlackAuthError(SlackError):
    default_code = "slack.auth.invalid"
    default_retryable = False


class SlackRateLimitError(SlackError):
    default_code = "slack.rate_limit.exceeded"


class OpenaiError(ThreadAgentError):
    kind = ErrorKind.OPENAI
    default_code = "openai.request.failed"


class OpenaiAuthError(OpenaiError):
    default_code = "openai.auth.invalid"
    default_retryable = False


class OpenaiRateLimitError(OpenaiError):
    default_code = "openai.rate_limit.exceeded"


class NotionError(ThreadAgentError):
    kind = ErrorKind.NOTION
    default_code = "notion.request.failed"


class NotionAuthError(NotionError):
    default_code = "notion.auth.invalid"
    default_retryable = False


class NotionRateLimitError(NotionError):
    default_code = "notion.rate_limit.exceeded"


class ValidationError(ThreadAgentError):
    default_code = "validation.failed"
    default_retryable = False


class ParseError(ThreadAgentError):
    default_code = "parse.json.failed"
    default_retryable = False


class RequestTimeoutError(ThreadAgentError):
    default_code = "request.timeout"


class ConnectionFailedError(ThreadAgentError):
    default_code = "connection.failed"


class StorageTimeoutError(ThreadAgentError):
    """The run store could not be reached in time."""

    default_code = "storage.timeout"


def original_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def standardize_error(
    error: BaseException,
    context: Mapping[str, Any] | None = None,
    service: str | None = None,
) -> ThreadAgentError:
    """Convert ``error`` into a :class:`ThreadAgentError`.

    Errors already in the taxonomy are returned unchanged and keep the context
    they were raised with. ``context`` is not merged into them.
    """

    if isinstance(error, ThreadAgentError):
        return error

    message = original_message(error)
    enriched: dict[str, Any] = {
        **(context or {}),
        "original_error_class": type(error).__name__,
        "original_message": message,
    }
    if service is not None:
        enriched["service"] = service

    if isinstance(error, json.JSONDecodeError):
        return ParseError(f"Failed to parse JSON response: {message}", context=enriched)

    if isinstance(error, (TimeoutError, requests.Timeout, openai.APITimeoutError)):
        return RequestTimeoutError(f"Request timed out: {message}", context=enriched)

    if isinstance(
        error,
        (ConnectionError, socket.gaierror, requests.ConnectionError, openai.APIConnectionError),
    ):
        return ConnectionFailedError(f"Connection failed: {message}", context=enriched)

    if isinstance(error, openai.AuthenticationError):
        return OpenaiAuthError(f"OpenAI authentication failed: {message}", context=enriched)
    if isinstance(error, openai.RateLimitError):
        return OpenaiRateLimitError(f"OpenAI rate limit exceeded: {message}", context=enriched)
    if isinstance(error, openai.OpenAIError):
        status = getattr(error, "status_code", None)
        return OpenaiError(
            f"OpenAI API error: {message}",
            context=enriched,
            retryable=status is None or status == 429 or status >= 500,
        )

    return ThreadAgentError(
        message, code="error.unexpected", context=enriched, retryable=False
    )


def log_error(
    error: ThreadAgentError,
    logger: logging.Logger | None = None,
    level: int = logging.ERROR,
    extra: Mapping[str, Any] | None = None,
) -> None:
    """Emit ``error`` and its context as one structured log entry.

    ``extra`` is merged over the error's own context, so a caller can attach
    the run and step it knows about without rebuilding the error. The log
    line keys (``workflow_run_id``, ``step_name``, ``component``) are also
    set on the record itself.
    """

    context = {**error.context, **(extra or {})}
    (logger or logging.getLogger(__name__)).log(
        level,
        error.message,
        extra={
            **{key: context[key] for key in CONTEXT_KEYS if key in context},
            "error_class": type(error).__name__,
            "error_code": error.code,
            "error_message": error.message,
            "retryable": error.retryable,
            "context": context,
        },
    )


def to_result(
    error: BaseException,
    context: Mapping[str, Any] | None = None,
    service: str | None = None,
) -> Failure[Any]:
    return Result.failure(
        standardize_error(error, context=context, service=service),
        metadata={"service": service} if service else None,
    )


def handle_error(
    error: BaseException,
    context: Mapping[str, Any] | None = None,
    service: str | None = None,
    logger: logging.Logger | None = None,
) -> Failure[Any]:
    """Standardize, log and wrap ``error`` in a failure result."""

    standardized = standardize_error(error, context=context, service=service)
    log_error(standardized, logger=logger)
    return to_result(standardized, service=service)
