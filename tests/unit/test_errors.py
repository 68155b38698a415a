"""Unit tests for the error taxonomy and normalizer."""

from __future__ import annotations

import json
import logging
import socket

import httpx
import openai
import pytest
import requests

from thread_agent.errors import (
    ConfigurationError,
    ConnectionFailedError,
    ErrorKind,
    NotionAuthError,
    OpenaiAuthError,
    OpenaiError,
    OpenaiRateLimitError,
    ParseError,
    RequestTimeoutError,
    SlackError,
    ThreadAgentError,
    handle_error,
    log_error,
    standardize_error,
)
from thread_agent.retry import is_retryable


def _openai_status_error(cls: type[openai.APIStatusError], status: int) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    response = httpx.Response(status, request=request)
    return cls("failed", response=response, body=None)


def test_error_defaults_and_to_dict() -> None:
    error = SlackError("Slack down", context={"channel_id": "C1"})

    assert error.kind is ErrorKind.SLACK
    assert error.code == "slack.request.failed"
    assert error.retryable is True
    assert error.to_dict() == {
        "kind": "slack",
        "code": "slack.request.failed",
        "message": "Slack down",
        "context": {"channel_id": "C1"},
        "retryable": True,
    }


def test_configuration_and_auth_errors_are_not_retryable() -> None:
    assert ConfigurationError("missing").retryable is False
    assert NotionAuthError("nope").retryable is False
    assert NotionAuthError("nope").code == "notion.auth.invalid"


def test_context_is_read_only() -> None:
    error = ThreadAgentError("x", context={"a": 1})
    with pytest.raises(TypeError):
        error.context["a"] = 2  # type: ignore[index]
    with pytest.raises(AttributeError):
        error.code = "other"  # type: ignore[misc]


def test_standardize_returns_domain_errors_unchanged() -> None:
    error = SlackError("already typed", context={"a": 1})

    standardized = standardize_error(error, context={"b": 2})

    assert standardized is error
    assert dict(standardized.context) == {"a": 1}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (json.JSONDecodeError("bad", "doc", 0), ParseError),
        (TimeoutError("slow"), RequestTimeoutError),
        (requests.Timeout("slow"), RequestTimeoutError),
        (ConnectionResetError("reset"), ConnectionFailedError),
        (socket.gaierror("dns"), ConnectionFailedError),
        (requests.ConnectionError("refused"), ConnectionFailedError),
    ],
)
def test_standardize_maps_transport_errors(raw: Exception, expected: type) -> None:
    standardized = standardize_error(raw, context={"step": "capture_thread"}, service="slack")

    assert type(standardized) is expected
    assert standardized.context["step"] == "capture_thread"
    assert standardized.context["service"] == "slack"
    assert standardized.context["original_error_class"] == type(raw).__name__


def test_standardize_maps_openai_errors() -> None:
    auth = standardize_error(_openai_status_error(openai.AuthenticationError, 401))
    rate = standardize_error(_openai_status_error(openai.RateLimitError, 429))
    server = standardize_error(_openai_status_error(openai.InternalServerError, 500))
    denied = standardize_error(_openai_status_error(openai.PermissionDeniedError, 403))

    assert isinstance(auth, OpenaiAuthError) and auth.retryable is False
    assert isinstance(rate, OpenaiRateLimitError) and rate.retryable is True
    assert type(server) is OpenaiError and server.retryable is True
    assert type(denied) is OpenaiError and denied.retryable is False


def test_standardize_unknown_error_is_generic() -> None:
    standardized = standardize_error(KeyError("missing"))

    assert type(standardized) is ThreadAgentError
    assert standardized.code == "error.unexpected"
    assert standardized.context["original_error_class"] == "KeyError"
    assert standardized.retryable is False
    assert is_retryable(standardized) is False


def test_log_error_emits_one_structured_entry(caplog: pytest.LogCaptureFixture) -> None:
    error = SlackError("Slack down", context={"workflow_run_id": "r1"})
    logger = logging.getLogger("thread_agent.test")

    with caplog.at_level(logging.ERROR, logger="thread_agent.test"):
        log_error(error, logger=logger)

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.error_class == "SlackError"
    assert record.error_code == "slack.request.failed"
    assert record.retryable is True
    assert record.context == {"workflow_run_id": "r1"}


def test_log_error_merges_caller_fields_over_error_context(caplog: pytest.LogCaptureFixture) -> None:
    error = NotionAuthError(
        "Operation failed after 0 retries: bad token",
        context={"operation": "publish_document", "attempts": 1},
    )
    logger = logging.getLogger("thread_agent.test")

    with caplog.at_level(logging.ERROR, logger="thread_agent.test"):
        log_error(
            error,
            logger=logger,
            extra={
                "operation": "workflow_execution",
                "workflow_run_id": "r1",
                "step_name": "publish_document",
                "component": "process_workflow_job",
            },
        )

    record = caplog.records[0]
    assert record.workflow_run_id == "r1"
    assert record.step_name == "publish_document"
    assert record.component == "process_workflow_job"
    assert record.context["operation"] == "workflow_execution"
    assert record.context["attempts"] == 1
    assert dict(error.context) == {"operation": "publish_document", "attempts": 1}


def test_handle_error_wraps_in_failure(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.ERROR):
        result = handle_error(TimeoutError("slow"), service="notion")

    assert result.is_failure
    assert isinstance(result.error, RequestTimeoutError)
    assert result.metadata["service"] == "notion"
