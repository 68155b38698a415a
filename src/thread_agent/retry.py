"""Retry policies for the two retry layers.

``RetryPolicy`` + ``RetryExecutor`` wrap a single collaborator call with
bounded exponential backoff. ``JobRetryPolicy`` describes when the job layer
may re-attempt a whole run. The two budgets are independent.
"""

from __future__ import annotations

import logging
import random
import socket
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeVar

import openai
import requests

from thread_agent.errors import (
    ConnectionFailedError,
    RequestTimeoutError,
    StorageTimeoutError,
    ThreadAgentError,
    original_message,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

JITTER_RATIO = 0.25

# Transport-level faults that are worth another attempt.
NETWORK_ERRORS: tuple[type[BaseException], ...] = (
    TimeoutError,
    ConnectionError,
    socket.gaierror,
    requests.Timeout,
    requests.ConnectionError,
    openai.APIConnectionError,
)

JOB_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    *NETWORK_ERRORS,
    RequestTimeoutError,
    ConnectionFailedError,
    StorageTimeoutError,
)


def _http_status(error: BaseException) -> int | None:
    if isinstance(error, openai.APIStatusError):
        return error.status_code
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code
    return None


def is_retryable(error: BaseException) -> bool:
    """Classify ``error`` as transient (True) or terminal (False).

    Domain errors carry their own verdict. HTTP-class errors are retryable for
    429 and 5xx only, so 401/403 never burn the backoff budget. Everything not
    on the network allow-list is terminal.
    """

    if isinstance(error, ThreadAgentError):
        return error.retryable

    status = _http_status(error)
    if status is not None:
        return status == 429 or 500 <= status < 600

    return isinstance(error, NETWORK_ERRORS)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Per-call retry configuration."""

    max_attempts: int = 3
    base_interval: float = 1.0
    backoff_factor: float = 2.0
    max_interval: float = 30.0
    jitter: bool = True
    classifier: Callable[[BaseException], bool] = is_retryable

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        if self.base_interval < 0 or self.max_interval < 0:
            raise ValueError("intervals must be >= 0")


def compute_backoff(retry_index: int, policy: RetryPolicy) -> float:
    """Deterministic wait before retry number ``retry_index`` (0-based), without jitter."""

    interval = policy.base_interval * (policy.backoff_factor**retry_index)
    return min(interval, policy.max_interval)


class RetryExecutor:
    """Run a zero-argument operation under a :class:`RetryPolicy`.

    When the operation cannot succeed, ``final_error`` is raised with the
    message ``"Operation failed after {N} retries: {original}"`` and chained
    from the last underlying exception.
    """

    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        final_error: type[ThreadAgentError] = ThreadAgentError,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._policy = policy or RetryPolicy()
        self._final_error = final_error
        self._sleep = sleep

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def retry_with(self, operation: Callable[[], T], *, context: str | None = None) -> T:
        retries = 0
        while True:
            try:
                return operation()
            except Exception as exc:
                retryable = self._policy.classifier(exc)
                if not retryable or retries >= self._policy.max_attempts:
                    raise self._build_final_error(
                        exc, retries=retries, retryable=retryable, context=context
                    ) from exc

                interval = self._next_interval(retries)
                logger.warning(
                    "Retry attempt %d/%d after %s: %s",
                    retries + 1,
                    self._policy.max_attempts,
                    type(exc).__name__,
                    original_message(exc),
                    extra={
                        "operation": context,
                        "sleep_seconds": round(interval, 3),
                        "component": "retry_executor",
                    },
                )
                self._sleep(interval)
                retries += 1

    def _next_interval(self, retry_index: int) -> float:
        interval = compute_backoff(retry_index, self._policy)
        if self._policy.jitter:
            interval += random.uniform(0, interval * JITTER_RATIO)
        return interval

    def _build_final_error(
        self,
        error: Exception,
        *,
        retries: int,
        retryable: bool,
        context: str | None,
    ) -> ThreadAgentError:
        details: dict[str, Any] = {}
        code: str | None = None
        message = original_message(error)
        if isinstance(error, ThreadAgentError):
            details.update(error.context)
            code = error.code
            message = error.message

        details.update(
            {
                "operation": context,
                "attempts": retries + 1,
                "original_error_class": type(error).__name__,
            }
        )
        return self._final_error(
            f"Operation failed after {retries} retries: {message}",
            code=code,
            context=details,
            retryable=retryable,
        )


def _error_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


@dataclass(frozen=True, slots=True)
class JobRetryPolicy:
    """Whole-run re-attempt configuration for the job layer.

    Only faults unrelated to the step calls themselves qualify: network
    timeouts and resets, connection errors and storage timeouts, found anywhere
    in the raised error's cause chain.
    """

    max_attempts: int = 3
    wait_seconds: float = 30.0
    retry_on: tuple[type[BaseException], ...] = JOB_RETRYABLE_ERRORS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def should_retry(self, error: BaseException) -> bool:
        return any(isinstance(e, self.retry_on) for e in _error_chain(error))
