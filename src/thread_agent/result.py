"""Two-variant outcome type used for expected failure paths.

``Success`` always carries data and never an error; ``Failure`` always carries
an error and never data. ``Result`` is the common base and cannot be
instantiated on its own, so the illegal combinations cannot be built.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from thread_agent.errors import ThreadAgentError

T = TypeVar("T")


def _freeze(metadata: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(metadata or {}))


class Result(Generic[T]):
    """Base for :class:`Success` and :class:`Failure`.

    Use :meth:`success` / :meth:`failure` rather than the variant constructors.
    """

    __slots__ = ()

    def __new__(cls, *args: Any, **kwargs: Any) -> Result[T]:
        if cls is Result:
            raise TypeError("Result cannot be instantiated; use Result.success or Result.failure")
        return super().__new__(cls)

    @staticmethod
    def success(data: T, metadata: Mapping[str, Any] | None = None) -> Success[T]:
        return Success(data=data, metadata=_freeze(metadata))

    @staticmethod
    def failure(
        error: ThreadAgentError, metadata: Mapping[str, Any] | None = None
    ) -> Failure[Any]:
        if error is None:
            raise ValueError("A failure result requires an error")
        return Failure(error=error, metadata=_freeze(metadata))

    @property
    def is_success(self) -> bool:
        raise NotImplementedError

    @property
    def is_failure(self) -> bool:
        return not self.is_success


@dataclass(frozen=True, slots=True)
class Success(Result[T]):
    data: T
    metadata: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))

    @property
    def is_success(self) -> bool:
        return True

    @property
    def error(self) -> None:
        return None


@dataclass(frozen=True, slots=True)
class Failure(Result[T]):
    error: ThreadAgentError
    metadata: Mapping[str, Any] = field(default_factory=lambda: _freeze(None))

    @property
    def is_success(self) -> bool:
        return False

    @property
    def data(self) -> None:
        return None
