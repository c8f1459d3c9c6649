"""
Shared types: submission statuses, the service result wrapper and the
exception hierarchy raised by the storage/auth/execution clients.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class SubmissionStatus(str, Enum):
    PENDING = "pending"
    JUDGING = "judging"
    ACCEPTED = "accepted"
    WRONG_ANSWER = "wrong_answer"
    COMPILE_ERROR = "compile_error"
    RUNTIME_ERROR = "runtime_error"
    ERROR = "error"


class BackendError(Exception):
    """Base class for failures reported by a backing client."""


class RecordNotFound(BackendError):
    pass


class DuplicateRecord(BackendError):
    pass


class InvalidRecord(BackendError):
    pass


class AuthError(BackendError):
    pass


class StorageError(BackendError):
    pass


class ExecutionServiceError(BackendError):
    pass


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a service call. Exactly one of ``data`` / ``error`` is meaningful:
    a failed call always carries an ``error`` and never carries ``data``.
    """

    data: Optional[T] = None
    error: Optional[BackendError] = None

    def __post_init__(self):
        if self.error is not None and self.data is not None:
            raise ValueError("Result cannot carry both data and error")

    @classmethod
    def success(cls, data: Any = None) -> "Result":
        return cls(data=data)

    @classmethod
    def failure(cls, error: BackendError) -> "Result":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return ``data`` or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data
