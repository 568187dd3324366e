"""
Storage error taxonomy.

Substrate adapters raise the exceptions defined here; the persistent store
turns them into `StorageError` values so callers never see a raw failure
for expected conditions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class StorageBackendError(Exception):
    """Base class for failures reported by a storage substrate."""


class QuotaExceededError(StorageBackendError):
    """The substrate has no room left for the write."""


class StorageUnavailableError(StorageBackendError):
    """The substrate cannot be used at all (missing, read-only, denied)."""


class StorageErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    QUOTA_EXCEEDED = "quota_exceeded"
    CORRUPTED_DATA = "corrupted_data"
    PARSE_ERROR = "parse_error"
    WRITE_ERROR = "write_error"
    UNKNOWN = "unknown"


USER_MESSAGES: dict[StorageErrorKind, str] = {
    StorageErrorKind.UNAVAILABLE: (
        "Storage is not available. Your data will be kept for this session only "
        "and may be lost when the program exits. Enable storage to keep your progress."
    ),
    StorageErrorKind.QUOTA_EXCEEDED: (
        "Storage is full. Free some space by removing old data, or export a backup "
        "of your flashcards."
    ),
    StorageErrorKind.CORRUPTED_DATA: (
        "Some of your saved data appears to be corrupted. We've recovered what we "
        "could, but some data may have been lost."
    ),
    StorageErrorKind.PARSE_ERROR: (
        "There was a problem reading your saved data. Starting fresh with default settings."
    ),
    StorageErrorKind.WRITE_ERROR: (
        "Unable to save your changes. Please try again or check that storage is writable."
    ),
    StorageErrorKind.UNKNOWN: (
        "An unexpected error occurred with storage. Your changes may not be saved."
    ),
}


@dataclass(frozen=True)
class StorageError:
    """
    A classified storage failure.

    Attributes:
        kind: Position in the closed taxonomy.
        message: Machine-oriented detail.
        user_message: Human-readable explanation for the UI.
        key: Storage key involved, if any.
        recoverable: Whether the caller can keep going with degraded behavior.
    """

    kind: StorageErrorKind
    message: str
    user_message: str
    key: str | None = None
    recoverable: bool = True

    @classmethod
    def of(
        cls,
        kind: StorageErrorKind,
        message: str,
        key: str | None = None,
        recoverable: bool = True,
        user_message: str | None = None,
    ) -> "StorageError":
        return cls(
            kind=kind,
            message=message,
            user_message=user_message or USER_MESSAGES[kind],
            key=key,
            recoverable=recoverable,
        )


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """
    Outcome of a store operation.

    `data` is always usable when `success` is True, even if `error` is set.
    """

    success: bool
    data: T | None = None
    error: StorageError | None = None
    used_fallback: bool = False
