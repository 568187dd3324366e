# Domain Storage Package
from .errors import (
    QuotaExceededError,
    StorageBackendError,
    StorageError,
    StorageErrorKind,
    StorageResult,
    StorageUnavailableError,
)
from .ports import StorageBackend

__all__ = [
    "StorageBackend",
    "StorageBackendError",
    "QuotaExceededError",
    "StorageUnavailableError",
    "StorageError",
    "StorageErrorKind",
    "StorageResult",
]
