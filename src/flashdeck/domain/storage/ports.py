"""
Ports (interfaces) for the storage substrate.

These define the contract that infrastructure adapters must implement.
The persistent store depends on this abstraction, not on a concrete backend.
"""

from abc import ABC, abstractmethod


class StorageBackend(ABC):
    """
    Port for a persistent string key/value substrate.

    Implementations:
        - FileStorageBackend: One file per key under a data directory.
        - MemoryStorageBackend: Process-local dict, mainly for tests.

    Failures are signalled with `QuotaExceededError`,
    `StorageUnavailableError` or `OSError`.
    """

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the raw value stored under `key`, or None if absent."""
        pass

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store `value` under `key`, replacing any previous value."""
        pass

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove `key`. Removing a missing key is not an error."""
        pass

    @abstractmethod
    def keys(self) -> list[str]:
        """List every key currently stored."""
        pass
