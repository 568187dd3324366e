"""
Memory Storage Backend — process-local substrate.

Used when persistence is disabled and throughout the test suite. An optional
byte capacity makes quota failures reproducible.
"""

from flashdeck.domain.storage import QuotaExceededError, StorageBackend


class MemoryStorageBackend(StorageBackend):
    def __init__(self, capacity_bytes: int | None = None, initial: dict[str, str] | None = None):
        self.capacity_bytes = capacity_bytes
        self.data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.capacity_bytes is not None:
            current = self.used_bytes() - _entry_size(key, self.data.get(key))
            if current + _entry_size(key, value) > self.capacity_bytes:
                raise QuotaExceededError(
                    f"Writing '{key}' would exceed {self.capacity_bytes} bytes"
                )
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self.data)

    def used_bytes(self) -> int:
        return sum(_entry_size(key, value) for key, value in self.data.items())


def _entry_size(key: str, value: str | None) -> int:
    if value is None:
        return 0
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))
