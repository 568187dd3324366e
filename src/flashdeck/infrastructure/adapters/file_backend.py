"""
File Storage Backend — one JSON document per key under a data directory.

Writes go to a temporary sibling and are moved into place with `os.replace`,
so a crash never leaves a half-written value behind.
"""

import logging
import os
import tempfile
from pathlib import Path
from urllib.parse import quote, unquote

from flashdeck.domain.storage import (
    QuotaExceededError,
    StorageBackend,
    StorageUnavailableError,
)

logger = logging.getLogger(__name__)

SUFFIX = ".json"


class FileStorageBackend(StorageBackend):
    """
    Persists each key as `<data_dir>/<quoted key>.json`.

    Args:
        data_dir: Directory holding the files; created on first write.
        capacity_bytes: Optional soft limit on the total size of stored
            values. Exceeding it raises `QuotaExceededError`.
    """

    def __init__(self, data_dir: Path, capacity_bytes: int | None = None):
        self.data_dir = Path(data_dir)
        self.capacity_bytes = capacity_bytes

    def _path(self, key: str) -> Path:
        return self.data_dir / f"{quote(key, safe='')}{SUFFIX}"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except PermissionError as e:
            raise StorageUnavailableError(f"Cannot read {path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        encoded = value.encode("utf-8")
        if self.capacity_bytes is not None:
            existing = self._size(self._path(key))
            if self.used_bytes() - existing + len(encoded) > self.capacity_bytes:
                raise QuotaExceededError(
                    f"Writing '{key}' would exceed {self.capacity_bytes} bytes"
                )

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.data_dir, prefix=".tmp-", suffix=SUFFIX)
        except PermissionError as e:
            raise StorageUnavailableError(f"Cannot write to {self.data_dir}: {e}") from e

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(encoded)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path(key))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {len(encoded)} bytes to {self._path(key)}")

    def remove_item(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except PermissionError as e:
            raise StorageUnavailableError(f"Cannot remove {self._path(key)}: {e}") from e

    def keys(self) -> list[str]:
        if not self.data_dir.is_dir():
            return []
        return sorted(
            unquote(path.name[: -len(SUFFIX)])
            for path in self.data_dir.glob(f"*{SUFFIX}")
            if not path.name.startswith(".tmp-")
        )

    def used_bytes(self) -> int:
        if not self.data_dir.is_dir():
            return 0
        return sum(
            self._size(path)
            for path in self.data_dir.glob(f"*{SUFFIX}")
            if not path.name.startswith(".tmp-")
        )

    @staticmethod
    def _size(path: Path) -> int:
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return 0
