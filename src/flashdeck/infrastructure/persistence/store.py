"""
Resilient key/value persistence over a storage substrate.

The store never raises for the expected failure modes (unavailable storage,
exhausted quota, corrupted payloads). Every operation returns a
`StorageResult` whose `data` is usable whenever `success` is True.

Write path:
    1. The in-memory copy is updated and the read cache invalidated at once.
    2. The substrate write is debounced per key; bursts collapse to the last value.
    3. `flush()` lands every pending write immediately.

Reads consult pending writes first, so a value is visible before it reaches
the substrate.
"""

import copy
import errno
import json
import logging
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, TypeVar

from flashdeck.domain.constants import (
    ASSUMED_CAPACITY_BYTES,
    AVAILABILITY_PROBE_KEY,
    HEALTH_WARNING_PERCENTAGE,
    QUOTA_CLEANUP_DAYS,
    READ_CACHE_TTL,
    WRITE_DEBOUNCE,
)
from flashdeck.domain.storage import (
    QuotaExceededError,
    StorageBackend,
    StorageBackendError,
    StorageError,
    StorageErrorKind,
    StorageResult,
    StorageUnavailableError,
)

from .debounce import Debouncer, TimerFactory
from .recovery import recover_json

logger = logging.getLogger(__name__)

T = TypeVar("T")
ErrorCallback = Callable[[StorageError], None]

_MISSING = object()
_QUOTA_ERRNOS = {errno.ENOSPC, errno.EDQUOT}
_UNAVAILABLE_ERRNOS = {errno.EROFS, errno.EACCES, errno.EPERM}


def classify_error(exc: BaseException, key: str | None = None) -> StorageError:
    """Map a substrate failure onto the storage error taxonomy."""
    if isinstance(exc, QuotaExceededError) or (
        isinstance(exc, OSError) and exc.errno in _QUOTA_ERRNOS
    ):
        return StorageError.of(StorageErrorKind.QUOTA_EXCEEDED, str(exc) or "Quota exceeded", key)
    if isinstance(exc, StorageUnavailableError | PermissionError) or (
        isinstance(exc, OSError) and exc.errno in _UNAVAILABLE_ERRNOS
    ):
        return StorageError.of(StorageErrorKind.UNAVAILABLE, str(exc) or "Storage unavailable", key)
    if isinstance(exc, UnicodeDecodeError):
        return StorageError.of(
            StorageErrorKind.CORRUPTED_DATA, f"Stored bytes are not valid UTF-8: {exc}", key
        )
    if isinstance(exc, ValueError):
        return StorageError.of(StorageErrorKind.PARSE_ERROR, str(exc), key)
    if isinstance(exc, OSError | StorageBackendError):
        return StorageError.of(StorageErrorKind.WRITE_ERROR, str(exc), key)
    return StorageError.of(StorageErrorKind.UNKNOWN, str(exc), key, recoverable=False)


@dataclass(frozen=True)
class StorageUsage:
    used: int
    total: int
    percentage: int


@dataclass
class StorageHealthReport:
    available: bool
    usage_percentage: int
    used_bytes: int
    errors: list[StorageError] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.available and not self.errors and not self.recommendations


class PersistentStore:
    """
    Availability-aware, cached, debounced key/value store.

    Args:
        backend: Storage substrate. None behaves like an unavailable substrate.
        read_cache_ttl: Seconds a decoded value stays in the read cache.
        write_debounce: Seconds to wait after the last write to a key.
            Zero writes through synchronously.
        timer_factory: Timer implementation for debouncing (tests inject a manual one).
        clock: Monotonic clock used for cache expiry.
        capacity_bytes: Assumed substrate capacity for usage estimates.
        history_key: Key pruned by the quota cleanup pass.
        journal_key: Key used to journal group writes. Without it group
            writes are applied key by key.
        quota_cleanup_days: History records older than this are dropped on quota failure.
        today: Calendar source for the quota cleanup cutoff.
    """

    def __init__(
        self,
        backend: StorageBackend | None,
        *,
        read_cache_ttl: float = READ_CACHE_TTL,
        write_debounce: float = WRITE_DEBOUNCE,
        timer_factory: TimerFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
        capacity_bytes: int = ASSUMED_CAPACITY_BYTES,
        history_key: str | None = None,
        journal_key: str | None = None,
        quota_cleanup_days: int = QUOTA_CLEANUP_DAYS,
        today: Callable[[], date] = date.today,
    ):
        self._backend = backend
        self._read_cache_ttl = read_cache_ttl
        self._debouncer = Debouncer(write_debounce, timer_factory)
        self._clock = clock
        self.capacity_bytes = capacity_bytes
        self._history_key = history_key
        self._journal_key = journal_key
        self._quota_cleanup_days = quota_cleanup_days
        self._today = today

        self._lock = threading.RLock()
        self._error_callback: ErrorCallback | None = None
        self._init_tables()

    def _init_tables(self) -> None:
        self._memory: dict[str, str] = {}
        self._cache: dict[str, tuple[Any, float]] = {}
        self._pending: dict[str, str] = {}
        # Keys whose last substrate write failed; memory is authoritative for them
        self._dirty: set[str] = set()
        self._available: bool | None = None
        self._availability_error: StorageError | None = None

    # ---------- Lifecycle ----------

    def reset(self) -> None:
        """Drop every internal table without touching the substrate."""
        with self._lock:
            self._debouncer.cancel_all()
            self._init_tables()

    def flush(self) -> int:
        """Perform every pending debounced write now. Returns how many ran."""
        with self._lock:
            count = self._debouncer.flush()
        if count:
            logger.debug(f"Flushed {count} pending write(s)")
        return count

    def close(self) -> None:
        self.flush()
        self._debouncer.cancel_all()

    @property
    def pending_keys(self) -> list[str]:
        return self._debouncer.pending_keys

    # ---------- Error channel ----------

    def set_error_callback(self, callback: ErrorCallback | None) -> None:
        self._error_callback = callback

    def notify(self, error: StorageError | None) -> None:
        """Forward an error to the registered callback, if any."""
        if error is None or self._error_callback is None:
            return
        self._error_callback(error)

    # ---------- Availability ----------

    def is_available(self) -> bool:
        with self._lock:
            if self._available is None:
                self._available = self._probe()
                if self._available:
                    self._replay_journal()
            return self._available

    @property
    def availability_error(self) -> StorageError | None:
        self.is_available()
        return self._availability_error

    def _probe(self) -> bool:
        if self._backend is None:
            self._availability_error = StorageError.of(
                StorageErrorKind.UNAVAILABLE, "No storage backend configured"
            )
            logger.warning("No storage backend configured; using in-memory fallback")
            return False
        try:
            self._backend.set_item(AVAILABILITY_PROBE_KEY, "test")
            self._backend.remove_item(AVAILABILITY_PROBE_KEY)
        except (StorageBackendError, OSError) as e:
            self._availability_error = StorageError.of(
                StorageErrorKind.UNAVAILABLE, f"Storage probe failed: {e}"
            )
            logger.warning(f"Storage unavailable, using in-memory fallback: {e}")
            return False
        return True

    # ---------- Raw access ----------

    def get_item(self, key: str) -> StorageResult[str]:
        with self._lock:
            if key in self._pending:
                return StorageResult(True, self._pending[key])
            if not self.is_available():
                return StorageResult(
                    True, self._memory.get(key), self._availability_error, used_fallback=True
                )
            if key in self._dirty:
                return StorageResult(True, self._memory.get(key), used_fallback=True)
            try:
                return StorageResult(True, self._backend.get_item(key))
            except (StorageBackendError, OSError, ValueError) as e:
                error = classify_error(e, key)
                logger.warning(f"Failed to read '{key}': {e}")
                return StorageResult(True, self._memory.get(key), error, used_fallback=True)

    def set_item(self, key: str, value: str, debounce: bool = True) -> StorageResult[None]:
        with self._lock:
            self._memory[key] = value
            self._cache.pop(key, None)

            if debounce and self._debouncer.delay > 0 and self.is_available():
                self._pending[key] = value
                self._debouncer.schedule(key, lambda: self._write_pending(key))
                return StorageResult(True)

            self._pending.pop(key, None)
            self._debouncer.cancel(key)
            return self._perform_write(key, value)

    def remove_item(self, key: str) -> StorageResult[None]:
        with self._lock:
            self._debouncer.cancel(key)
            self._pending.pop(key, None)
            self._memory.pop(key, None)
            self._cache.pop(key, None)
            self._dirty.discard(key)
            if not self.is_available():
                return StorageResult(True, used_fallback=True)
            try:
                self._backend.remove_item(key)
            except (StorageBackendError, OSError) as e:
                error = classify_error(e, key)
                logger.warning(f"Failed to remove '{key}': {e}")
                return StorageResult(True, error=error)
            return StorageResult(True)

    def keys(self) -> list[str]:
        with self._lock:
            found = set(self._memory) | set(self._pending)
            if self.is_available():
                try:
                    found.update(self._backend.keys())
                except (StorageBackendError, OSError) as e:
                    logger.warning(f"Failed to list storage keys: {e}")
            found.discard(AVAILABILITY_PROBE_KEY)
            return sorted(found)

    # ---------- JSON access ----------

    def get_json(
        self,
        key: str,
        default: T,
        validator: Callable[[Any], T] | None = None,
    ) -> StorageResult[T]:
        """
        Read and decode `key`.

        Args:
            key: Storage key.
            default: Returned when the key is absent or its payload is unusable.
            validator: Parse function returning the typed value; raises
                `ValueError` to reject the payload. Re-run on cache hits.
        """
        with self._lock:
            cached = self._cached(key)
            if cached is not _MISSING:
                if validator is None:
                    return StorageResult(True, copy.deepcopy(cached))
                try:
                    return StorageResult(True, validator(copy.deepcopy(cached)))
                except ValueError:
                    logger.debug(f"Cached value for '{key}' failed validation, re-reading")
                    self._cache.pop(key, None)

            raw = self.get_item(key)
            if raw.data is None:
                return StorageResult(True, default, raw.error, raw.used_fallback)

            try:
                parsed = json.loads(raw.data)
            except json.JSONDecodeError as e:
                error = StorageError.of(StorageErrorKind.CORRUPTED_DATA, f"Invalid JSON: {e}", key)
                logger.warning(f"Corrupted data under '{key}': {e}")
                return StorageResult(True, default, error, raw.used_fallback)

            self._cache[key] = (parsed, self._clock())
            if validator is None:
                return StorageResult(True, copy.deepcopy(parsed), raw.error, raw.used_fallback)

            try:
                data = validator(copy.deepcopy(parsed))
            except ValueError as e:
                self._cache.pop(key, None)
                error = StorageError.of(
                    StorageErrorKind.CORRUPTED_DATA, f"Validation failed: {e}", key
                )
                logger.warning(f"Data under '{key}' failed validation")
                return StorageResult(True, default, error, raw.used_fallback)
            return StorageResult(True, data, raw.error, raw.used_fallback)

    def set_json(self, key: str, value: Any, debounce: bool = True) -> StorageResult[None]:
        try:
            raw = json.dumps(value)
        except (TypeError, ValueError) as e:
            error = StorageError.of(
                StorageErrorKind.WRITE_ERROR,
                f"Could not serialize value: {e}",
                key,
                recoverable=False,
            )
            logger.error(f"Refusing to store unserializable value under '{key}': {e}")
            return StorageResult(False, error=error)
        return self.set_item(key, raw, debounce=debounce)

    def _cached(self, key: str) -> Any:
        entry = self._cache.get(key)
        if entry is None:
            return _MISSING
        value, stored_at = entry
        if self._clock() - stored_at >= self._read_cache_ttl:
            del self._cache[key]
            return _MISSING
        logger.debug(f"Read cache hit for '{key}'")
        return value

    # ---------- Group writes ----------

    def write_group(self, entries: Mapping[str, Any], debounce: bool = True) -> StorageResult[None]:
        """
        Write several JSON values as one unit.

        When the group lands, a journal holding every raw value is written
        first, then each key, then the journal is removed. A journal left
        behind by an interrupted commit is replayed on the next start.
        """
        try:
            raws = {key: json.dumps(value) for key, value in entries.items()}
        except (TypeError, ValueError) as e:
            error = StorageError.of(
                StorageErrorKind.WRITE_ERROR,
                f"Could not serialize group: {e}",
                recoverable=False,
            )
            logger.error(f"Refusing to store unserializable group: {e}")
            return StorageResult(False, error=error)

        with self._lock:
            for key, raw in raws.items():
                self._memory[key] = raw
                self._cache.pop(key, None)
                self._pending[key] = raw
                self._debouncer.cancel(key)

            keys = sorted(raws)
            if debounce and self._debouncer.delay > 0 and self.is_available():
                group_id = "group:" + "|".join(keys)
                self._debouncer.schedule(group_id, lambda: self._write_pending_group(keys))
                return StorageResult(True)
            return self._commit_group(keys)

    def _write_pending_group(self, keys: list[str]) -> None:
        with self._lock:
            result = self._commit_group(keys)
        self.notify(result.error)

    def _commit_group(self, keys: list[str]) -> StorageResult[None]:
        values: dict[str, str] = {}
        for key in keys:
            if key in self._pending:
                values[key] = self._pending.pop(key)
                self._debouncer.cancel(key)
        if not values:
            return StorageResult(True)
        if not self.is_available():
            return StorageResult(True, error=self._availability_error, used_fallback=True)

        if self._journal_key:
            journal = self._perform_write(self._journal_key, json.dumps(values))
            if journal.error:
                self._dirty.update(values)
                return journal

        errors = []
        for key, raw in values.items():
            result = self._perform_write(key, raw)
            if result.error:
                errors.append(result.error)
        if errors:
            # Journal stays so the next start can finish the group
            return StorageResult(True, error=errors[0], used_fallback=True)

        if self._journal_key:
            try:
                self._backend.remove_item(self._journal_key)
            except (StorageBackendError, OSError) as e:
                logger.warning(f"Failed to clear write journal: {e}")
            self._dirty.discard(self._journal_key)
        logger.debug(f"Committed group write of {len(values)} key(s)")
        return StorageResult(True)

    def _replay_journal(self) -> None:
        if not self._journal_key:
            return
        try:
            raw = self._backend.get_item(self._journal_key)
            if raw is None:
                return
            try:
                values = json.loads(raw)
            except json.JSONDecodeError:
                values = None
            if not isinstance(values, dict) or not all(
                isinstance(v, str) for v in values.values()
            ):
                logger.warning("Discarding unreadable write journal")
            else:
                logger.info(f"Replaying {len(values)} write(s) from interrupted group commit")
                for key, value in values.items():
                    self._backend.set_item(key, value)
            self._backend.remove_item(self._journal_key)
        except (StorageBackendError, OSError) as e:
            logger.warning(f"Failed to replay write journal: {e}")

    # ---------- Substrate writes ----------

    def _write_pending(self, key: str) -> None:
        with self._lock:
            value = self._pending.pop(key, None)
            if value is None:
                return
            result = self._perform_write(key, value)
        self.notify(result.error)

    def _perform_write(self, key: str, value: str) -> StorageResult[None]:
        if not self.is_available():
            return StorageResult(True, error=self._availability_error, used_fallback=True)
        try:
            self._backend.set_item(key, value)
        except (StorageBackendError, OSError) as e:
            error = classify_error(e, key)
            if error.kind is StorageErrorKind.QUOTA_EXCEEDED:
                retried = self._cleanup_and_retry(key, value)
                if retried.success:
                    self._dirty.discard(key)
                    return retried
                error = retried.error
            self._dirty.add(key)
            logger.warning(f"Write to '{key}' failed ({error.kind.value}), keeping in-memory copy")
            return StorageResult(True, error=error, used_fallback=True)
        self._dirty.discard(key)
        return StorageResult(True)

    def _cleanup_and_retry(self, key: str, value: str) -> StorageResult[None]:
        logger.info(
            f"Storage quota exceeded writing '{key}', pruning history older than "
            f"{self._quota_cleanup_days} days"
        )
        try:
            self._prune_history_for_quota(key)
            self._backend.set_item(key, value)
        except (StorageBackendError, OSError) as e:
            error = StorageError.of(
                StorageErrorKind.QUOTA_EXCEEDED,
                f"Storage quota exceeded even after cleanup: {e}",
                key,
            )
            return StorageResult(False, error=error)
        logger.info(f"Write to '{key}' succeeded after quota cleanup")
        return StorageResult(True)

    def _prune_history_for_quota(self, writing_key: str) -> None:
        if not self._history_key:
            return
        raw = self._backend.get_item(self._history_key)
        if raw is None:
            return
        try:
            history = json.loads(raw)
        except json.JSONDecodeError:
            return
        if not isinstance(history, list):
            return

        cutoff = (self._today() - timedelta(days=self._quota_cleanup_days)).isoformat()
        kept = [
            record
            for record in history
            if isinstance(record, dict) and str(record.get("date", "")) >= cutoff
        ]
        if len(kept) == len(history):
            return
        pruned = json.dumps(kept)
        self._backend.set_item(self._history_key, pruned)
        # Memory only follows the substrate when it still mirrors it
        if (
            writing_key != self._history_key
            and self._history_key not in self._pending
            and self._history_key not in self._dirty
            and self._memory.get(self._history_key) == raw
        ):
            self._memory[self._history_key] = pruned
        self._cache.pop(self._history_key, None)
        logger.info(f"Pruned {len(history) - len(kept)} history record(s) to free space")

    # ---------- Recovery ----------

    def recover(
        self,
        key: str,
        default: T,
        validator: Callable[[Any], Any] | None = None,
        item_validator: Callable[[Any], bool] | None = None,
        persist: bool = False,
    ) -> StorageResult[T]:
        """
        Explicit best-effort recovery of a corrupted payload.

        Escalates from a plain decode to textual repair (gated on `validator`)
        to salvaging well-formed array items that pass `item_validator`.
        With `persist`, repaired or salvaged data is written back.
        """
        raw = self.get_item(key)
        if not raw.data:
            return StorageResult(True, default)

        outcome = recover_json(raw.data, validator, item_validator)
        if outcome.strategy == "decode":
            return StorageResult(True, outcome.data)
        if outcome.strategy is None:
            error = StorageError.of(
                StorageErrorKind.CORRUPTED_DATA,
                "Could not recover data",
                key,
                recoverable=False,
            )
            logger.warning(f"Could not recover data under '{key}'")
            return StorageResult(True, default, error)

        if outcome.strategy == "repair":
            error = StorageError.of(
                StorageErrorKind.CORRUPTED_DATA,
                "Data was repaired automatically",
                key,
                user_message="Your data had some issues but was automatically repaired.",
            )
        else:
            error = StorageError.of(
                StorageErrorKind.CORRUPTED_DATA,
                f"Recovered {outcome.salvaged} items from corrupted data",
                key,
                user_message=(
                    f"Some of your data was corrupted. We recovered {outcome.salvaged} items."
                ),
            )
        logger.info(f"Recovered '{key}' using the {outcome.strategy} strategy")
        if persist:
            self.set_json(key, outcome.data, debounce=False)
        return StorageResult(True, outcome.data, error)

    # ---------- Usage & health ----------

    def estimate_usage(self) -> StorageUsage:
        if not self.is_available():
            return StorageUsage(0, 0, 0)
        used = 0
        for key in self.keys():
            used += self.key_size(key) + len(key.encode("utf-8"))
        percentage = int(used / self.capacity_bytes * 100 + 0.5) if self.capacity_bytes else 0
        return StorageUsage(used, self.capacity_bytes, percentage)

    def key_size(self, key: str) -> int:
        """Size in bytes of the stored value (0 when absent)."""
        raw = self.get_item(key).data
        return len(raw.encode("utf-8")) if raw else 0

    def check_health(self, keys: Iterable[str]) -> StorageHealthReport:
        available = self.is_available()
        usage = self.estimate_usage()
        report = StorageHealthReport(
            available=available,
            usage_percentage=usage.percentage,
            used_bytes=usage.used,
        )

        if not available:
            report.errors.append(self._availability_error)
            report.recommendations.append(
                "Enable storage to save your progress between sessions."
            )
        if usage.percentage > HEALTH_WARNING_PERCENTAGE:
            report.recommendations.append(
                "Storage is over 80% full. Consider exporting and clearing old data."
            )

        for key in keys:
            result = self.get_item(key)
            if result.error is not None and result.error.kind is StorageErrorKind.CORRUPTED_DATA:
                self._report_corrupted(report, result.error)
                continue
            if not result.data:
                continue
            try:
                json.loads(result.data)
            except json.JSONDecodeError as e:
                self._report_corrupted(
                    report,
                    StorageError.of(StorageErrorKind.CORRUPTED_DATA, f"Invalid JSON: {e}", key),
                )
        return report

    @staticmethod
    def _report_corrupted(report: StorageHealthReport, error: StorageError) -> None:
        report.errors.append(error)
        report.recommendations.append(
            f"Data for '{error.key}' is corrupted. Consider clearing and re-importing."
        )

    # ---------- Bulk helpers ----------

    def clear(self, keys: Iterable[str]) -> list[str]:
        """Remove `keys`; returns the keys that were removed without error."""
        cleared = []
        for key in keys:
            if self.remove_item(key).error is None:
                cleared.append(key)
        return cleared

    def create_backup(self, keys: Iterable[str]) -> dict[str, str]:
        backup = {}
        for key in keys:
            raw = self.get_item(key).data
            if raw is not None:
                backup[key] = raw
        return backup

    def restore_backup(self, backup: Mapping[str, str]) -> StorageResult[list[str]]:
        """Write every raw value in `backup`; best effort, key by key."""
        failed = []
        for key, raw in backup.items():
            result = self.set_item(key, raw, debounce=False)
            if result.error is not None:
                failed.append(key)
        if failed:
            error = StorageError.of(
                StorageErrorKind.WRITE_ERROR, f"Failed to restore {len(failed)} item(s)"
            )
            return StorageResult(False, failed, error)
        return StorageResult(True, [])
