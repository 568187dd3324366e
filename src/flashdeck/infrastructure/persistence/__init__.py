# Infrastructure Persistence Package
from .debounce import Debouncer, TimerFactory, TimerHandle, thread_timer
from .recovery import RecoveryOutcome, recover_json
from .store import (
    PersistentStore,
    StorageHealthReport,
    StorageUsage,
    classify_error,
)

__all__ = [
    "PersistentStore",
    "StorageHealthReport",
    "StorageUsage",
    "classify_error",
    "Debouncer",
    "TimerFactory",
    "TimerHandle",
    "thread_timer",
    "RecoveryOutcome",
    "recover_json",
]
