"""
Flashdeck Factory
Centralizes the logic for selecting the storage backend and wiring services.
"""

from dataclasses import dataclass

from flashdeck.application.backup import BackupService
from flashdeck.application.cards import CardRepository, PackRepository
from flashdeck.application.config import AppConfig
from flashdeck.application.history import ReviewHistoryStore
from flashdeck.application.review_service import ReviewService
from flashdeck.application.stats import StatisticsAggregator, StatsService
from flashdeck.application.streaks import StreakRepository
from flashdeck.domain.models import StorageKeys
from flashdeck.domain.storage import StorageBackend
from flashdeck.infrastructure.adapters import FileStorageBackend, MemoryStorageBackend
from flashdeck.infrastructure.persistence import PersistentStore, TimerFactory


def get_storage_backend(config: AppConfig) -> StorageBackend:
    """
    Returns the appropriate StorageBackend implementation based on config.
    """
    if config.backend == "memory":
        return MemoryStorageBackend(capacity_bytes=config.capacity_bytes)
    return FileStorageBackend(config.data_dir, capacity_bytes=config.capacity_bytes)


def build_store(
    config: AppConfig,
    backend: StorageBackend | None = None,
    timer_factory: TimerFactory | None = None,
) -> PersistentStore:
    keys = StorageKeys.from_prefix(config.key_prefix)
    return PersistentStore(
        backend if backend is not None else get_storage_backend(config),
        read_cache_ttl=config.read_cache_ttl_seconds,
        write_debounce=config.write_debounce,
        timer_factory=timer_factory,
        capacity_bytes=config.capacity_bytes,
        history_key=keys.history,
        journal_key=keys.journal,
        quota_cleanup_days=config.quota_cleanup_days,
    )


@dataclass
class Services:
    """Everything a front end needs, sharing one store."""

    config: AppConfig
    keys: StorageKeys
    store: PersistentStore
    cards: CardRepository
    packs: PackRepository
    history: ReviewHistoryStore
    streaks: StreakRepository
    stats: StatsService
    reviews: ReviewService
    backup: BackupService


def build_services(config: AppConfig, store: PersistentStore | None = None) -> Services:
    keys = StorageKeys.from_prefix(config.key_prefix)
    store = store or build_store(config)

    cards = CardRepository(store, keys.cards)
    packs = PackRepository(store, keys.packs, cards)
    history = ReviewHistoryStore(store, keys.history, max_days=config.history_retention_days)
    streaks = StreakRepository(store, keys.streak)
    calculator = StatisticsAggregator(
        forecast_days=config.forecast_days,
        insight_limit=config.challenging_limit,
    )

    return Services(
        config=config,
        keys=keys,
        store=store,
        cards=cards,
        packs=packs,
        history=history,
        streaks=streaks,
        stats=StatsService(store, keys.stats, cards, history, streaks, calculator),
        reviews=ReviewService(store, cards, history, streaks),
        backup=BackupService(store, keys, cards, packs, history, streaks),
    )
