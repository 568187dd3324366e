"""
Stats Service — Application layer orchestrator.

Loads cards, review history and streak through their repositories, computes
`ComputedStats`, and persists the snapshot for a fast cold start.
"""

import logging
from datetime import date, datetime

from flashdeck.application.cards import CardRepository
from flashdeck.application.history import ReviewHistoryStore
from flashdeck.application.schemas import ComputedStatsSchema, parse_computed_stats
from flashdeck.application.streaks import StreakRepository, compute_streak
from flashdeck.domain.models import ComputedStats, ForecastDay, RetentionPoint
from flashdeck.infrastructure.persistence import PersistentStore

from .metrics_calculator import StatisticsAggregator

logger = logging.getLogger(__name__)


class StatsService:
    """
    Application service for computing and caching learner statistics.

    Depends on the repositories, not on the storage substrate.
    """

    def __init__(
        self,
        store: PersistentStore,
        stats_key: str,
        cards: CardRepository,
        history: ReviewHistoryStore,
        streaks: StreakRepository,
        calculator: StatisticsAggregator | None = None,
    ):
        """
        Args:
            store: Persistent store holding the snapshot.
            stats_key: Storage key of the snapshot.
            cards: Card set repository.
            history: Review history persister.
            streaks: Streak history repository.
            calculator: Optional custom aggregator; uses default if not provided.
        """
        self._store = store
        self._key = stats_key
        self._cards = cards
        self._history = history
        self._streaks = streaks
        self._calc = calculator or StatisticsAggregator()

    def compute(
        self,
        today: date | None = None,
        now: datetime | None = None,
        persist: bool = True,
    ) -> ComputedStats:
        """
        Compute fresh statistics.

        The stored streak may predate a missed day, so the current streak is
        re-derived from history before aggregating.
        """
        cards = self._cards.load()
        history = self._history.load()
        streak = self._streaks.load()

        state = compute_streak(history, today)
        streak.current_streak = state.current_streak
        streak.longest_streak = max(streak.longest_streak, state.current_streak)
        streak.last_study_date = state.last_study_date

        stats = self._calc.compute(cards, history, streak, today=today, now=now)
        if persist:
            result = self._store.set_json(self._key, ComputedStatsSchema.from_domain(stats).dump())
            if result.error:
                self._store.notify(result.error)
        return stats

    def last_snapshot(self) -> ComputedStats | None:
        """The most recently persisted statistics, if any."""
        result = self._store.get_json(self._key, None, parse_computed_stats)
        if result.error:
            logger.info(f"Ignoring unusable stats snapshot: {result.error.message}")
        return result.data

    def forecast(self, days: int | None = None, today: date | None = None) -> list[ForecastDay]:
        return self._calc.review_forecast(self._cards.load(), days, today)

    def rolling_retention(self, days: int, today: date | None = None) -> list[RetentionPoint]:
        return self._calc.rolling_retention_rates(self._history.load(), days, today)
