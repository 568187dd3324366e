"""
Statistics aggregator for deriving insights from cards and review history.

This is a pure computation module with no I/O.
"""

from datetime import UTC, date, datetime

from flashdeck.application.utils.dates import (
    days_ago_key,
    days_ahead_key,
    format_date_key,
    local_date,
    utcnow,
)
from flashdeck.application.utils.dates import today as current_day
from flashdeck.domain.constants import (
    DEFAULT_EASE_FACTOR,
    DEFAULT_FORECAST_DAYS,
    DEFAULT_INSIGHT_LIMIT,
    MASTERED_INTERVAL_THRESHOLD,
    ROLLING_WINDOW_RADIUS,
)
from flashdeck.domain.models import (
    Card,
    ComputedStats,
    DailyReviewRecord,
    ForecastDay,
    RetentionPoint,
    StreakHistory,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class StatisticsAggregator:
    """
    Computes display-ready statistics from the card set and review history.

    Stateless and side-effect free. Every method accepts `today` / `now` so
    results are reproducible.
    """

    def __init__(
        self,
        forecast_days: int = DEFAULT_FORECAST_DAYS,
        insight_limit: int = DEFAULT_INSIGHT_LIMIT,
    ):
        self.forecast_days = forecast_days
        self.insight_limit = insight_limit

    # ---------- Retention ----------

    def retention_rate(
        self, history: list[DailyReviewRecord], days: int, today: date | None = None
    ) -> float:
        """
        Share of reviews not rated "Again" over records from the last `days` days.

        Returns 0 when there are no reviews in the window.
        """
        cutoff = days_ago_key(days, today)
        total = 0
        correct = 0
        for record in history:
            if record.date >= cutoff:
                total += record.total_reviews
                correct += record.correct_reviews
        if total == 0:
            return 0
        return correct / total

    def retention_rate_7d(
        self, history: list[DailyReviewRecord], today: date | None = None
    ) -> float:
        return self.retention_rate(history, 7, today)

    def retention_rate_30d(
        self, history: list[DailyReviewRecord], today: date | None = None
    ) -> float:
        return self.retention_rate(history, 30, today)

    def rolling_retention_rates(
        self, history: list[DailyReviewRecord], days: int, today: date | None = None
    ) -> list[RetentionPoint]:
        """
        Retention for each of the last `days` days over a centered 7-day window.

        A window without reviews reports 0, which charts treat as "no data".
        """
        by_date = {record.date: record for record in history}
        points = []
        for offset in range(days - 1, -1, -1):
            total = 0
            correct = 0
            for shift in range(-ROLLING_WINDOW_RADIUS, ROLLING_WINDOW_RADIUS + 1):
                record = by_date.get(days_ago_key(offset - shift, today))
                if record:
                    total += record.total_reviews
                    correct += record.correct_reviews
            points.append(
                RetentionPoint(
                    date=days_ago_key(offset, today),
                    retention_rate=correct / total if total > 0 else 0,
                )
            )
        return points

    def total_reviews(self, history: list[DailyReviewRecord]) -> int:
        return sum(record.total_reviews for record in history)

    def total_minutes(self, history: list[DailyReviewRecord]) -> float:
        return sum(record.minutes_studied for record in history)

    # ---------- Card insights ----------

    def most_challenging(self, cards: list[Card], limit: int | None = None) -> list[Card]:
        """Reviewed cards with the lowest ease factor first."""
        reviewed = [c for c in cards if c.last_reviewed_at is not None]
        ranked = sorted(reviewed, key=lambda c: c.ease_factor)
        return ranked[: self._limit(limit)]

    def well_known(self, cards: list[Card], limit: int | None = None) -> list[Card]:
        ranked = sorted(cards, key=lambda c: c.interval, reverse=True)
        return ranked[: self._limit(limit)]

    def overdue(self, cards: list[Card], now: datetime | None = None) -> list[Card]:
        """
        Cards never scheduled or due strictly before `now`, most overdue first.

        Cards with no due date sort as maximally overdue.
        """
        reference = now or utcnow()
        late = [
            c for c in cards if c.next_review_date is None or c.next_review_date < reference
        ]
        return sorted(late, key=lambda c: c.next_review_date or _EPOCH)

    def review_forecast(
        self,
        cards: list[Card],
        days: int | None = None,
        today: date | None = None,
    ) -> list[ForecastDay]:
        """
        Number of cards due on each of the next `days` days.

        Day 0 also absorbs overdue cards and cards never reviewed.
        """
        horizon = days if days is not None else self.forecast_days
        current = today or current_day()
        current_key = format_date_key(current)

        counts = [0] * horizon
        index_by_key = {days_ahead_key(i, current): i for i in range(horizon)}
        for card in cards:
            if card.next_review_date is None:
                if horizon:
                    counts[0] += 1
                continue
            due_key = format_date_key(local_date(card.next_review_date))
            if due_key <= current_key:
                if horizon:
                    counts[0] += 1
            elif due_key in index_by_key:
                counts[index_by_key[due_key]] += 1

        return [
            ForecastDay(date=days_ahead_key(i, current), count=counts[i]) for i in range(horizon)
        ]

    # ---------- Aggregate ----------

    def compute(
        self,
        cards: list[Card],
        history: list[DailyReviewRecord],
        streak: StreakHistory,
        today: date | None = None,
        now: datetime | None = None,
    ) -> ComputedStats:
        reviewed = [c for c in cards if c.last_reviewed_at is not None]
        mastered = [c for c in cards if c.interval > MASTERED_INTERVAL_THRESHOLD]
        learning = [c for c in reviewed if c.interval <= MASTERED_INTERVAL_THRESHOLD]

        average_ease = DEFAULT_EASE_FACTOR
        if reviewed:
            average_ease = sum(c.ease_factor for c in reviewed) / len(reviewed)
        forecast = self.review_forecast(cards, self.forecast_days, today)

        return ComputedStats(
            total_cards=len(cards),
            mastered_cards=len(mastered),
            learning_cards=len(learning),
            new_cards=len(cards) - len(reviewed),
            current_streak=streak.current_streak,
            longest_streak=streak.longest_streak,
            last_study_date=streak.last_study_date,
            retention_rate_7d=self.retention_rate_7d(history, today),
            retention_rate_30d=self.retention_rate_30d(history, today),
            average_ease_factor=average_ease,
            total_reviews_all_time=self.total_reviews(history),
            total_minutes_studied=self.total_minutes(history),
            most_challenging_card_ids=[c.id for c in self.most_challenging(cards)],
            overdue_card_ids=[c.id for c in self.overdue(cards, now)],
            due_today=forecast[0].count if forecast else 0,
            due_tomorrow=forecast[1].count if len(forecast) > 1 else 0,
            due_this_week=sum(day.count for day in forecast),
        )

    def _limit(self, limit: int | None) -> int:
        return self.insight_limit if limit is None else limit
