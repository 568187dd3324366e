"""
Daily review history.

A bounded time series of `DailyReviewRecord`, one per calendar day with
activity. The mutating helpers are pure: they return a new list sorted by
date key and never touch their input. `ReviewHistoryStore` persists the
series through the persistent store, pruning on every save.
"""

import logging
from dataclasses import replace
from datetime import date

from pydantic import ValidationError

from flashdeck.domain.constants import MAX_HISTORY_DAYS, PASSING_QUALITY
from flashdeck.domain.models import DailyReviewRecord, QualityRating
from flashdeck.infrastructure.persistence import PersistentStore

from .schemas import DailyReviewRecordSchema, parse_json_list
from .utils.dates import days_ago_key, today_key

logger = logging.getLogger(__name__)


def _count_field(quality: int) -> str:
    if quality < PASSING_QUALITY:
        return "again_count"
    if quality == QualityRating.HARD:
        return "hard_count"
    if quality == QualityRating.GOOD:
        return "good_count"
    return "easy_count"


def _sorted(records: dict[str, DailyReviewRecord]) -> list[DailyReviewRecord]:
    # Fixed-width YYYY-MM-DD keys sort lexically in date order
    return [records[key] for key in sorted(records)]


def get_or_create_today_record(
    history: list[DailyReviewRecord], today: date | None = None
) -> DailyReviewRecord:
    key = today_key(today)
    for record in history:
        if record.date == key:
            return record
    return DailyReviewRecord(date=key)


def record_review(
    history: list[DailyReviewRecord],
    card_id: str,
    quality: int,
    session_minutes: float = 0,
    today: date | None = None,
) -> list[DailyReviewRecord]:
    """
    Count one review under today's record.

    Increments the total and the bucket matching `quality`, adds
    `session_minutes`, and adds `card_id` to the day's distinct cards.
    """
    by_date = {record.date: record for record in history}
    current = get_or_create_today_record(history, today)

    field_name = _count_field(quality)
    cards_reviewed = list(current.unique_cards_reviewed)
    if card_id not in cards_reviewed:
        cards_reviewed.append(card_id)

    by_date[current.date] = replace(
        current,
        total_reviews=current.total_reviews + 1,
        minutes_studied=current.minutes_studied + session_minutes,
        unique_cards_reviewed=cards_reviewed,
        **{field_name: getattr(current, field_name) + 1},
    )
    return _sorted(by_date)


def add_study_time(
    history: list[DailyReviewRecord], minutes: float, today: date | None = None
) -> list[DailyReviewRecord]:
    """Add session minutes to today's record without counting a review."""
    by_date = {record.date: record for record in history}
    current = get_or_create_today_record(history, today)
    by_date[current.date] = replace(current, minutes_studied=current.minutes_studied + minutes)
    return _sorted(by_date)


def prune_history(
    history: list[DailyReviewRecord],
    today: date | None = None,
    max_days: int = MAX_HISTORY_DAYS,
) -> list[DailyReviewRecord]:
    cutoff = days_ago_key(max_days, today)
    return [record for record in history if record.date >= cutoff]


def review_counts_for_days(
    history: list[DailyReviewRecord], days: int, today: date | None = None
) -> list[DailyReviewRecord]:
    """One record per day for the last `days` days (oldest first), zero-filled."""
    by_date = {record.date: record for record in history}
    result = []
    for offset in range(days - 1, -1, -1):
        key = days_ago_key(offset, today)
        result.append(by_date.get(key) or DailyReviewRecord(date=key))
    return result


class ReviewHistoryStore:
    """
    Loads and saves the review history under a single storage key.

    Args:
        store: Persistent store used for durability.
        key: Storage key of the history array.
        max_days: Retention window applied on every save.
    """

    def __init__(self, store: PersistentStore, key: str, max_days: int = MAX_HISTORY_DAYS):
        self.store = store
        self.key = key
        self.max_days = max_days

    def load(self) -> list[DailyReviewRecord]:
        """Read the history, dropping records that fail validation."""
        result = self.store.get_json(self.key, [], parse_json_list)
        if result.error:
            self.store.notify(result.error)

        records: dict[str, DailyReviewRecord] = {}
        dropped = 0
        for item in result.data or []:
            try:
                record = DailyReviewRecordSchema.model_validate(item).to_domain()
            except ValidationError:
                dropped += 1
                continue
            records[record.date] = record
        if dropped:
            logger.warning(f"Dropped {dropped} invalid review record(s) from '{self.key}'")
        return _sorted(records)

    def save(self, history: list[DailyReviewRecord], today: date | None = None) -> None:
        result = self.store.set_json(self.key, self.dump(history, today))
        if result.error:
            self.store.notify(result.error)

    def dump(self, history: list[DailyReviewRecord], today: date | None = None) -> list[dict]:
        """JSON-ready pruned history, as written by `save`."""
        pruned = prune_history(history, today, self.max_days)
        return [DailyReviewRecordSchema.from_domain(record).dump() for record in pruned]

    def record(
        self,
        card_id: str,
        quality: int,
        session_minutes: float = 0,
        today: date | None = None,
    ) -> list[DailyReviewRecord]:
        """Load, record one review, save. Returns the saved history."""
        history = record_review(self.load(), card_id, quality, session_minutes, today)
        self.save(history, today)
        return prune_history(history, today, self.max_days)
