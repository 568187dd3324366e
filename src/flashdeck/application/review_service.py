"""
Review Service — Application layer orchestrator for study sessions.

One review: schedule the card, count it in today's history, recompute the
streak, then persist cards, history and streak as a single group write so
the three keys land together.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from flashdeck.domain.models import (
    Card,
    DailyReviewRecord,
    QualityRating,
    StreakAchievement,
    StreakHistory,
)
from flashdeck.infrastructure.persistence import PersistentStore

from .cards import CardRepository
from .history import ReviewHistoryStore, add_study_time, get_or_create_today_record, record_review
from .scheduler import apply_review, estimate_interval
from .streaks import StreakRepository, update_after_review
from .utils.dates import local_date, utcnow

logger = logging.getLogger(__name__)


class CardNotFoundError(LookupError):
    """No card with the requested id exists."""


@dataclass
class ReviewOutcome:
    card: Card
    today: DailyReviewRecord
    streak: StreakHistory
    new_achievements: list[StreakAchievement] = field(default_factory=list)


class ReviewService:
    def __init__(
        self,
        store: PersistentStore,
        cards: CardRepository,
        history: ReviewHistoryStore,
        streaks: StreakRepository,
    ):
        self._store = store
        self._cards = cards
        self._history = history
        self._streaks = streaks

    def review(
        self,
        card_id: str,
        quality: QualityRating | int,
        session_minutes: float = 0,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """
        Apply one review and persist its effects.

        Raises:
            CardNotFoundError: If `card_id` is unknown.
        """
        reference = now or utcnow()
        today = local_date(reference)

        cards = self._cards.load()
        card = next((c for c in cards if c.id == card_id), None)
        if card is None:
            raise CardNotFoundError(card_id)

        updated = apply_review(card, int(quality), now=reference)
        history = record_review(self._history.load(), card_id, int(quality), session_minutes, today)
        previous = self._streaks.load()
        streak = update_after_review(previous, history, today=today, now=reference)

        result = self._store.write_group(
            {
                self._cards.key: self._cards.dump(self._cards.replace_card(cards, updated)),
                self._history.key: self._history.dump(history, today),
                self._streaks.key: self._streaks.dump(streak),
            }
        )
        if result.error:
            self._store.notify(result.error)

        logger.debug(
            f"Reviewed {card_id} with quality {int(quality)}: "
            f"next in {updated.interval} day(s)"
        )
        return ReviewOutcome(
            card=updated,
            today=get_or_create_today_record(history, today),
            streak=streak,
            new_achievements=streak.achievements[len(previous.achievements) :],
        )

    def end_session(self, minutes: float, today: date | None = None) -> DailyReviewRecord:
        """Record study time for a session that ended; returns today's record."""
        history = add_study_time(self._history.load(), minutes, today)
        self._history.save(history, today)
        return get_or_create_today_record(history, today)

    def preview(self, card: Card) -> dict[QualityRating, int]:
        """Interval the card would get for each rating."""
        return {
            rating: estimate_interval(rating, card.ease_factor, card.interval, card.repetitions)
            for rating in QualityRating
        }
