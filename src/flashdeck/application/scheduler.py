"""
SM-2 review scheduler.

Pure functions: no I/O and no state. Given a card's current scheduling
fields and a quality rating, compute the next ones.

Quality ratings used by the review UI:
    0 (Again): complete failure to recall
    3 (Hard):  correct with significant difficulty
    4 (Good):  correct after hesitation
    5 (Easy):  perfect instant response
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta

from flashdeck.application.utils.dates import utcnow
from flashdeck.domain.constants import (
    EASY_BONUS,
    FAILURE_INTERVAL,
    FIRST_SUCCESS_INTERVAL,
    MASTERED_INTERVAL_THRESHOLD,
    MAX_EASE_FACTOR,
    MIN_EASE_FACTOR,
    PASSING_QUALITY,
    SECOND_SUCCESS_INTERVAL,
)
from flashdeck.domain.models import Card, QualityRating, SchedulingUpdate


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_ease_factor(current_ease_factor: float, quality: int) -> float:
    """
    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), clamped to [1.3, 3.0].
    """
    delta = 0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02)
    return max(MIN_EASE_FACTOR, min(MAX_EASE_FACTOR, current_ease_factor + delta))


def compute_next(
    quality: int,
    current_ease_factor: float,
    current_interval: int,
    current_repetitions: int,
    now: datetime | None = None,
) -> SchedulingUpdate:
    """
    Calculate the next schedule based on recall quality.

    Args:
        quality: SM-2 quality (0-5); callers restrict it to QualityRating.
        current_ease_factor: Card's ease factor before this review.
        current_interval: Card's interval in days before this review.
        current_repetitions: Consecutive successes before this review.
        now: Reference time for the due date; defaults to the current UTC time.

    Returns:
        SchedulingUpdate with the new ease factor, interval, repetitions and due date.
    """
    new_ease_factor = calculate_ease_factor(current_ease_factor, quality)

    if quality < PASSING_QUALITY:
        new_repetitions = 0
        new_interval = FAILURE_INTERVAL
    else:
        new_repetitions = current_repetitions + 1
        if new_repetitions == 1:
            new_interval = FIRST_SUCCESS_INTERVAL
        elif new_repetitions == 2:
            new_interval = SECOND_SUCCESS_INTERVAL
        else:
            new_interval = _round_half_up(current_interval * new_ease_factor)

        if quality == QualityRating.EASY:
            new_interval = _round_half_up(new_interval * EASY_BONUS)

    reference = now or utcnow()
    return SchedulingUpdate(
        ease_factor=new_ease_factor,
        interval=new_interval,
        repetitions=new_repetitions,
        next_review_date=reference + timedelta(days=new_interval),
    )


def apply_review(card: Card, quality: int, now: datetime | None = None) -> Card:
    """Return a copy of `card` with the scheduling fields of one review applied."""
    reference = now or utcnow()
    update = compute_next(
        quality, card.ease_factor, card.interval, card.repetitions, now=reference
    )
    return replace(
        card,
        ease_factor=update.ease_factor,
        interval=update.interval,
        repetitions=update.repetitions,
        next_review_date=update.next_review_date,
        last_reviewed_at=reference,
    )


def estimate_interval(
    quality: int,
    current_ease_factor: float,
    current_interval: int,
    current_repetitions: int,
) -> int:
    """Interval the card would get if rated `quality` now (for previews)."""
    return compute_next(
        quality, current_ease_factor, current_interval, current_repetitions
    ).interval


def is_due(card: Card, now: datetime | None = None) -> bool:
    if card.next_review_date is None:
        return True
    return card.next_review_date <= (now or utcnow())


def is_mastered(card: Card) -> bool:
    return card.interval > MASTERED_INTERVAL_THRESHOLD


def format_interval(days: int) -> str:
    if days == 0:
        return "now"
    if days == 1:
        return "1 day"
    if days < 7:
        return f"{days} days"
    if days < 14:
        return "1 week"
    if days < 30:
        return f"{_round_half_up(days / 7)} weeks"
    if days < 60:
        return "1 month"
    return f"{_round_half_up(days / 30)} months"
