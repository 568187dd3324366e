"""
Domain models for cards, review history and streaks.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum

from .constants import DEFAULT_EASE_FACTOR, DEFAULT_KEY_PREFIX


class QualityRating(IntEnum):
    """
    Learner's self-reported recall outcome for one review.

    The integer value is the SM-2 quality on the 0-5 scale.
    """

    FAIL = 0
    HARD = 3
    GOOD = 4
    EASY = 5

    @property
    def label(self) -> str:
        return _RATING_LABELS[self]

    @classmethod
    def parse(cls, value: "str | int | QualityRating") -> "QualityRating":
        """Accept a rating label ("again", "good", ...), a member name or its number."""
        if isinstance(value, QualityRating):
            return value
        if isinstance(value, int):
            return cls(value)
        text = value.strip().lower()
        if text.isdigit():
            return cls(int(text))
        for rating, label in _RATING_LABELS.items():
            if text in (label.lower(), rating.name.lower()):
                return rating
        raise ValueError(f"Unknown quality rating: {value!r}")


_RATING_LABELS = {
    QualityRating.FAIL: "Again",
    QualityRating.HARD: "Hard",
    QualityRating.GOOD: "Good",
    QualityRating.EASY: "Easy",
}


@dataclass
class Card:
    """
    A flashcard saved by the learner.

    Attributes:
        id: Opaque unique identifier.
        source_type: What the card was created from ("milestone" or "concept").
        source_id: Identifier of the source content.
        pack_ids: Packs the card belongs to.
        created_at: Creation timestamp (aware, UTC).
        ease_factor: SM-2 multiplier in [1.3, 3.0].
        interval: Days until next review.
        repetitions: Consecutive successful reviews since last failure.
        next_review_date: When the card is next due; None means due immediately.
        last_reviewed_at: Timestamp of the last review; None if never reviewed.
    """

    id: str
    source_type: str = "concept"
    source_id: str = ""
    pack_ids: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0
    repetitions: int = 0
    next_review_date: datetime | None = None
    last_reviewed_at: datetime | None = None

    @property
    def is_new(self) -> bool:
        return self.last_reviewed_at is None


@dataclass
class Pack:
    """A named collection for organizing cards."""

    id: str
    name: str
    color: str
    created_at: datetime | None = None
    description: str | None = None
    is_default: bool = False


@dataclass(frozen=True)
class SchedulingUpdate:
    """Scheduling fields produced by one SM-2 step."""

    ease_factor: float
    interval: int
    repetitions: int
    next_review_date: datetime


@dataclass
class DailyReviewRecord:
    """
    Review activity for one calendar day.

    `date` is the canonical YYYY-MM-DD key; lexical order equals date order.
    """

    date: str
    total_reviews: int = 0
    again_count: int = 0
    hard_count: int = 0
    good_count: int = 0
    easy_count: int = 0
    unique_cards_reviewed: list[str] = field(default_factory=list)
    minutes_studied: float = 0

    @property
    def correct_reviews(self) -> int:
        # Anything not rated "Again"
        return self.hard_count + self.good_count + self.easy_count


@dataclass(frozen=True)
class StreakAchievement:
    milestone: int
    achieved_at: datetime


@dataclass
class StreakHistory:
    current_streak: int = 0
    longest_streak: int = 0
    last_study_date: str | None = None
    achievements: list[StreakAchievement] = field(default_factory=list)


@dataclass(frozen=True)
class StreakState:
    current_streak: int
    last_study_date: str | None


@dataclass(frozen=True)
class MilestoneProgress:
    next_milestone: int | None
    progress: int  # percentage 0-100
    days_remaining: int


@dataclass(frozen=True)
class RetentionPoint:
    date: str
    retention_rate: float


@dataclass(frozen=True)
class ForecastDay:
    date: str
    count: int


@dataclass
class ComputedStats:
    """Display-ready statistics derived from the card set and review history."""

    # Counts
    total_cards: int
    mastered_cards: int
    learning_cards: int
    new_cards: int

    # Streaks
    current_streak: int
    longest_streak: int
    last_study_date: str | None

    # Performance
    retention_rate_7d: float
    retention_rate_30d: float
    average_ease_factor: float
    total_reviews_all_time: int
    total_minutes_studied: float

    # Insights
    most_challenging_card_ids: list[str]
    overdue_card_ids: list[str]

    # Forecast
    due_today: int
    due_tomorrow: int
    due_this_week: int


@dataclass(frozen=True)
class StorageKeys:
    """Top-level keys used in the storage substrate."""

    cards: str
    packs: str
    stats: str
    history: str
    streak: str
    journal: str

    @classmethod
    def from_prefix(cls, prefix: str = DEFAULT_KEY_PREFIX) -> "StorageKeys":
        return cls(
            cards=f"{prefix}-cards",
            packs=f"{prefix}-packs",
            stats=f"{prefix}-stats",
            history=f"{prefix}-history",
            streak=f"{prefix}-streak",
            journal=f"{prefix}-journal",
        )

    def data_keys(self) -> list[str]:
        """Keys holding learner data (the journal is bookkeeping)."""
        return [self.cards, self.packs, self.stats, self.history, self.streak]
