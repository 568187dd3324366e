"""
Persisted JSON shapes and their validators.

Every stored shape has a pydantic model with camelCase aliases and a
`to_domain` / `from_domain` pair. The `parse_*` functions are the typed
validators handed to the persistent store: they return the domain value or
raise `ValueError` (pydantic's `ValidationError` is one).
"""

from dataclasses import asdict
from datetime import UTC, datetime
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
)
from pydantic.alias_generators import to_camel

from flashdeck.application.utils.dates import format_timestamp
from flashdeck.domain.constants import DEFAULT_EASE_FACTOR, SCHEMA_VERSION
from flashdeck.domain.models import (
    Card,
    ComputedStats,
    DailyReviewRecord,
    Pack,
    StreakAchievement,
    StreakHistory,
)


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


Timestamp = Annotated[
    datetime,
    AfterValidator(_ensure_aware),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]
DateKey = Annotated[str, Field(pattern=r"^\d{4}-\d{2}-\d{2}$")]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def dump(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class CardSchema(CamelModel):
    id: str = Field(min_length=1)
    source_type: Literal["milestone", "concept"] = "concept"
    source_id: str = ""
    pack_ids: list[str] = Field(default_factory=list)
    created_at: Timestamp | None = None
    ease_factor: float = Field(default=DEFAULT_EASE_FACTOR, ge=1.3, le=3.0)
    interval: int = Field(default=0, ge=0)
    repetitions: int = Field(default=0, ge=0)
    next_review_date: Timestamp | None = None
    last_reviewed_at: Timestamp | None = None

    def to_domain(self) -> Card:
        return Card(**self.model_dump())

    @classmethod
    def from_domain(cls, card: Card) -> "CardSchema":
        return cls.model_validate(asdict(card))


class PackSchema(CamelModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=50)
    description: str | None = Field(default=None, max_length=200)
    color: str = Field(pattern=r"^#[0-9A-Fa-f]{6}$")
    is_default: bool = False
    created_at: Timestamp | None = None

    def to_domain(self) -> Pack:
        return Pack(**self.model_dump())

    @classmethod
    def from_domain(cls, pack: Pack) -> "PackSchema":
        return cls.model_validate(asdict(pack))


class StoredCards(CamelModel):
    cards: list[dict[str, Any]] = Field(default_factory=list)
    schema_version: int = SCHEMA_VERSION


class StoredPacks(CamelModel):
    packs: list[dict[str, Any]] = Field(default_factory=list)
    schema_version: int = SCHEMA_VERSION


class DailyReviewRecordSchema(CamelModel):
    date: DateKey
    total_reviews: int = Field(default=0, ge=0)
    again_count: int = Field(default=0, ge=0)
    hard_count: int = Field(default=0, ge=0)
    good_count: int = Field(default=0, ge=0)
    easy_count: int = Field(default=0, ge=0)
    unique_cards_reviewed: list[str] = Field(default_factory=list)
    minutes_studied: float = Field(default=0, ge=0)

    def to_domain(self) -> DailyReviewRecord:
        return DailyReviewRecord(**self.model_dump())

    @classmethod
    def from_domain(cls, record: DailyReviewRecord) -> "DailyReviewRecordSchema":
        return cls.model_validate(asdict(record))


class StreakAchievementSchema(CamelModel):
    milestone: int = Field(gt=0)
    achieved_at: Timestamp


class StreakHistorySchema(CamelModel):
    current_streak: int = Field(default=0, ge=0)
    longest_streak: int = Field(default=0, ge=0)
    last_study_date: DateKey | None = None
    achievements: list[StreakAchievementSchema] = Field(default_factory=list)

    def to_domain(self) -> StreakHistory:
        return StreakHistory(
            current_streak=self.current_streak,
            longest_streak=self.longest_streak,
            last_study_date=self.last_study_date,
            achievements=[
                StreakAchievement(milestone=a.milestone, achieved_at=a.achieved_at)
                for a in self.achievements
            ],
        )

    @classmethod
    def from_domain(cls, streak: StreakHistory) -> "StreakHistorySchema":
        return cls.model_validate(asdict(streak))


class ComputedStatsSchema(CamelModel):
    total_cards: int
    mastered_cards: int
    learning_cards: int
    new_cards: int
    current_streak: int
    longest_streak: int
    last_study_date: str | None
    # Digits stay lowercase in the stored keys
    retention_rate_7d: float = Field(alias="retentionRate7d")
    retention_rate_30d: float = Field(alias="retentionRate30d")
    average_ease_factor: float
    total_reviews_all_time: int
    total_minutes_studied: float
    most_challenging_card_ids: list[str]
    overdue_card_ids: list[str]
    due_today: int
    due_tomorrow: int
    due_this_week: int

    def to_domain(self) -> ComputedStats:
        return ComputedStats(**self.model_dump())

    @classmethod
    def from_domain(cls, stats: ComputedStats) -> "ComputedStatsSchema":
        return cls.model_validate(asdict(stats))


class ExportBundle(CamelModel):
    """Full backup of the learner's data."""

    version: int = Field(ge=1)
    exported_at: Timestamp
    cards: list[CardSchema] = Field(default_factory=list)
    packs: list[PackSchema] = Field(default_factory=list)
    stats: ComputedStatsSchema | None = None
    review_history: list[DailyReviewRecordSchema] = Field(default_factory=list)
    streak_history: StreakHistorySchema = Field(default_factory=StreakHistorySchema)


# ---------- Validators for the persistent store ----------


def parse_json_list(data: Any) -> list[Any]:
    """Accept any JSON array; item validation happens per record."""
    if not isinstance(data, list):
        raise ValueError("expected a JSON array")
    return list(data)


def parse_streak_history(data: Any) -> StreakHistory:
    return StreakHistorySchema.model_validate(data).to_domain()


def parse_computed_stats(data: Any) -> ComputedStats:
    return ComputedStatsSchema.model_validate(data).to_domain()


def is_valid_review_record(item: Any) -> bool:
    """Predicate used when salvaging individual records from corrupted history."""
    try:
        DailyReviewRecordSchema.model_validate(item)
    except ValidationError:
        return False
    return True


def is_valid_card(item: Any) -> bool:
    try:
        CardSchema.model_validate(item)
    except ValidationError:
        return False
    return True


def is_valid_pack(item: Any) -> bool:
    try:
        PackSchema.model_validate(item)
    except ValidationError:
        return False
    return True
