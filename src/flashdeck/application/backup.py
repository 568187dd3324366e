"""
Backup Service — full export and import of the learner's data.

The export is a single versioned document. Import validates the whole
document first, then restores key by key; a failure on one key does not roll
back keys already restored.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from flashdeck.domain.constants import EXPORT_VERSION
from flashdeck.domain.models import StorageKeys
from flashdeck.infrastructure.persistence import PersistentStore

from .cards import CardRepository, PackRepository
from .history import ReviewHistoryStore
from .schemas import (
    CardSchema,
    ComputedStatsSchema,
    DailyReviewRecordSchema,
    ExportBundle,
    PackSchema,
    StreakHistorySchema,
    parse_computed_stats,
)
from .streaks import StreakRepository
from .utils.dates import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    restored: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass(frozen=True)
class DataSummary:
    total_cards: int
    total_packs: int
    total_reviews: int
    streak_days: int
    oldest_card_date: datetime | None


class BackupService:
    def __init__(
        self,
        store: PersistentStore,
        keys: StorageKeys,
        cards: CardRepository,
        packs: PackRepository,
        history: ReviewHistoryStore,
        streaks: StreakRepository,
    ):
        self._store = store
        self._keys = keys
        self._cards = cards
        self._packs = packs
        self._history = history
        self._streaks = streaks

    def export_bundle(self, now: datetime | None = None) -> ExportBundle:
        stats = self._store.get_json(self._keys.stats, None, parse_computed_stats).data
        return ExportBundle(
            version=EXPORT_VERSION,
            exported_at=now or utcnow(),
            cards=[CardSchema.from_domain(c) for c in self._cards.load()],
            packs=[PackSchema.from_domain(p) for p in self._packs.load()],
            stats=ComputedStatsSchema.from_domain(stats) if stats else None,
            review_history=[DailyReviewRecordSchema.from_domain(r) for r in self._history.load()],
            streak_history=StreakHistorySchema.from_domain(self._streaks.load()),
        )

    def export_json(self, now: datetime | None = None) -> str:
        return json.dumps(self.export_bundle(now).dump(), indent=2)

    def import_data(self, data: str | dict[str, Any]) -> ImportReport:
        """
        Validate and restore an export.

        Raises:
            ValueError: If the document is not a valid export (pydantic's
                `ValidationError` included).
        """
        if isinstance(data, str):
            bundle = ExportBundle.model_validate_json(data)
        else:
            bundle = ExportBundle.model_validate(data)
        if bundle.version > EXPORT_VERSION:
            raise ValueError(f"Unsupported export version {bundle.version}")

        entries: dict[str, Any] = {
            self._keys.cards: self._cards.dump([c.to_domain() for c in bundle.cards]),
            self._keys.packs: self._packs.dump([p.to_domain() for p in bundle.packs]),
            self._keys.history: self._history.dump(
                [r.to_domain() for r in bundle.review_history]
            ),
            self._keys.streak: self._streaks.dump(bundle.streak_history.to_domain()),
        }
        if bundle.stats is not None:
            entries[self._keys.stats] = bundle.stats.dump()

        report = ImportReport()
        for key, value in entries.items():
            result = self._store.set_json(key, value, debounce=False)
            if result.error:
                self._store.notify(result.error)
                report.failed.append(key)
            else:
                report.restored.append(key)

        if report.failed:
            logger.warning(f"Import could not restore: {', '.join(report.failed)}")
        else:
            logger.info(f"Imported {len(bundle.cards)} card(s) from export of {bundle.exported_at}")
        return report

    def data_summary(self) -> DataSummary:
        """Counts shown before exporting or clearing."""
        cards = self._cards.load()
        created = [c.created_at for c in cards if c.created_at is not None]
        return DataSummary(
            total_cards=len(cards),
            total_packs=len(self._packs.load()),
            total_reviews=sum(r.total_reviews for r in self._history.load()),
            streak_days=self._streaks.load().longest_streak,
            oldest_card_date=min(created) if created else None,
        )

    def clear_all(self) -> list[str]:
        """Remove every data key. This cannot be undone."""
        cleared = self._store.clear(self._keys.data_keys())
        logger.info(f"Cleared {len(cleared)} storage key(s)")
        return cleared
