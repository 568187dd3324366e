import json
from datetime import UTC, date, datetime, timedelta

import pytest

from flashdeck.application.backup import BackupService
from flashdeck.application.cards import CardRepository, PackRepository
from flashdeck.application.history import ReviewHistoryStore
from flashdeck.application.streaks import StreakRepository
from flashdeck.domain.models import DailyReviewRecord, StreakHistory
from flashdeck.infrastructure.adapters import MemoryStorageBackend
from flashdeck.infrastructure.persistence import PersistentStore

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


def _services(store, keys):
    cards = CardRepository(store, keys.cards)
    packs = PackRepository(store, keys.packs, cards)
    history = ReviewHistoryStore(store, keys.history)
    streaks = StreakRepository(store, keys.streak)
    return BackupService(store, keys, cards, packs, history, streaks), cards, history, streaks


@pytest.fixture
def backup(store, keys):
    return _services(store, keys)


def test_export_contains_everything(backup):
    service, cards, history, streaks = backup
    cards.add("concept", "c-1", now=NOW)
    recent = date.today().isoformat()
    history.save([DailyReviewRecord(date=recent, total_reviews=3, good_count=3)])
    streaks.save(StreakHistory(current_streak=1, longest_streak=4, last_study_date=recent))

    exported = json.loads(service.export_json(NOW))

    assert exported["version"] == 1
    assert exported["exportedAt"] == "2024-06-15T12:00:00.000Z"
    assert [c["sourceId"] for c in exported["cards"]] == ["c-1"]
    assert [p["name"] for p in exported["packs"]] == ["All Cards", "Recently Added"]
    assert exported["reviewHistory"][0]["totalReviews"] == 3
    assert exported["streakHistory"]["longestStreak"] == 4
    assert exported["stats"] is None


def test_export_then_import_into_fresh_store(backup, keys, timers):
    service, cards, history, _ = backup
    card = cards.add("concept", "c-1", now=NOW)
    history.save([DailyReviewRecord(date=date.today().isoformat(), total_reviews=2)])
    exported = service.export_json(NOW)

    fresh = PersistentStore(MemoryStorageBackend(), timer_factory=timers)
    target, target_cards, target_history, _ = _services(fresh, keys)
    report = target.import_data(exported)

    assert report.success
    assert set(report.restored) == {keys.cards, keys.packs, keys.history, keys.streak}
    assert [c.id for c in target_cards.load()] == [card.id]
    assert target_history.load()[0].total_reviews == 2


def test_import_writes_through_immediately(backup, backend, keys):
    service, *_ = backup
    payload = {
        "version": 1,
        "exportedAt": "2024-06-15T12:00:00.000Z",
        "cards": [{"id": "card_1", "sourceType": "milestone", "sourceId": "m-1"}],
    }
    report = service.import_data(payload)

    assert report.success
    assert json.loads(backend.data[keys.cards])["cards"][0]["id"] == "card_1"
    assert keys.stats not in report.restored


def test_import_rejects_invalid_documents(backup):
    service, *_ = backup
    with pytest.raises(ValueError):
        service.import_data("not json")
    with pytest.raises(ValueError):
        service.import_data({"exportedAt": "2024-06-15T12:00:00Z"})
    with pytest.raises(ValueError):
        service.import_data({"version": 1, "exportedAt": "2024-06-15T12:00:00Z",
                             "cards": [{"id": "x", "easeFactor": 12}]})


def test_import_rejects_newer_versions(backup):
    service, *_ = backup
    with pytest.raises(ValueError, match="Unsupported export version"):
        service.import_data({"version": 99, "exportedAt": "2024-06-15T12:00:00Z"})


def test_import_prunes_old_history(backup):
    service, _, history, _ = backup
    old = (date.today() - timedelta(days=200)).isoformat()
    recent = date.today().isoformat()
    service.import_data(
        {
            "version": 1,
            "exportedAt": "2024-06-15T12:00:00Z",
            "reviewHistory": [
                {"date": old, "totalReviews": 1},
                {"date": recent, "totalReviews": 1},
            ],
        }
    )
    assert [r.date for r in history.load()] == [recent]


def test_data_summary(backup):
    service, cards, history, streaks = backup
    cards.add("concept", "c-1", now=NOW)
    cards.add("concept", "c-2", now=NOW + timedelta(days=1))
    history.save([DailyReviewRecord(date=date.today().isoformat(), total_reviews=5)])
    streaks.save(StreakHistory(longest_streak=12))

    summary = service.data_summary()
    assert summary.total_cards == 2
    assert summary.total_packs == 2
    assert summary.total_reviews == 5
    assert summary.streak_days == 12
    assert summary.oldest_card_date == NOW


def test_clear_all(backup, store, backend, keys):
    service, cards, *_ = backup
    cards.add("concept", "c-1")
    store.flush()

    cleared = service.clear_all()
    assert keys.cards in cleared
    assert keys.cards not in backend.data
    assert cards.load() == []
