import json
from datetime import UTC, date, datetime

import pytest

from flashdeck.application.cards import CardRepository
from flashdeck.application.history import ReviewHistoryStore
from flashdeck.application.stats import StatsService
from flashdeck.application.streaks import StreakRepository
from flashdeck.domain.models import DailyReviewRecord, StreakHistory

TODAY = date(2024, 6, 15)
NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def repos(store, keys):
    return (
        CardRepository(store, keys.cards),
        ReviewHistoryStore(store, keys.history),
        StreakRepository(store, keys.streak),
    )


@pytest.fixture
def service(store, keys, repos):
    cards, history, streaks = repos
    return StatsService(store, keys.stats, cards, history, streaks)


def test_compute_persists_snapshot(service, store, backend, keys, repos):
    cards, _, _ = repos
    cards.add("concept", "c-1", now=NOW)

    stats = service.compute(TODAY, NOW)
    store.flush()

    assert stats.total_cards == 1
    saved = json.loads(backend.data[keys.stats])
    assert saved["totalCards"] == 1
    assert saved["dueToday"] == 1
    assert service.last_snapshot() == stats


def test_compute_without_persist(service, backend, keys, store):
    service.compute(TODAY, NOW, persist=False)
    store.flush()
    assert keys.stats not in backend.data


def test_stored_streak_is_rederived_from_history(service, store, repos):
    _, history, streaks = repos
    # The stored streak says 5, but the learner has not studied since 06-10
    streaks.save(StreakHistory(current_streak=5, longest_streak=5, last_study_date="2024-06-10"))
    history.save([DailyReviewRecord(date="2024-06-10", total_reviews=2)], TODAY)

    stats = service.compute(TODAY, NOW)
    assert stats.current_streak == 0
    assert stats.longest_streak == 5
    assert stats.last_study_date == "2024-06-10"


def test_last_snapshot_ignores_corrupt_data(service, backend, keys):
    backend.data[keys.stats] = json.dumps({"totalCards": "many"})
    assert service.last_snapshot() is None


def test_forecast_and_rolling_retention(service, repos):
    cards, history, _ = repos
    cards.add("concept", "c-1", now=NOW)
    history.save(
        [DailyReviewRecord(date="2024-06-15", total_reviews=4, good_count=3, again_count=1)],
        TODAY,
    )

    forecast = service.forecast(3, TODAY)
    assert [f.count for f in forecast] == [1, 0, 0]

    points = service.rolling_retention(2, TODAY)
    assert [p.retention_rate for p in points] == [0.75, 0.75]
