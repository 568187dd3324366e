import json
from datetime import UTC, date, datetime, timedelta

import pytest

from flashdeck.application.cards import CardRepository
from flashdeck.application.history import ReviewHistoryStore
from flashdeck.application.review_service import CardNotFoundError, ReviewService
from flashdeck.application.streaks import StreakRepository
from flashdeck.domain.models import DailyReviewRecord, QualityRating

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


@pytest.fixture
def cards(store, keys):
    return CardRepository(store, keys.cards)


@pytest.fixture
def history(store, keys):
    return ReviewHistoryStore(store, keys.history)


@pytest.fixture
def streaks(store, keys):
    return StreakRepository(store, keys.streak)


@pytest.fixture
def service(store, cards, history, streaks):
    return ReviewService(store, cards, history, streaks)


def test_review_updates_card_history_and_streak(service, cards, history, streaks):
    card = cards.add("concept", "c-1", now=NOW)

    outcome = service.review(card.id, QualityRating.GOOD, session_minutes=1.5, now=NOW)

    assert outcome.card.interval == 1
    assert outcome.card.last_reviewed_at == NOW
    assert outcome.today.total_reviews == 1
    assert outcome.today.good_count == 1
    assert outcome.today.minutes_studied == 1.5
    assert outcome.streak.current_streak == 1
    assert outcome.new_achievements == []

    assert cards.get(card.id).repetitions == 1
    assert history.load()[0].unique_cards_reviewed == [card.id]
    assert streaks.load().current_streak == 1


def test_review_lands_all_keys_together(service, cards, store, backend, keys, timers):
    card = cards.add("concept", "c-1", now=NOW)
    store.flush()

    service.review(card.id, QualityRating.EASY, now=NOW)
    # Nothing reaches the substrate until the group fires
    assert keys.history not in backend.data
    timers.fire_all()

    saved_cards = json.loads(backend.data[keys.cards])["cards"]
    assert saved_cards[0]["repetitions"] == 1
    assert json.loads(backend.data[keys.history])[0]["easyCount"] == 1
    assert json.loads(backend.data[keys.streak])["currentStreak"] == 1
    assert keys.journal not in backend.data


def test_review_unknown_card(service):
    with pytest.raises(CardNotFoundError):
        service.review("card_missing", QualityRating.GOOD, now=NOW)


def test_failure_counts_as_again(service, cards):
    card = cards.add("concept", "c-1", now=NOW)
    outcome = service.review(card.id, QualityRating.FAIL, now=NOW)

    assert outcome.today.again_count == 1
    assert outcome.card.repetitions == 0
    # A review is a study day even when it fails
    assert outcome.streak.current_streak == 1


def test_review_reaching_milestone_reports_it(service, cards, history):
    card = cards.add("concept", "c-1", now=NOW)
    today = date(2024, 6, 15)
    history.save(
        [
            DailyReviewRecord(date=(today - timedelta(days=d)).isoformat(), total_reviews=1)
            for d in range(1, 7)
        ],
        today,
    )

    outcome = service.review(card.id, QualityRating.GOOD, now=NOW)
    assert outcome.streak.current_streak == 7
    assert [a.milestone for a in outcome.new_achievements] == [7]

    again = service.review(card.id, QualityRating.GOOD, now=NOW + timedelta(minutes=5))
    assert again.new_achievements == []
    assert len(again.streak.achievements) == 1


def test_end_session_adds_minutes(service):
    record = service.end_session(20, date(2024, 6, 15))
    assert record.minutes_studied == 20
    assert record.total_reviews == 0


def test_preview(service, cards):
    card = cards.add("concept", "c-1", now=NOW)
    preview = service.preview(card)
    assert preview == {
        QualityRating.FAIL: 1,
        QualityRating.HARD: 1,
        QualityRating.GOOD: 1,
        QualityRating.EASY: 1,
    }
