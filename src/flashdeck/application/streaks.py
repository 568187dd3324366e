"""
Study streaks and milestone achievements.

A streak counts consecutive calendar days with at least one review, ending
today or yesterday. Achievements are append-only and recorded at most once
per milestone.
"""

import logging
from dataclasses import replace
from datetime import date, datetime

from flashdeck.domain.constants import STREAK_MILESTONES
from flashdeck.domain.models import (
    DailyReviewRecord,
    MilestoneProgress,
    StreakAchievement,
    StreakHistory,
    StreakState,
)
from flashdeck.infrastructure.persistence import PersistentStore

from .schemas import StreakHistorySchema, parse_streak_history
from .utils.dates import previous_day_key, today_key, utcnow

logger = logging.getLogger(__name__)

MILESTONE_LABELS = {
    7: "1 Week",
    14: "2 Weeks",
    30: "1 Month",
    60: "2 Months",
    100: "100 Days",
    180: "6 Months",
    365: "1 Year",
}


def compute_streak(history: list[DailyReviewRecord], today: date | None = None) -> StreakState:
    """
    Derive the current streak from the review history.

    When the most recent study day is neither today nor yesterday the streak
    is broken: 0 is returned but `last_study_date` still names that day.
    """
    studied = sorted({r.date for r in history if r.total_reviews > 0}, reverse=True)
    if not studied:
        return StreakState(current_streak=0, last_study_date=None)

    current_key = today_key(today)
    most_recent = studied[0]
    if most_recent not in (current_key, previous_day_key(current_key)):
        return StreakState(current_streak=0, last_study_date=most_recent)

    streak = 0
    expected = most_recent
    for day in studied:
        if day != expected:
            break
        streak += 1
        expected = previous_day_key(expected)

    return StreakState(current_streak=streak, last_study_date=most_recent)


def check_for_new_milestones(
    current_streak: int,
    existing: list[StreakAchievement],
    now: datetime | None = None,
) -> list[StreakAchievement]:
    """Achievements for every milestone reached and not already recorded."""
    earned = {a.milestone for a in existing}
    achieved_at = now or utcnow()
    return [
        StreakAchievement(milestone=milestone, achieved_at=achieved_at)
        for milestone in STREAK_MILESTONES
        if current_streak >= milestone and milestone not in earned
    ]


def update_after_review(
    streak_history: StreakHistory,
    review_history: list[DailyReviewRecord],
    today: date | None = None,
    now: datetime | None = None,
) -> StreakHistory:
    state = compute_streak(review_history, today)
    new_achievements = check_for_new_milestones(
        state.current_streak, streak_history.achievements, now
    )
    for achievement in new_achievements:
        logger.info(f"Streak milestone reached: {milestone_label(achievement.milestone)}")

    return replace(
        streak_history,
        current_streak=state.current_streak,
        longest_streak=max(streak_history.longest_streak, state.current_streak),
        last_study_date=state.last_study_date,
        achievements=[*streak_history.achievements, *new_achievements],
    )


def next_milestone(current_streak: int) -> int | None:
    for milestone in STREAK_MILESTONES:
        if current_streak < milestone:
            return milestone
    return None


def milestone_progress(current_streak: int) -> MilestoneProgress:
    """
    Progress toward the next unearned milestone.

    The previous milestone at or below the current streak is the 0% anchor.
    """
    upcoming = next_milestone(current_streak)
    if upcoming is None:
        return MilestoneProgress(next_milestone=None, progress=100, days_remaining=0)

    previous = 0
    for milestone in (0, *STREAK_MILESTONES):
        if milestone < upcoming and milestone <= current_streak:
            previous = milestone

    span = upcoming - previous
    progress = int((current_streak - previous) / span * 100 + 0.5) if span > 0 else 0
    return MilestoneProgress(
        next_milestone=upcoming,
        progress=progress,
        days_remaining=upcoming - current_streak,
    )


def milestone_label(milestone: int) -> str:
    return MILESTONE_LABELS.get(milestone, f"{milestone} Days")


def streak_message(current_streak: int, studied_today: bool) -> str:
    """Encouraging one-liner for the streak display."""
    if current_streak == 0:
        return "Great start! Keep it going!" if studied_today else "Start a streak today!"

    if not studied_today:
        return f"Study today to continue your {current_streak} day streak!"

    progress = milestone_progress(current_streak)
    if progress.next_milestone is None:
        return "Amazing! You've achieved all milestones!"

    label = milestone_label(progress.next_milestone)
    if progress.days_remaining == 1:
        return f"Just 1 more day to {label}!"
    if progress.days_remaining <= 3:
        return f"Only {progress.days_remaining} days to {label}!"
    return f"{progress.days_remaining} days to {label}"


class StreakRepository:
    """Persists the single `StreakHistory` record."""

    def __init__(self, store: PersistentStore, key: str):
        self.store = store
        self.key = key

    def load(self) -> StreakHistory:
        result = self.store.get_json(self.key, None, parse_streak_history)
        if result.error:
            self.store.notify(result.error)
        return result.data or StreakHistory()

    def save(self, streak: StreakHistory) -> None:
        result = self.store.set_json(self.key, self.dump(streak))
        if result.error:
            self.store.notify(result.error)

    def dump(self, streak: StreakHistory) -> dict:
        return StreakHistorySchema.from_domain(streak).dump()
