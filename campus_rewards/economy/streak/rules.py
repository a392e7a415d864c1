from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from campus_rewards.economy.streak.constants import STREAK_CAP
from campus_rewards.economy.streak.types import StreakSnapshot


def advance_streak(snapshot: StreakSnapshot, *, local_date: date) -> StreakSnapshot:
    """Counts one activity day: consecutive days grow the streak, a gap resets it to 1."""
    if snapshot.last_activity_local_date == local_date:
        return snapshot

    if snapshot.last_activity_local_date == local_date - timedelta(days=1):
        current = min(snapshot.current_streak + 1, STREAK_CAP)
    else:
        current = 1

    return replace(
        snapshot,
        current_streak=current,
        longest_streak=max(snapshot.longest_streak, current),
        last_activity_local_date=local_date,
    )


def points_for_streak(current_streak: int) -> int:
    return max(0, min(current_streak, STREAK_CAP))
