from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(slots=True)
class StreakSnapshot:
    current_streak: int
    longest_streak: int
    last_activity_local_date: date | None


@dataclass(slots=True)
class DailyAwardResult:
    user_id: int
    local_date: date
    eligible: bool
    points_awarded: int
    current_streak: int
    longest_streak: int
    points_balance: int
    idempotent_replay: bool
