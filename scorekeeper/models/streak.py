from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

DisplayStreakType = Literal["full", "participation", "none"]


@dataclass(frozen=True)
class StreakResult:
    """Output of one backward ledger walk. UTC days only."""

    full_streak: int = 0
    participation_streak: int = 0
    has_full_today: bool = False
    has_participation_today: bool = False
    # set when the ledger could not be read; counters are then placeholders
    degraded: bool = False

    def as_tuple(self) -> tuple[int, int, bool, bool]:
        return (self.full_streak, self.participation_streak, self.has_full_today, self.has_participation_today)

    @property
    def display_streak(self) -> int:
        return self.full_streak if self.full_streak > 0 else self.participation_streak

    @property
    def display_type(self) -> DisplayStreakType:
        if self.full_streak > 0:
            return "full"
        if self.participation_streak > 0:
            return "participation"
        return "none"

    @property
    def perfect_days(self) -> int:
        return min(self.full_streak, self.participation_streak)


ZERO_STREAKS = StreakResult()
DEGRADED_STREAKS = StreakResult(degraded=True)


@dataclass(frozen=True)
class NextMilestone:
    threshold: Optional[int]
    xp: int
    achievement_id: Optional[str]
    days_remaining: int
    progress_percent: int

    def to_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "xp": self.xp,
            "achievement_id": self.achievement_id,
            "days_remaining": self.days_remaining,
            "progress_percent": self.progress_percent,
        }
