"""
Versioned milestone threshold tables.

Tables are data only. The engine reads them; tests can pass their own.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Sequence, Tuple

from scorekeeper.core.errors import InvalidThresholdError
from scorekeeper.models.streak import NextMilestone


@dataclass(frozen=True)
class MilestoneThreshold:
    threshold: int
    xp: int
    achievement_id: str


class MilestoneTable:
    """Ordered threshold -> XP lists per streak type."""

    def __init__(self, version: str, tiers: Mapping[str, Sequence[Tuple[int, int, str]]]):
        self.version = version
        self._tiers: dict[str, tuple[MilestoneThreshold, ...]] = {}
        for streak_type, rows in tiers.items():
            self._tiers[streak_type] = self._validate(streak_type, rows)

    @staticmethod
    def _validate(streak_type: str, rows: Iterable[Tuple[int, int, str]]) -> tuple[MilestoneThreshold, ...]:
        out = []
        previous = 0
        for threshold, xp, achievement_id in rows:
            if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold <= 0:
                raise InvalidThresholdError(f"{streak_type}: threshold must be a positive int, got {threshold!r}")
            if threshold <= previous:
                raise InvalidThresholdError(f"{streak_type}: thresholds must be strictly increasing ({previous} -> {threshold})")
            if not isinstance(xp, int) or xp < 0:
                raise InvalidThresholdError(f"{streak_type}: xp for {threshold} must be a non-negative int")
            out.append(MilestoneThreshold(threshold=threshold, xp=xp, achievement_id=achievement_id))
            previous = threshold
        return tuple(out)

    @property
    def streak_types(self) -> tuple[str, ...]:
        return tuple(self._tiers.keys())

    def thresholds(self, streak_type: str) -> tuple[MilestoneThreshold, ...]:
        return self._tiers.get(streak_type, ())

    def next_milestone(self, streak_type: str, streak: int) -> NextMilestone:
        """Next unreached threshold and percent progress from the previous one."""
        rows = self.thresholds(streak_type)
        upcoming: Optional[MilestoneThreshold] = next((m for m in rows if m.threshold > streak), None)
        if upcoming is None:
            return NextMilestone(threshold=None, xp=0, achievement_id=None, days_remaining=0, progress_percent=100)
        previous = max((m.threshold for m in rows if m.threshold <= streak), default=0)
        span = upcoming.threshold - previous
        percent = int(((streak - previous) / span) * 100) if span else 100
        return NextMilestone(
            threshold=upcoming.threshold,
            xp=upcoming.xp,
            achievement_id=upcoming.achievement_id,
            days_remaining=upcoming.threshold - max(0, streak),
            progress_percent=min(100, max(0, percent)),
        )


DEFAULT_MILESTONE_TABLE = MilestoneTable(
    version="2024.1",
    tiers={
        "full": (
            (3, 100, "sales_streak_3"),
            (7, 250, "sales_streak_7"),
            (14, 500, "sales_streak_14"),
            (21, 750, "sales_streak_21"),
            (30, 1000, "sales_streak_30"),
            (60, 2000, "sales_streak_60"),
            (90, 3000, "sales_streak_90"),
            (180, 5000, "sales_streak_180"),
            (365, 10000, "sales_streak_365"),
        ),
        "participation": (
            (7, 250, "participation_week"),
            (14, 500, "participation_fortnight"),
            (30, 1000, "participation_month"),
            (60, 2000, "participation_60"),
            (90, 3000, "participation_quarter"),
            (180, 5000, "participation_half_year"),
            (365, 10000, "participation_year"),
        ),
    },
)
