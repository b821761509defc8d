"""
Progress domain models.

UserProgress is the merged read model for one user and one season: lifetime
counters (streaks, XP, milestones) plus the season's points. It is only ever
changed through a ProgressDelta committed by the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Literal, Optional

from scorekeeper.core.config import settings
from scorekeeper.core.errors import ValidationError

StreakType = Literal["full", "participation"]
GoalBonusType = Literal["individual", "team"]
GOAL_BONUS_TYPES: tuple[str, ...] = ("individual", "team")

# Per-season activity counters, one season_progress column each
SEASON_COUNTERS: tuple[str, ...] = (
    "login_days",
    "intentions_completed",
    "wraps_completed",
    "policies_house",
    "policies_car",
    "policies_condo",
    "policies_life",
    "policies_other",
    "cheers_sent",
    "cheers_received",
)


def level_for_xp(lifetime_xp: int, xp_per_level: Optional[int] = None) -> int:
    per_level = xp_per_level or settings.XP_PER_LEVEL
    return max(0, lifetime_xp) // per_level + 1


@dataclass(frozen=True)
class MilestoneAward:
    streak_type: StreakType
    threshold: int
    xp: int
    achievement_id: str
    awarded_at: datetime

    @property
    def key(self) -> str:
        return f"{self.streak_type}_{self.threshold}"

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "streak_type": self.streak_type,
            "threshold": self.threshold,
            "xp": self.xp,
            "achievement_id": self.achievement_id,
            "awarded_at": self.awarded_at.isoformat(),
        }


@dataclass
class UserProgress:
    user_id: str
    season_id: str
    full_streak: int = 0
    participation_streak: int = 0
    season_points: int = 0
    peak_sr: int = 0
    lifetime_xp: int = 0
    achieved_milestones: dict[str, MilestoneAward] = field(default_factory=dict)
    last_streak_update_date: Optional[date] = None
    # only the season's own days; wider windows go through ProgressStore.sum_activity
    day_points: dict[date, int] = field(default_factory=dict)
    goal_bonuses: set[str] = field(default_factory=set)
    season_counters: dict[str, int] = field(default_factory=lambda: dict.fromkeys(SEASON_COUNTERS, 0))

    @property
    def level(self) -> int:
        return level_for_xp(self.lifetime_xp)

    def has_milestone(self, key: str) -> bool:
        return key in self.achieved_milestones

    def policies_sold(self) -> dict[str, int]:
        return {
            name[len("policies_"):]: count
            for name, count in self.season_counters.items()
            if name.startswith("policies_")
        }


@dataclass(frozen=True)
class AwardClaim:
    """Idempotency claim {user, day, activity_key}, optionally capped per day.

    When cap_prefix is set, the claim is refused once `cap` claims whose key
    starts with cap_prefix already exist for that day.
    """

    day: date
    activity_key: str
    cap_prefix: Optional[str] = None
    cap: Optional[int] = None


@dataclass(frozen=True)
class StreakValues:
    full_streak: int
    participation_streak: int
    as_of: date


@dataclass(frozen=True)
class ProgressDelta:
    xp_delta: int = 0
    points_delta: int = 0
    season_id: Optional[str] = None
    points_day: Optional[date] = None
    peak_sr: Optional[int] = None
    new_milestones: tuple[MilestoneAward, ...] = ()
    streak_values: Optional[StreakValues] = None
    claim: Optional[AwardClaim] = None
    # season counter bumped by one; points_day None keeps the points out of daily totals
    counter: Optional[str] = None

    def validate(self) -> None:
        """Reject deltas that could lower a counter or lack their season."""
        if self.xp_delta < 0 or self.points_delta < 0:
            raise ValidationError("Progress deltas are additive only")
        if any(m.xp < 0 for m in self.new_milestones):
            raise ValidationError("Milestone XP must be non-negative")
        if (self.points_delta or self.counter) and self.season_id is None:
            raise ValidationError("Point and counter deltas need a season_id")
        if self.counter is not None and self.counter not in SEASON_COUNTERS:
            raise ValidationError(f"Unknown season counter: {self.counter!r}")
        if self.streak_values is not None and (
            self.streak_values.full_streak < 0 or self.streak_values.participation_streak < 0
        ):
            raise ValidationError("Streak values must be non-negative")


@dataclass(frozen=True)
class SeasonStanding:
    """One leaderboard row as read from storage, member fields joined in."""

    user_id: str
    season_id: str
    season_points: int
    peak_sr: int
    name: Optional[str] = None
    team_id: Optional[str] = None


class DeltaOutcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    CAPPED = "capped"


@dataclass(frozen=True)
class MemberProfile:
    """Read-only collaborator data used by the privacy projection."""

    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    team_id: Optional[str] = None
    team_role: Optional[str] = None
    weekly_goal: Optional[int] = None
    monthly_goal: Optional[int] = None
    member_since: Optional[datetime] = None
