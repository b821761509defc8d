"""
Season Scoring Engine

Pure, deterministic conversion of activities to points and of season points
to SR and rank. No storage, no clock reads unless a time is passed in.

Points -> SR is piecewise linear over seven bands, each band product floored:
- 0-100 pts     -> 0-1499 SR     (x15)
- 100-300 pts   -> 1500-1999 SR  (x2.5)
- 300-600 pts   -> 2000-2499 SR  (x1.67)
- 600-1000 pts  -> 2500-2999 SR  (x1.25)
- 1000-1500 pts -> 3000-3499 SR  (x1)
- 1500-2500 pts -> 3500-3999 SR  (x0.5)
- 2500+ pts     -> 4000-5000 SR  (x0.4, capped)
"""

import calendar
import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from scorekeeper.core.config import settings
from scorekeeper.core.errors import InvalidActivityTypeError, ValidationError
from scorekeeper.models.activity import ACTIVITY_TYPES
from scorekeeper.models.season import RankTier, SeasonRank


RANK_TIERS: Tuple[RankTier, ...] = (
    RankTier(name="bronze", label="Bronze", tier=1, sr_min=0, sr_max=1499, starting_bonus=0, keep_divisions=0),
    RankTier(name="silver", label="Silver", tier=2, sr_min=1500, sr_max=1999, starting_bonus=50, keep_divisions=2),
    RankTier(name="gold", label="Gold", tier=3, sr_min=2000, sr_max=2499, starting_bonus=100, keep_divisions=2),
    RankTier(name="platinum", label="Platinum", tier=4, sr_min=2500, sr_max=2999, starting_bonus=200, keep_divisions=2),
    RankTier(name="diamond", label="Diamond", tier=5, sr_min=3000, sr_max=3499, starting_bonus=300, keep_divisions=1),
    RankTier(name="master", label="Master", tier=6, sr_min=3500, sr_max=3999, starting_bonus=500, keep_divisions=1),
    RankTier(name="grandmaster", label="Grandmaster", tier=7, sr_min=4000, sr_max=5000, starting_bonus=750, keep_divisions=0),
)

DIVISION_LABELS = {1: "I", 2: "II", 3: "III", 4: "IV", 5: "V"}

_SEASON_ID = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class SeasonScoringEngine:
    """Pure season scoring."""

    SR_MIN = 0
    SR_MAX = 5000
    DIVISIONS = 5

    FLAT_POINTS = {
        "login": 1,
        "dailyIntentions": 10,
        "nightlyWrap": 10,
        "cheerSent": 1,
        "cheerReceived": 1,
    }
    POLICY_POINTS = {
        "house": 50,
        "car": 50,
        "condo": 50,
        "life": 50,
        "other": 20,
    }
    CAPPED_ACTIVITIES = ("cheerSent", "cheerReceived")
    ACTIVITY_COUNTERS = {
        "login": "login_days",
        "dailyIntentions": "intentions_completed",
        "nightlyWrap": "wraps_completed",
        "cheerSent": "cheers_sent",
        "cheerReceived": "cheers_received",
    }

    # Points -> SR -----------------------------------------------------

    @staticmethod
    def points_to_sr(points: int) -> int:
        """Piecewise-linear points to SR, floored per band, clamped to [0, 5000]."""
        p = max(0, int(points or 0))
        # integer arithmetic keeps each band product an exact floor
        if p < 100:
            return p * 15
        if p < 300:
            return 1500 + (p - 100) * 5 // 2
        if p < 600:
            return 2000 + (p - 300) * 167 // 100
        if p < 1000:
            return 2500 + (p - 600) * 5 // 4
        if p < 1500:
            return 3000 + (p - 1000)
        if p < 2500:
            return 3500 + (p - 1500) // 2
        return min(SeasonScoringEngine.SR_MAX, 4000 + (p - 2500) * 2 // 5)

    @staticmethod
    def tier_for_sr(sr: int) -> RankTier:
        clamped = max(SeasonScoringEngine.SR_MIN, min(SeasonScoringEngine.SR_MAX, sr))
        for tier in RANK_TIERS:
            if tier.sr_min <= clamped <= tier.sr_max:
                return tier
        return RANK_TIERS[0]

    @staticmethod
    def division_for_sr(sr: int, tier: RankTier) -> int:
        span = tier.sr_max - tier.sr_min
        # 5 - floor((sr - srMin) / (span / 5)), without float division
        step = (sr - tier.sr_min) * SeasonScoringEngine.DIVISIONS // span
        return max(1, min(SeasonScoringEngine.DIVISIONS, SeasonScoringEngine.DIVISIONS - step))

    @staticmethod
    def compute_rank(season_points: int) -> SeasonRank:
        """Derive SR, tier, division and next-division progress. Never raises."""
        try:
            points = max(0, int(season_points or 0))
        except (TypeError, ValueError):
            points = 0
        sr = SeasonScoringEngine.points_to_sr(points)
        tier = SeasonScoringEngine.tier_for_sr(sr)
        division = SeasonScoringEngine.division_for_sr(sr, tier)

        size = (tier.sr_max - tier.sr_min) / SeasonScoringEngine.DIVISIONS
        band_index = SeasonScoringEngine.DIVISIONS - division  # 0 = lowest division
        band_floor = tier.sr_min + band_index * size
        band_ceiling = band_floor + size
        progress = int(((sr - band_floor) / size) * 100) if size else 100
        progress = max(0, min(100, progress))

        sr_to_next: Optional[int]
        if division > 1:
            sr_to_next = max(1, math.ceil(band_ceiling - sr))
        elif tier.tier < len(RANK_TIERS):
            sr_to_next = RANK_TIERS[tier.tier].sr_min - sr
        else:
            sr_to_next = None
            progress = 100 if sr >= SeasonScoringEngine.SR_MAX else progress

        return SeasonRank(
            season_points=points,
            sr=sr,
            rank=tier.name,
            tier=tier.tier,
            division=division,
            display=f"{tier.label} {DIVISION_LABELS[division]}",
            sr_to_next_division=sr_to_next,
            division_progress=progress,
        )

    # Activity points --------------------------------------------------

    @staticmethod
    def normalize_policy_type(policy_type: Optional[str]) -> str:
        key = (policy_type or "").strip().lower()
        return key if key in SeasonScoringEngine.POLICY_POINTS else "other"

    @staticmethod
    def base_points(activity_type: str, policy_type: Optional[str] = None) -> int:
        if activity_type not in ACTIVITY_TYPES:
            raise InvalidActivityTypeError(f"Unknown activity type: {activity_type!r}")
        if activity_type == "policy":
            return SeasonScoringEngine.POLICY_POINTS[SeasonScoringEngine.normalize_policy_type(policy_type)]
        return SeasonScoringEngine.FLAT_POINTS[activity_type]

    @staticmethod
    def apply_goal_bonus(points: int, active_bonuses: int, rate: Optional[float] = None) -> int:
        """Flat +rate per active bonus flag, floored."""
        r = settings.GOAL_BONUS_RATE if rate is None else rate
        multiplier = 1 + r * max(0, active_bonuses)
        return int(math.floor(round(points * multiplier, 6)))

    @staticmethod
    def points_for(
        activity_type: str,
        *,
        policy_type: Optional[str] = None,
        active_bonuses: int = 0,
        rate: Optional[float] = None,
    ) -> int:
        base = SeasonScoringEngine.base_points(activity_type, policy_type)
        return SeasonScoringEngine.apply_goal_bonus(base, active_bonuses, rate)

    @staticmethod
    def activity_key(activity_type: str, reference_id: Optional[str] = None) -> str:
        """Idempotency key for an award; referenced activities are keyed per reference."""
        if reference_id:
            return f"{activity_type}:{reference_id}"
        return activity_type

    @staticmethod
    def counter_for(activity_type: str, policy_type: Optional[str] = None) -> str:
        """Season counter bumped by an awarded activity (policies count per product)."""
        if activity_type == "policy":
            return f"policies_{SeasonScoringEngine.normalize_policy_type(policy_type)}"
        if activity_type not in SeasonScoringEngine.ACTIVITY_COUNTERS:
            raise InvalidActivityTypeError(f"Unknown activity type: {activity_type!r}")
        return SeasonScoringEngine.ACTIVITY_COUNTERS[activity_type]

    # Seasons ----------------------------------------------------------

    @staticmethod
    def season_id_for(day: date) -> str:
        return f"{day.year:04d}-{day.month:02d}"

    @staticmethod
    def validate_season_id(season_id: str) -> str:
        if not isinstance(season_id, str) or not _SEASON_ID.match(season_id):
            raise ValidationError(f"Season ids look like YYYY-MM, got {season_id!r}")
        return season_id

    @staticmethod
    def previous_season_id(season_id: str) -> str:
        start, _ = SeasonScoringEngine.season_bounds(season_id)
        return SeasonScoringEngine.season_id_for(start - timedelta(days=1))

    @staticmethod
    def season_bounds(season_id: str) -> Tuple[date, date]:
        SeasonScoringEngine.validate_season_id(season_id)
        year, month = (int(part) for part in season_id.split("-"))
        last = calendar.monthrange(year, month)[1]
        return date(year, month, 1), date(year, month, last)

    @staticmethod
    def days_remaining(now: Optional[datetime] = None) -> int:
        """Whole days (rounded up) until the season ends at 23:59:59 UTC on the month's last day."""
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        _, end_day = SeasonScoringEngine.season_bounds(SeasonScoringEngine.season_id_for(current.date()))
        season_end = datetime(end_day.year, end_day.month, end_day.day, 23, 59, 59, tzinfo=timezone.utc)
        remaining = season_end - current
        return max(0, math.ceil(remaining / timedelta(days=1)))

    # Season transition ------------------------------------------------

    @staticmethod
    def rank_tier(name: str) -> RankTier:
        for tier in RANK_TIERS:
            if tier.name == name:
                return tier
        raise ValidationError(f"Unknown rank: {name!r}")

    @staticmethod
    def placement_for(last_rank: str, last_division: int) -> Tuple[RankTier, int]:
        """Soft-reset placement for next season.

        Ranks are counted as a ladder of divisions from Bronze V (0). The
        last finish drops by (5 - keep_divisions) steps, never below Bronze V.
        """
        divisions = SeasonScoringEngine.DIVISIONS
        tier = SeasonScoringEngine.rank_tier(last_rank)
        division = max(1, min(divisions, int(last_division)))

        ladder = (tier.tier - 1) * divisions + (divisions - division)
        placed = max(0, ladder - (divisions - tier.keep_divisions))
        new_tier = RANK_TIERS[min(len(RANK_TIERS) - 1, placed // divisions)]
        return new_tier, divisions - placed % divisions

    @staticmethod
    def starting_bonus(last_rank: str) -> int:
        """Season points seeded for the next season, by last season's rank."""
        return SeasonScoringEngine.rank_tier(last_rank).starting_bonus
