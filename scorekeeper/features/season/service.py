"""
Season point awards, standings and season transitions.

Every award is one ProgressDelta carrying its idempotency claim, so a retried
or concurrent duplicate commits nothing and returns 0 points.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from scorekeeper.core.config import settings
from scorekeeper.core.errors import InvalidActivityTypeError, ValidationError
from scorekeeper.core.logging import log_event
from scorekeeper.core.retry import RetryPolicy, call_with_retry
from scorekeeper.features.season.scoring_engine import DIVISION_LABELS, SeasonScoringEngine
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.features.storage.provider import get_store
from scorekeeper.models.activity import ACTIVITY_TYPES, REFERENCED_ACTIVITIES
from scorekeeper.models.progress import (
    GOAL_BONUS_TYPES,
    AwardClaim,
    DeltaOutcome,
    ProgressDelta,
    UserProgress,
)
from scorekeeper.models.season import SeasonRank, SeasonResult


class SeasonService:
    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._store = store
        self._retry_policy = retry_policy

    @property
    def store(self) -> ProgressStore:
        return self._store or get_store()

    def _retry(self, fn, operation: str):
        return call_with_retry(fn, policy=self._retry_policy, operation=operation)

    def award_activity_points(
        self,
        user_id: str,
        activity_type: str,
        context: Optional[dict] = None,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        """Award points for one activity. Returns points awarded (0 for duplicates and capped cheers).

        context keys: reference_id (required for policy and cheers), policy_type.
        """
        ctx = context or {}
        if activity_type not in ACTIVITY_TYPES:
            raise InvalidActivityTypeError(f"Unknown activity type: {activity_type!r}")
        reference_id = ctx.get("reference_id")
        if activity_type in REFERENCED_ACTIVITIES and not reference_id:
            raise ValidationError(f"{activity_type} awards require a reference_id")

        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        day = current.date()
        season_id = SeasonScoringEngine.season_id_for(day)

        progress = self._retry(lambda: self.store.get_user_progress(user_id, season_id), "season.read_progress")
        points = SeasonScoringEngine.points_for(
            activity_type,
            policy_type=ctx.get("policy_type"),
            active_bonuses=len(progress.goal_bonuses),
        )

        key = SeasonScoringEngine.activity_key(
            activity_type, reference_id if activity_type in REFERENCED_ACTIVITIES else None
        )
        if activity_type in SeasonScoringEngine.CAPPED_ACTIVITIES:
            claim = AwardClaim(day=day, activity_key=key, cap_prefix=f"{activity_type}:", cap=settings.MAX_CHEERS_PER_DAY)
        else:
            claim = AwardClaim(day=day, activity_key=key)

        delta = ProgressDelta(
            xp_delta=points,
            points_delta=points,
            season_id=season_id,
            points_day=day,
            peak_sr=SeasonScoringEngine.points_to_sr(progress.season_points + points),
            claim=claim,
            counter=SeasonScoringEngine.counter_for(activity_type, ctx.get("policy_type")),
        )
        outcome = self._retry(lambda: self.store.apply_progress_delta(user_id, delta), "season.award")

        if outcome is not DeltaOutcome.APPLIED:
            log_event(
                "info",
                "season.award.skipped",
                user_id=user_id,
                event_type=activity_type,
                extra={"outcome": outcome.value, "activity": key},
            )
            return 0

        log_event(
            "info",
            "season.award.applied",
            user_id=user_id,
            event_type=activity_type,
            extra={"outcome": outcome.value, "activity": key, "points": points, "season_id": season_id},
        )
        return points

    def apply_goal_bonus(self, user_id: str, bonus_type: str, *, now: Optional[datetime] = None) -> bool:
        """Activate an individual/team goal bonus for the current season. Not retroactive."""
        if bonus_type not in GOAL_BONUS_TYPES:
            raise ValidationError(f"Unknown goal bonus type: {bonus_type!r}")
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        season_id = SeasonScoringEngine.season_id_for(current.date())
        created = self._retry(
            lambda: self.store.set_goal_bonus(user_id, season_id, bonus_type), "season.goal_bonus"
        )
        log_event(
            "info",
            "season.goal_bonus",
            user_id=user_id,
            event_type=bonus_type,
            extra={"outcome": "applied" if created else "duplicate", "season_id": season_id},
        )
        return created

    def current_progress(self, user_id: str, *, now: Optional[datetime] = None) -> UserProgress:
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        season_id = SeasonScoringEngine.season_id_for(current.date())
        return self._retry(lambda: self.store.get_user_progress(user_id, season_id), "season.read_progress")

    def get_rank(self, user_id: str, *, now: Optional[datetime] = None) -> dict:
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        progress = self.current_progress(user_id, now=current)
        rank: SeasonRank = SeasonScoringEngine.compute_rank(progress.season_points)
        return {
            "user_id": user_id,
            "season_id": progress.season_id,
            "days_remaining": SeasonScoringEngine.days_remaining(current),
            "peak_sr": max(progress.peak_sr, rank.sr),
            "active_goal_bonuses": sorted(progress.goal_bonuses),
            **rank.to_dict(),
            "season_counters": dict(progress.season_counters),
            "policies_sold": progress.policies_sold(),
        }

    # Leaderboard and transitions --------------------------------------

    def get_leaderboard(
        self,
        season_id: Optional[str] = None,
        limit: int = 100,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        """Season standings ordered by SR (equivalently, season points)."""
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        sid = SeasonScoringEngine.validate_season_id(season_id or SeasonScoringEngine.season_id_for(current.date()))
        if limit < 1:
            raise ValidationError("limit must be positive")

        standings = self._retry(lambda: self.store.list_season_standings(sid, limit), "season.standings")
        entries = []
        for position, standing in enumerate(standings, start=1):
            rank = SeasonScoringEngine.compute_rank(standing.season_points)
            peak_sr = max(standing.peak_sr, rank.sr)
            entries.append({
                "position": position,
                "user_id": standing.user_id,
                "name": standing.name,
                "team_id": standing.team_id,
                "season_points": standing.season_points,
                "sr": rank.sr,
                "rank": rank.rank,
                "division": rank.division,
                "display": rank.display,
                "peak_sr": peak_sr,
                "peak_rank": SeasonScoringEngine.tier_for_sr(peak_sr).name,
            })
        return {"season_id": sid, "entries": entries}

    def end_season(self, season_id: str, *, now: Optional[datetime] = None) -> dict:
        """Snapshot every participant's final rank, division and points.

        Only seasons whose last day has passed can be ended. Running it again
        records nothing new. Season XP was already granted with each award, so
        nothing is converted here.
        """
        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        _, season_end = SeasonScoringEngine.season_bounds(season_id)
        if current.date() <= season_end:
            raise ValidationError(f"Season {season_id} has not ended yet")

        standings = self._retry(lambda: self.store.list_season_standings(season_id), "season.standings")
        recorded = 0
        for standing in standings:
            rank = SeasonScoringEngine.compute_rank(standing.season_points)
            result = SeasonResult(
                user_id=standing.user_id,
                season_id=season_id,
                season_points=standing.season_points,
                sr=rank.sr,
                rank=rank.rank,
                division=rank.division,
                peak_sr=max(standing.peak_sr, rank.sr),
                ended_at=current,
            )
            if self._retry(lambda: self.store.record_season_result(result), "season.record_result"):
                recorded += 1

        log_event(
            "info",
            "season.ended",
            event_type="season_end",
            extra={"season_id": season_id, "participants": len(standings), "recorded": recorded},
        )
        results = self._retry(lambda: self.store.list_season_results(season_id), "season.results")
        return {"season_id": season_id, "recorded": recorded, "results": [r.to_dict() for r in results]}

    def apply_season_transition(self, season_id: str) -> dict:
        """Place last season's finishers into season_id and seed their starting points.

        Placement drops each finisher by their rank's decay; the seeded points
        depend on last season's rank. Seeding is one claimed delta per user on
        the season's first day, so repeated transitions are no-ops.
        """
        season_start, _ = SeasonScoringEngine.season_bounds(season_id)
        previous = SeasonScoringEngine.previous_season_id(season_id)
        results = self._retry(lambda: self.store.list_season_results(previous), "season.results")

        placements = []
        for result in results:
            tier, division = SeasonScoringEngine.placement_for(result.rank, result.division)
            bonus = SeasonScoringEngine.starting_bonus(result.rank)
            outcome = DeltaOutcome.DUPLICATE
            if bonus > 0:
                progress = self._retry(
                    lambda: self.store.get_user_progress(result.user_id, season_id), "season.read_progress"
                )
                delta = ProgressDelta(
                    points_delta=bonus,
                    season_id=season_id,
                    # seeded points stay out of daily and lifetime totals
                    points_day=None,
                    peak_sr=SeasonScoringEngine.points_to_sr(progress.season_points + bonus),
                    claim=AwardClaim(day=season_start, activity_key="seasonPlacement"),
                )
                outcome = self._retry(
                    lambda: self.store.apply_progress_delta(result.user_id, delta), "season.placement"
                )
            placements.append({
                "user_id": result.user_id,
                "last_rank": result.rank,
                "last_division": result.division,
                "last_season_points": result.season_points,
                "placement_rank": tier.name,
                "placement_division": division,
                "placement_display": f"{tier.label} {DIVISION_LABELS[division]}",
                "starting_points": bonus,
                "applied": outcome is DeltaOutcome.APPLIED,
            })

        log_event(
            "info",
            "season.transition",
            event_type="season_transition",
            extra={
                "season_id": season_id,
                "previous_season_id": previous,
                "placed": sum(1 for p in placements if p["applied"]),
            },
        )
        return {"season_id": season_id, "previous_season_id": previous, "placements": placements}
