"""
Caller-facing progress operations.

Chains ledger -> streaks -> milestones -> season points -> privacy view.
Reads degrade to zero-state; writes are single atomic deltas and surface
storage failures once retries are exhausted.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional

from scorekeeper.core.errors import InvalidActivityTypeError, TransientStorageError, ValidationError
from scorekeeper.core.logging import log_event
from scorekeeper.core.retry import RetryPolicy, call_with_retry
from scorekeeper.features.ledger.reader import ActivityLedgerReader
from scorekeeper.features.milestones.service import MilestoneEngine
from scorekeeper.features.privacy.projection import (
    RELATIONSHIPS,
    filter_sale_activity,
    project_view,
    resolve_relationship,
)
from scorekeeper.features.season.scoring_engine import SeasonScoringEngine
from scorekeeper.features.season.service import SeasonService
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.features.storage.provider import get_store
from scorekeeper.features.streaks.service import StreakCalculator
from scorekeeper.models.activity import CHECK_IN_SLOTS, REFERENCED_ACTIVITIES, SaleRecord
from scorekeeper.models.progress import StreakValues, UserProgress, level_for_xp
from scorekeeper.models.streak import StreakResult

# Activities logged through log_daily_activity; sales go through log_sale
DAILY_ACTIVITY_TYPES = ("login", "dailyIntentions", "nightlyWrap", "cheerSent", "cheerReceived")

EPOCH = date(1970, 1, 1)

# Default window of the sale feed, today included
SALE_FEED_DAYS = 30


def _utc(now: Optional[datetime]) -> datetime:
    return (now or datetime.now(timezone.utc)).astimezone(timezone.utc)


class ProgressService:
    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        *,
        streaks: Optional[StreakCalculator] = None,
        milestones: Optional[MilestoneEngine] = None,
        season: Optional[SeasonService] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._store = store
        self._retry_policy = retry_policy
        self.streaks = streaks or StreakCalculator(ActivityLedgerReader(store, retry_policy=retry_policy))
        self.milestones = milestones or MilestoneEngine(store, retry_policy=retry_policy)
        self.season = season or SeasonService(store, retry_policy=retry_policy)

    @property
    def store(self) -> ProgressStore:
        return self._store or get_store()

    def _retry(self, fn, operation: str):
        return call_with_retry(fn, policy=self._retry_policy, operation=operation)

    # Streaks ----------------------------------------------------------

    def get_streak_status(self, user_id: str, *, now: Optional[datetime] = None) -> dict:
        """Recompute streaks, award newly reached milestones and persist the new values."""
        current = _utc(now)
        today = current.date()
        season_id = SeasonScoringEngine.season_id_for(today)

        result = self.streaks.compute_streaks(user_id, today)

        if result.degraded:
            # show the last committed values rather than zeros, or zeros if progress is down too
            try:
                progress = self._retry(lambda: self.store.get_user_progress(user_id, season_id), "progress.read")
            except TransientStorageError:
                progress = UserProgress(user_id=user_id, season_id=season_id)
            shown = StreakResult(
                full_streak=progress.full_streak,
                participation_streak=progress.participation_streak,
                degraded=True,
            )
            return {
                "user_id": user_id,
                "date": today.isoformat(),
                "degraded": True,
                **self.streaks.describe(shown),
                "xp_awarded": 0,
                "new_milestones": [],
                "lifetime_xp": progress.lifetime_xp,
                "level": progress.level,
                "achieved_milestones": sorted(progress.achieved_milestones),
            }

        progress = self._retry(lambda: self.store.get_user_progress(user_id, season_id), "progress.read")
        xp, awards = self.milestones.award_milestones(
            progress,
            result.full_streak,
            result.participation_streak,
            streak_values=StreakValues(
                full_streak=result.full_streak,
                participation_streak=result.participation_streak,
                as_of=today,
            ),
            now=current,
        )
        lifetime_xp = progress.lifetime_xp + xp
        achieved = set(progress.achieved_milestones) | {m.key for m in awards}

        return {
            "user_id": user_id,
            "date": today.isoformat(),
            "degraded": False,
            **self.streaks.describe(result),
            "xp_awarded": xp,
            "new_milestones": [m.to_dict() for m in awards],
            "lifetime_xp": lifetime_xp,
            "level": level_for_xp(lifetime_xp),
            "achieved_milestones": sorted(achieved),
        }

    # Activity ---------------------------------------------------------

    def log_daily_activity(
        self,
        user_id: str,
        activity_type: str,
        *,
        reference_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Record a check-in/login/cheer for today and award its points once."""
        if activity_type == "policy":
            raise ValidationError("Policy sales are logged with log_sale")
        if activity_type not in DAILY_ACTIVITY_TYPES:
            raise InvalidActivityTypeError(f"Unknown activity type: {activity_type!r}")
        if activity_type in REFERENCED_ACTIVITIES and not reference_id:
            raise ValidationError(f"{activity_type} requires a reference_id")

        current = _utc(now)
        today = current.date()

        record = None
        slot = CHECK_IN_SLOTS.get(activity_type)
        if slot is not None:
            record = self._retry(lambda: self.store.record_check_in(user_id, today, slot), "ledger.check_in")

        points = self.season.award_activity_points(
            user_id,
            activity_type,
            {"reference_id": reference_id},
            now=current,
        )
        return {
            "user_id": user_id,
            "activity_type": activity_type,
            "date": today.isoformat(),
            "points_awarded": points,
            "ledger": record.to_dict() if record else None,
        }

    def log_sale(
        self,
        user_id: str,
        policy_type: Optional[str],
        *,
        sale_id: str,
        customer_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        """Record a sale on today's ledger and award policy points for it.

        sale_id is the client's key for the sale; resubmitting it is a no-op.
        """
        if not sale_id:
            raise ValidationError("Sales require a sale_id")
        current = _utc(now)
        today = current.date()
        season_id = SeasonScoringEngine.season_id_for(today)
        normalized = SeasonScoringEngine.normalize_policy_type(policy_type)

        progress = self._retry(lambda: self.store.get_user_progress(user_id, season_id), "progress.read")
        quoted = SeasonScoringEngine.points_for(
            "policy", policy_type=normalized, active_bonuses=len(progress.goal_bonuses)
        )
        sale = SaleRecord(
            sale_id=sale_id,
            user_id=user_id,
            day=today,
            policy_type=normalized,
            created_at=current,
            points=quoted,
            customer_name=customer_name,
        )
        record = self._retry(lambda: self.store.record_sale(sale), "ledger.sale")

        points = self.season.award_activity_points(
            user_id,
            "policy",
            {"reference_id": sale_id, "policy_type": normalized},
            now=current,
        )
        log_event(
            "info",
            "sale.logged",
            user_id=user_id,
            event_type="policy",
            extra={"sale_id": sale_id, "points": points, "policy_type": normalized},
        )
        return {
            "user_id": user_id,
            "sale": sale.to_dict(),
            "points_awarded": points,
            "ledger": record.to_dict(),
        }

    # Season -----------------------------------------------------------

    def get_season_rank(self, user_id: str, *, now: Optional[datetime] = None) -> dict:
        return self.season.get_rank(user_id, now=now)

    def apply_goal_bonus(self, user_id: str, bonus_type: str, *, now: Optional[datetime] = None) -> dict:
        applied = self.season.apply_goal_bonus(user_id, bonus_type, now=now)
        return {"user_id": user_id, "bonus_type": bonus_type, "applied": applied}

    def get_season_leaderboard(
        self,
        season_id: Optional[str] = None,
        limit: int = 100,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        return self.season.get_leaderboard(season_id, limit, now=now)

    def end_season(self, season_id: str, *, now: Optional[datetime] = None) -> dict:
        return self.season.end_season(season_id, now=now)

    def apply_season_transition(self, season_id: str) -> dict:
        return self.season.apply_season_transition(season_id)

    # Projection -------------------------------------------------------

    def build_progress_record(self, user_id: str, *, now: Optional[datetime] = None) -> dict:
        """Full (self-visible) progress record for a user."""
        current = _utc(now)
        today = current.date()
        season_id = SeasonScoringEngine.season_id_for(today)
        week_start = today - timedelta(days=today.weekday())
        month_start, _ = SeasonScoringEngine.season_bounds(season_id)

        progress = self._retry(lambda: self.store.get_user_progress(user_id, season_id), "progress.read")
        profile = self._retry(lambda: self.store.get_member_profile(user_id), "members.read")

        def totals(start: date):
            return self._retry(lambda: self.store.sum_activity(user_id, start, today), "ledger.totals")

        day, week, month, lifetime = (totals(start) for start in (today, week_start, month_start, EPOCH))

        rank = SeasonScoringEngine.compute_rank(progress.season_points)
        return {
            "user_id": user_id,
            "name": profile.name if profile else None,
            "email": profile.email if profile else None,
            "team_id": profile.team_id if profile else None,
            "team_role": profile.team_role if profile else None,
            "weekly_goal": profile.weekly_goal if profile else None,
            "monthly_goal": profile.monthly_goal if profile else None,
            "member_since": profile.member_since.isoformat() if profile and profile.member_since else None,
            "season_id": season_id,
            "season_points": progress.season_points,
            "rank": rank.rank,
            "division": rank.division,
            "today_points": day.points,
            "week_points": week.points,
            "month_points": month.points,
            "today_sales": day.sales,
            "week_sales": week.sales,
            "month_sales": month.sales,
            "lifetime_points": lifetime.points,
            "total_sales": lifetime.sales,
            "lifetime_xp": progress.lifetime_xp,
            "level": progress.level,
            "full_streak": progress.full_streak,
            "participation_streak": progress.participation_streak,
            "achievements": sorted(m.achievement_id for m in progress.achieved_milestones.values()),
        }

    def _viewer_relationship(self, user_id: str, viewer_id: str, viewer_relationship: Optional[str]) -> str:
        """Explicit relationship if given, otherwise resolved from member profiles."""
        relationship = viewer_relationship
        if relationship is None:
            viewer = self._retry(lambda: self.store.get_member_profile(viewer_id), "members.read")
            subject = self._retry(lambda: self.store.get_member_profile(user_id), "members.read")
            relationship = resolve_relationship(
                viewer_id,
                user_id,
                viewer.team_role if viewer else None,
                viewer.team_id if viewer else None,
                subject.team_id if subject else None,
            )
        if relationship not in RELATIONSHIPS:
            raise ValidationError(f"Unknown viewer relationship: {relationship!r}")
        return relationship

    def get_projected_progress(
        self,
        user_id: str,
        viewer_id: str,
        viewer_relationship: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> dict:
        """Progress record for user_id as viewer_id may see it.

        Without an explicit relationship it is resolved from member profiles.
        """
        relationship = self._viewer_relationship(user_id, viewer_id, viewer_relationship)
        record = self.build_progress_record(user_id, now=now)
        return {
            "user_id": user_id,
            "viewer_id": viewer_id,
            "relationship": relationship,
            "view": project_view(record, relationship),
        }

    def get_sale_feed(
        self,
        user_id: str,
        viewer_id: str,
        viewer_relationship: Optional[str] = None,
        *,
        days: int = SALE_FEED_DAYS,
        now: Optional[datetime] = None,
    ) -> dict:
        """Recent sales of user_id, newest first. Anyone but the seller sees only that a bell rang."""
        if days < 1:
            raise ValidationError("days must be positive")
        relationship = self._viewer_relationship(user_id, viewer_id, viewer_relationship)
        today = _utc(now).date()
        start = today - timedelta(days=days - 1)

        sales = self._retry(lambda: self.store.list_sales(user_id, start, today), "ledger.sales")
        profile = self._retry(lambda: self.store.get_member_profile(user_id), "members.read")
        user_name = profile.name if profile else None
        items = [filter_sale_activity({**sale.to_dict(), "user_name": user_name}, relationship) for sale in sales]
        return {
            "user_id": user_id,
            "viewer_id": viewer_id,
            "relationship": relationship,
            "items": items,
        }


progress_service = ProgressService()
