"""
SQL-backed progress store (SQLAlchemy Core).

Same contract as the in-memory store. Claims and milestone keys are primary
keys, so a concurrent duplicate surfaces as IdempotencyConflictError and rolls
the whole delta back. Connection-level failures become TransientStorageError.
"""
from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import and_, case, func, insert, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError

from scorekeeper.core.database import (
    achieved_milestones,
    daily_activity,
    daily_activity_awards,
    daily_points,
    get_session_factory,
    goal_bonuses,
    members,
    sales,
    season_progress,
    season_results,
    user_progress,
)
from scorekeeper.core.errors import IdempotencyConflictError, TransientStorageError
from scorekeeper.core.logging import log_event
from scorekeeper.features.season.scoring_engine import SeasonScoringEngine
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.models.activity import (
    ActivityTotals,
    CheckInSlot,
    DailyActivityRecord,
    SaleRecord,
    activity_record_key,
)
from scorekeeper.models.progress import (
    SEASON_COUNTERS,
    DeltaOutcome,
    MemberProfile,
    MilestoneAward,
    ProgressDelta,
    SeasonStanding,
    UserProgress,
)
from scorekeeper.models.season import SeasonResult


def _as_date(value) -> date:
    # SQLite hands back datetime for some drivers
    return value.date() if isinstance(value, datetime) else value


def _row_to_activity(row) -> DailyActivityRecord:
    return DailyActivityRecord(
        user_id=row.user_id,
        day=_as_date(row.activity_date),
        morning_completed=bool(row.morning_completed),
        evening_completed=bool(row.evening_completed),
        sale_count=int(row.sale_count or 0),
    )


def _row_to_sale(row) -> SaleRecord:
    return SaleRecord(
        sale_id=row.sale_id,
        user_id=row.user_id,
        day=_as_date(row.sale_date),
        policy_type=row.policy_type,
        created_at=row.created_at,
        points=int(row.points or 0),
        customer_name=row.customer_name,
    )


def _row_to_result(row) -> SeasonResult:
    return SeasonResult(
        user_id=row.user_id,
        season_id=row.season_id,
        season_points=int(row.season_points),
        sr=int(row.sr),
        rank=row.rank,
        division=int(row.division),
        peak_sr=int(row.peak_sr or 0),
        ended_at=row.ended_at,
    )


class SqlProgressStore(ProgressStore):
    def __init__(self, session_factory=None):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self):
        factory = self._session_factory or get_session_factory()
        session = factory()
        try:
            yield session
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            raise IdempotencyConflictError("Key already claimed") from exc
        except DBAPIError as exc:
            session.rollback()
            raise TransientStorageError(f"Storage unavailable: {exc.__class__.__name__}") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def _insert_ignore(self, table, values: dict) -> bool:
        """Insert a row in its own transaction. False if it already existed."""
        try:
            with self._transaction() as session:
                session.execute(insert(table).values(**values))
            return True
        except IdempotencyConflictError:
            return False

    def _ensure_activity_row(self, user_id: str, day: date) -> str:
        key = activity_record_key(user_id, day)
        self._insert_ignore(daily_activity, {
            "activity_key": key,
            "user_id": user_id,
            "activity_date": day,
            "morning_completed": False,
            "evening_completed": False,
            "sale_count": 0,
            "updated_at": datetime.now(timezone.utc),
        })
        return key

    # Ledger

    def get_daily_activity(self, user_id: str, day: date) -> Optional[DailyActivityRecord]:
        with self._transaction() as session:
            row = session.execute(
                select(daily_activity).where(daily_activity.c.activity_key == activity_record_key(user_id, day))
            ).fetchone()
        return _row_to_activity(row) if row else None

    def list_daily_activity(self, user_id: str, start: date, end: date) -> list[DailyActivityRecord]:
        with self._transaction() as session:
            rows = session.execute(
                select(daily_activity)
                .where(and_(
                    daily_activity.c.user_id == user_id,
                    daily_activity.c.activity_date >= start,
                    daily_activity.c.activity_date <= end,
                ))
                .order_by(daily_activity.c.activity_date.asc())
            ).fetchall()
        return [_row_to_activity(r) for r in rows]

    def record_check_in(self, user_id: str, day: date, slot: CheckInSlot) -> DailyActivityRecord:
        key = self._ensure_activity_row(user_id, day)
        column = "morning_completed" if slot == "morning" else "evening_completed"
        with self._transaction() as session:
            session.execute(
                update(daily_activity)
                .where(daily_activity.c.activity_key == key)
                .values({column: True, "updated_at": datetime.now(timezone.utc)})
            )
        return self.get_daily_activity(user_id, day)

    def record_sale(self, sale: SaleRecord) -> DailyActivityRecord:
        key = self._ensure_activity_row(sale.user_id, sale.day)
        try:
            with self._transaction() as session:
                session.execute(insert(sales).values(
                    sale_id=sale.sale_id,
                    user_id=sale.user_id,
                    sale_date=sale.day,
                    policy_type=sale.policy_type,
                    customer_name=sale.customer_name,
                    points=sale.points,
                    created_at=sale.created_at,
                ))
                session.execute(
                    update(daily_activity)
                    .where(daily_activity.c.activity_key == key)
                    .values(
                        sale_count=daily_activity.c.sale_count + 1,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
        except IdempotencyConflictError:
            log_event("info", "sale.duplicate", user_id=sale.user_id, extra={"sale_id": sale.sale_id})
        return self.get_daily_activity(sale.user_id, sale.day)

    def list_sales(self, user_id: str, start: date, end: date) -> list[SaleRecord]:
        with self._transaction() as session:
            rows = session.execute(
                select(sales)
                .where(and_(sales.c.user_id == user_id, sales.c.sale_date >= start, sales.c.sale_date <= end))
                .order_by(sales.c.created_at.desc())
            ).fetchall()
        return [_row_to_sale(r) for r in rows]

    def sum_activity(self, user_id: str, start: date, end: date) -> ActivityTotals:
        with self._transaction() as session:
            points = session.execute(
                select(func.coalesce(func.sum(daily_points.c.points), 0)).where(and_(
                    daily_points.c.user_id == user_id,
                    daily_points.c.points_date >= start,
                    daily_points.c.points_date <= end,
                ))
            ).scalar()
            sale_count = session.execute(
                select(func.coalesce(func.sum(daily_activity.c.sale_count), 0)).where(and_(
                    daily_activity.c.user_id == user_id,
                    daily_activity.c.activity_date >= start,
                    daily_activity.c.activity_date <= end,
                ))
            ).scalar()
        return ActivityTotals(points=int(points or 0), sales=int(sale_count or 0))

    # Progress

    def get_user_progress(self, user_id: str, season_id: str) -> UserProgress:
        season_start, season_end = SeasonScoringEngine.season_bounds(season_id)
        with self._transaction() as session:
            lifetime = session.execute(
                select(user_progress).where(user_progress.c.user_id == user_id)
            ).fetchone()
            season = session.execute(
                select(season_progress).where(and_(
                    season_progress.c.user_id == user_id,
                    season_progress.c.season_id == season_id,
                ))
            ).fetchone()
            milestone_rows = session.execute(
                select(achieved_milestones).where(achieved_milestones.c.user_id == user_id)
            ).fetchall()
            point_rows = session.execute(
                select(daily_points.c.points_date, daily_points.c.points).where(and_(
                    daily_points.c.user_id == user_id,
                    daily_points.c.points_date >= season_start,
                    daily_points.c.points_date <= season_end,
                ))
            ).fetchall()
            bonus_rows = session.execute(
                select(goal_bonuses.c.bonus_type).where(and_(
                    goal_bonuses.c.user_id == user_id,
                    goal_bonuses.c.season_id == season_id,
                ))
            ).fetchall()

        milestones = {}
        for r in milestone_rows:
            award = MilestoneAward(
                streak_type=r.streak_type,
                threshold=int(r.threshold),
                xp=int(r.xp),
                achievement_id=r.achievement_id,
                awarded_at=r.awarded_at,
            )
            milestones[award.key] = award

        return UserProgress(
            user_id=user_id,
            season_id=season_id,
            full_streak=int(lifetime.full_streak) if lifetime else 0,
            participation_streak=int(lifetime.participation_streak) if lifetime else 0,
            season_points=int(season.season_points) if season else 0,
            peak_sr=int(season.peak_sr) if season else 0,
            lifetime_xp=int(lifetime.lifetime_xp) if lifetime else 0,
            achieved_milestones=milestones,
            last_streak_update_date=_as_date(lifetime.last_streak_update_date) if lifetime and lifetime.last_streak_update_date else None,
            day_points={_as_date(r.points_date): int(r.points) for r in point_rows},
            goal_bonuses={r.bonus_type for r in bonus_rows},
            season_counters={name: int(getattr(season, name) or 0) if season else 0 for name in SEASON_COUNTERS},
        )

    def try_claim_daily_award(self, user_id: str, day: date, activity_key: str) -> bool:
        return self._insert_ignore(daily_activity_awards, {
            "user_id": user_id,
            "award_date": day,
            "activity_key": activity_key,
            "created_at": datetime.now(timezone.utc),
        })

    def count_daily_awards(self, user_id: str, day: date, prefix: str) -> int:
        with self._transaction() as session:
            return self._count_claims(session, user_id, day, prefix)

    @staticmethod
    def _count_claims(session, user_id: str, day: date, prefix: str) -> int:
        return int(session.execute(
            select(func.count()).select_from(daily_activity_awards).where(and_(
                daily_activity_awards.c.user_id == user_id,
                daily_activity_awards.c.award_date == day,
                daily_activity_awards.c.activity_key.like(f"{prefix}%"),
            ))
        ).scalar() or 0)

    def apply_progress_delta(self, user_id: str, delta: ProgressDelta) -> DeltaOutcome:
        delta.validate()
        now = datetime.now(timezone.utc)

        # Zero rows are created up front so the delta itself only issues updates
        self._insert_ignore(user_progress, {
            "user_id": user_id,
            "full_streak": 0,
            "participation_streak": 0,
            "lifetime_xp": 0,
            "updated_at": now,
        })
        if delta.season_id:
            self._insert_ignore(season_progress, {
                "user_id": user_id,
                "season_id": delta.season_id,
                "season_points": 0,
                "peak_sr": 0,
            })
        if delta.points_delta and delta.points_day:
            self._insert_ignore(daily_points, {"user_id": user_id, "points_date": delta.points_day, "points": 0})

        try:
            with self._transaction() as session:
                claim = delta.claim
                if claim is not None:
                    if claim.cap_prefix is not None and claim.cap is not None:
                        if self._count_claims(session, user_id, claim.day, claim.cap_prefix) >= claim.cap:
                            return DeltaOutcome.CAPPED
                    session.execute(insert(daily_activity_awards).values(
                        user_id=user_id,
                        award_date=claim.day,
                        activity_key=claim.activity_key,
                        created_at=now,
                    ))

                for milestone in delta.new_milestones:
                    session.execute(insert(achieved_milestones).values(
                        user_id=user_id,
                        milestone_key=milestone.key,
                        streak_type=milestone.streak_type,
                        threshold=milestone.threshold,
                        achievement_id=milestone.achievement_id,
                        xp=milestone.xp,
                        awarded_at=milestone.awarded_at,
                    ))

                lifetime_values = {
                    "lifetime_xp": user_progress.c.lifetime_xp + delta.xp_delta,
                    "updated_at": now,
                }
                if delta.streak_values is not None:
                    lifetime_values["full_streak"] = delta.streak_values.full_streak
                    lifetime_values["participation_streak"] = delta.streak_values.participation_streak
                    lifetime_values["last_streak_update_date"] = delta.streak_values.as_of
                session.execute(
                    update(user_progress).where(user_progress.c.user_id == user_id).values(**lifetime_values)
                )

                if delta.season_id:
                    season_values = {}
                    if delta.points_delta:
                        season_values["season_points"] = season_progress.c.season_points + delta.points_delta
                    if delta.peak_sr is not None:
                        season_values["peak_sr"] = case(
                            (season_progress.c.peak_sr < delta.peak_sr, delta.peak_sr),
                            else_=season_progress.c.peak_sr,
                        )
                    if delta.counter is not None:
                        season_values[delta.counter] = season_progress.c[delta.counter] + 1
                    if season_values:
                        session.execute(
                            update(season_progress)
                            .where(and_(
                                season_progress.c.user_id == user_id,
                                season_progress.c.season_id == delta.season_id,
                            ))
                            .values(**season_values)
                        )

                if delta.points_delta and delta.points_day:
                    session.execute(
                        update(daily_points)
                        .where(and_(daily_points.c.user_id == user_id, daily_points.c.points_date == delta.points_day))
                        .values(points=daily_points.c.points + delta.points_delta)
                    )
        except IdempotencyConflictError:
            return DeltaOutcome.DUPLICATE

        return DeltaOutcome.APPLIED

    def set_goal_bonus(self, user_id: str, season_id: str, bonus_type: str) -> bool:
        return self._insert_ignore(goal_bonuses, {
            "user_id": user_id,
            "season_id": season_id,
            "bonus_type": bonus_type,
            "activated_at": datetime.now(timezone.utc),
        })

    # Seasons

    def list_season_standings(self, season_id: str, limit: Optional[int] = None) -> list[SeasonStanding]:
        query = (
            select(
                season_progress.c.user_id,
                season_progress.c.season_id,
                season_progress.c.season_points,
                season_progress.c.peak_sr,
                members.c.name,
                members.c.team_id,
            )
            .select_from(season_progress.outerjoin(members, members.c.user_id == season_progress.c.user_id))
            .where(season_progress.c.season_id == season_id)
            .order_by(season_progress.c.season_points.desc(), season_progress.c.user_id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        with self._transaction() as session:
            rows = session.execute(query).fetchall()
        return [
            SeasonStanding(
                user_id=r.user_id,
                season_id=r.season_id,
                season_points=int(r.season_points),
                peak_sr=int(r.peak_sr),
                name=r.name,
                team_id=r.team_id,
            )
            for r in rows
        ]

    def record_season_result(self, result: SeasonResult) -> bool:
        return self._insert_ignore(season_results, {
            "user_id": result.user_id,
            "season_id": result.season_id,
            "season_points": result.season_points,
            "sr": result.sr,
            "rank": result.rank,
            "division": result.division,
            "peak_sr": result.peak_sr,
            "ended_at": result.ended_at,
        })

    def list_season_results(self, season_id: str) -> list[SeasonResult]:
        with self._transaction() as session:
            rows = session.execute(
                select(season_results)
                .where(season_results.c.season_id == season_id)
                .order_by(season_results.c.user_id.asc())
            ).fetchall()
        return [_row_to_result(r) for r in rows]

    # Members

    def get_member_profile(self, user_id: str) -> Optional[MemberProfile]:
        with self._transaction() as session:
            row = session.execute(select(members).where(members.c.user_id == user_id)).fetchone()
        if not row:
            return None
        return MemberProfile(
            user_id=row.user_id,
            name=row.name,
            email=row.email,
            team_id=row.team_id,
            team_role=row.team_role,
            weekly_goal=row.weekly_goal,
            monthly_goal=row.monthly_goal,
            member_since=row.member_since,
        )

    def upsert_member_profile(self, profile: MemberProfile) -> None:
        values = {
            "name": profile.name,
            "email": profile.email,
            "team_id": profile.team_id,
            "team_role": profile.team_role,
            "weekly_goal": profile.weekly_goal,
            "monthly_goal": profile.monthly_goal,
            "member_since": profile.member_since,
        }
        if self._insert_ignore(members, {"user_id": profile.user_id, **values}):
            return
        with self._transaction() as session:
            session.execute(update(members).where(members.c.user_id == profile.user_id).values(**values))
