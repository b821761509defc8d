"""
In-memory progress store.

Used when DATABASE_URL is unset (local dev, tests). A single lock serializes
every write so apply_progress_delta behaves like one transaction.
"""
from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Optional

from scorekeeper.features.season.scoring_engine import SeasonScoringEngine
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.models.activity import ActivityTotals, CheckInSlot, DailyActivityRecord, SaleRecord
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


class InMemoryProgressStore(ProgressStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._activity: dict[tuple[str, date], DailyActivityRecord] = {}
        self._sales: dict[str, SaleRecord] = {}
        self._lifetime: dict[str, dict] = {}
        self._milestones: dict[str, dict[str, MilestoneAward]] = {}
        self._season_points: dict[tuple[str, str], int] = {}
        self._peak_sr: dict[tuple[str, str], int] = {}
        self._season_counters: dict[tuple[str, str], dict[str, int]] = {}
        self._day_points: dict[str, dict[date, int]] = {}
        self._claims: set[tuple[str, date, str]] = set()
        self._bonuses: dict[tuple[str, str], set[str]] = {}
        self._results: dict[tuple[str, str], SeasonResult] = {}
        self._members: dict[str, MemberProfile] = {}

    def reset(self) -> None:
        """Clear all state (testing only)."""
        with self._lock:
            self.__init__()

    # Ledger

    def get_daily_activity(self, user_id: str, day: date) -> Optional[DailyActivityRecord]:
        return self._activity.get((user_id, day))

    def list_daily_activity(self, user_id: str, start: date, end: date) -> list[DailyActivityRecord]:
        with self._lock:
            rows = [r for (uid, d), r in self._activity.items() if uid == user_id and start <= d <= end]
        return sorted(rows, key=lambda r: r.day)

    def record_check_in(self, user_id: str, day: date, slot: CheckInSlot) -> DailyActivityRecord:
        with self._lock:
            record = self._activity.get((user_id, day)) or DailyActivityRecord(user_id=user_id, day=day)
            if slot == "morning":
                record = replace(record, morning_completed=True)
            else:
                record = replace(record, evening_completed=True)
            self._activity[(user_id, day)] = record
            return record

    def record_sale(self, sale: SaleRecord) -> DailyActivityRecord:
        with self._lock:
            record = self._activity.get((sale.user_id, sale.day)) or DailyActivityRecord(user_id=sale.user_id, day=sale.day)
            if sale.sale_id not in self._sales:
                self._sales[sale.sale_id] = sale
                record = replace(record, sale_count=record.sale_count + 1)
                self._activity[(sale.user_id, sale.day)] = record
            return record

    def list_sales(self, user_id: str, start: date, end: date) -> list[SaleRecord]:
        with self._lock:
            rows = [s for s in self._sales.values() if s.user_id == user_id and start <= s.day <= end]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    def sum_activity(self, user_id: str, start: date, end: date) -> ActivityTotals:
        with self._lock:
            points = sum(p for d, p in self._day_points.get(user_id, {}).items() if start <= d <= end)
            sales = sum(
                r.sale_count for (uid, d), r in self._activity.items() if uid == user_id and start <= d <= end
            )
        return ActivityTotals(points=points, sales=sales)

    # Progress

    def get_user_progress(self, user_id: str, season_id: str) -> UserProgress:
        season_start, season_end = SeasonScoringEngine.season_bounds(season_id)
        with self._lock:
            lifetime = self._lifetime.get(user_id, {})
            return UserProgress(
                user_id=user_id,
                season_id=season_id,
                full_streak=lifetime.get("full_streak", 0),
                participation_streak=lifetime.get("participation_streak", 0),
                season_points=self._season_points.get((user_id, season_id), 0),
                peak_sr=self._peak_sr.get((user_id, season_id), 0),
                lifetime_xp=lifetime.get("lifetime_xp", 0),
                achieved_milestones=dict(self._milestones.get(user_id, {})),
                last_streak_update_date=lifetime.get("last_streak_update_date"),
                day_points={
                    d: p for d, p in self._day_points.get(user_id, {}).items()
                    if season_start <= d <= season_end
                },
                goal_bonuses=set(self._bonuses.get((user_id, season_id), set())),
                season_counters=self._counters_for(user_id, season_id),
            )

    def _counters_for(self, user_id: str, season_id: str) -> dict[str, int]:
        counters = dict.fromkeys(SEASON_COUNTERS, 0)
        counters.update(self._season_counters.get((user_id, season_id), {}))
        return counters

    def try_claim_daily_award(self, user_id: str, day: date, activity_key: str) -> bool:
        with self._lock:
            key = (user_id, day, activity_key)
            if key in self._claims:
                return False
            self._claims.add(key)
            return True

    def count_daily_awards(self, user_id: str, day: date, prefix: str) -> int:
        with self._lock:
            return self._count_claims(user_id, day, prefix)

    def _count_claims(self, user_id: str, day: date, prefix: str) -> int:
        return sum(1 for (uid, d, k) in self._claims if uid == user_id and d == day and k.startswith(prefix))

    def apply_progress_delta(self, user_id: str, delta: ProgressDelta) -> DeltaOutcome:
        delta.validate()
        with self._lock:
            claim = delta.claim
            if claim is not None:
                if (user_id, claim.day, claim.activity_key) in self._claims:
                    return DeltaOutcome.DUPLICATE
                if claim.cap_prefix is not None and claim.cap is not None:
                    if self._count_claims(user_id, claim.day, claim.cap_prefix) >= claim.cap:
                        return DeltaOutcome.CAPPED

            achieved = self._milestones.setdefault(user_id, {})
            if any(m.key in achieved for m in delta.new_milestones):
                return DeltaOutcome.DUPLICATE

            # All checks passed; nothing below can fail
            if claim is not None:
                self._claims.add((user_id, claim.day, claim.activity_key))

            lifetime = self._lifetime.setdefault(user_id, {})
            lifetime["lifetime_xp"] = lifetime.get("lifetime_xp", 0) + delta.xp_delta
            for milestone in delta.new_milestones:
                achieved[milestone.key] = milestone

            if delta.season_id:
                season_key = (user_id, delta.season_id)
                # a season record exists once anything touched the season
                self._season_points[season_key] = self._season_points.get(season_key, 0) + delta.points_delta
                if delta.peak_sr is not None:
                    self._peak_sr[season_key] = max(self._peak_sr.get(season_key, 0), delta.peak_sr)
                if delta.counter is not None:
                    counters = self._season_counters.setdefault(season_key, {})
                    counters[delta.counter] = counters.get(delta.counter, 0) + 1

            if delta.points_delta and delta.points_day:
                days = self._day_points.setdefault(user_id, {})
                days[delta.points_day] = days.get(delta.points_day, 0) + delta.points_delta

            if delta.streak_values is not None:
                lifetime["full_streak"] = delta.streak_values.full_streak
                lifetime["participation_streak"] = delta.streak_values.participation_streak
                lifetime["last_streak_update_date"] = delta.streak_values.as_of

            lifetime["updated_at"] = datetime.now(timezone.utc)
            return DeltaOutcome.APPLIED

    def set_goal_bonus(self, user_id: str, season_id: str, bonus_type: str) -> bool:
        with self._lock:
            flags = self._bonuses.setdefault((user_id, season_id), set())
            if bonus_type in flags:
                return False
            flags.add(bonus_type)
            return True

    # Seasons

    def list_season_standings(self, season_id: str, limit: Optional[int] = None) -> list[SeasonStanding]:
        with self._lock:
            rows = []
            for (uid, sid), points in self._season_points.items():
                if sid != season_id:
                    continue
                member = self._members.get(uid)
                rows.append(SeasonStanding(
                    user_id=uid,
                    season_id=sid,
                    season_points=points,
                    peak_sr=self._peak_sr.get((uid, sid), 0),
                    name=member.name if member else None,
                    team_id=member.team_id if member else None,
                ))
        rows.sort(key=lambda s: (-s.season_points, s.user_id))
        return rows[:limit] if limit is not None else rows

    def record_season_result(self, result: SeasonResult) -> bool:
        with self._lock:
            key = (result.user_id, result.season_id)
            if key in self._results:
                return False
            self._results[key] = result
            return True

    def list_season_results(self, season_id: str) -> list[SeasonResult]:
        with self._lock:
            rows = [r for (_, sid), r in self._results.items() if sid == season_id]
        return sorted(rows, key=lambda r: r.user_id)

    # Members

    def get_member_profile(self, user_id: str) -> Optional[MemberProfile]:
        return self._members.get(user_id)

    def upsert_member_profile(self, profile: MemberProfile) -> None:
        with self._lock:
            self._members[profile.user_id] = profile
