"""
Storage contract shared by the in-memory and SQL stores.

Every mutation of a user's progress goes through apply_progress_delta, which
commits the idempotency claim, counter increments, milestone inserts and
streak values together or not at all.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional

from scorekeeper.models.activity import ActivityTotals, CheckInSlot, DailyActivityRecord, SaleRecord
from scorekeeper.models.progress import DeltaOutcome, MemberProfile, ProgressDelta, SeasonStanding, UserProgress
from scorekeeper.models.season import SeasonResult


class ProgressStore(ABC):

    # Ledger

    @abstractmethod
    def get_daily_activity(self, user_id: str, day: date) -> Optional[DailyActivityRecord]:
        """Return the ledger record for the day, or None when nothing was logged."""

    @abstractmethod
    def list_daily_activity(self, user_id: str, start: date, end: date) -> list[DailyActivityRecord]:
        """Records for start..end inclusive, oldest first."""

    @abstractmethod
    def record_check_in(self, user_id: str, day: date, slot: CheckInSlot) -> DailyActivityRecord:
        """Mark a check-in slot on the day's record, creating it if needed."""

    @abstractmethod
    def record_sale(self, sale: SaleRecord) -> DailyActivityRecord:
        """Store the sale and bump the day's sale count."""

    @abstractmethod
    def list_sales(self, user_id: str, start: date, end: date) -> list[SaleRecord]:
        """Sales for start..end inclusive, newest first."""

    @abstractmethod
    def sum_activity(self, user_id: str, start: date, end: date) -> ActivityTotals:
        """Points earned and sales logged over start..end inclusive, aggregated in storage."""

    # Progress

    @abstractmethod
    def get_user_progress(self, user_id: str, season_id: str) -> UserProgress:
        """Progress for the user and season. Missing records read as zero-state.

        day_points covers only the days of season_id.
        """

    @abstractmethod
    def try_claim_daily_award(self, user_id: str, day: date, activity_key: str) -> bool:
        """Standalone claim. True if newly claimed, False if it already existed."""

    @abstractmethod
    def count_daily_awards(self, user_id: str, day: date, prefix: str) -> int:
        """Number of claims for the day whose activity key starts with prefix."""

    @abstractmethod
    def apply_progress_delta(self, user_id: str, delta: ProgressDelta) -> DeltaOutcome:
        """Commit the delta atomically.

        DUPLICATE when the claim or any milestone key already exists, CAPPED
        when the claim's daily cap is reached. Neither outcome mutates anything.
        """

    @abstractmethod
    def set_goal_bonus(self, user_id: str, season_id: str, bonus_type: str) -> bool:
        """Activate a goal bonus flag. True if newly activated."""

    # Seasons

    @abstractmethod
    def list_season_standings(self, season_id: str, limit: Optional[int] = None) -> list[SeasonStanding]:
        """Users with a record in the season, highest season points first (ties by user_id)."""

    @abstractmethod
    def record_season_result(self, result: SeasonResult) -> bool:
        """Store a user's final standing. False if one was already recorded."""

    @abstractmethod
    def list_season_results(self, season_id: str) -> list[SeasonResult]:
        ...

    # Members

    @abstractmethod
    def get_member_profile(self, user_id: str) -> Optional[MemberProfile]:
        ...

    @abstractmethod
    def upsert_member_profile(self, profile: MemberProfile) -> None:
        ...
