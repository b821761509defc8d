"""
Milestone engine.

plan_milestone_awards is pure: given the current progress and streak values it
lists the (type, threshold) pairs reached but not yet recorded. The engine then
commits the awards, their XP and optionally the new streak values as a single
delta. A milestone key conflict means another request already awarded it; that
is reported as nothing awarded rather than an error.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Tuple

from scorekeeper.core.retry import RetryPolicy, call_with_retry
from scorekeeper.core.logging import log_event
from scorekeeper.features.milestones.table import DEFAULT_MILESTONE_TABLE, MilestoneTable
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.features.storage.provider import get_store
from scorekeeper.models.progress import (
    DeltaOutcome,
    MilestoneAward,
    ProgressDelta,
    StreakValues,
    UserProgress,
)


def plan_milestone_awards(
    progress: UserProgress,
    full_streak: int,
    participation_streak: int,
    *,
    table: MilestoneTable = DEFAULT_MILESTONE_TABLE,
    now: Optional[datetime] = None,
) -> List[MilestoneAward]:
    awarded_at = now or datetime.now(timezone.utc)
    streaks = {"full": full_streak, "participation": participation_streak}
    planned: List[MilestoneAward] = []
    for streak_type in table.streak_types:
        value = streaks.get(streak_type, 0)
        for row in table.thresholds(streak_type):
            if value < row.threshold:
                break
            key = f"{streak_type}_{row.threshold}"
            if progress.has_milestone(key):
                continue
            planned.append(MilestoneAward(
                streak_type=streak_type,
                threshold=row.threshold,
                xp=row.xp,
                achievement_id=row.achievement_id,
                awarded_at=awarded_at,
            ))
    return planned


class MilestoneEngine:
    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        *,
        table: MilestoneTable = DEFAULT_MILESTONE_TABLE,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self._store = store
        self.table = table
        self._retry_policy = retry_policy

    @property
    def store(self) -> ProgressStore:
        return self._store or get_store()

    def award_milestones(
        self,
        progress: UserProgress,
        full_streak: int,
        participation_streak: int,
        *,
        streak_values: Optional[StreakValues] = None,
        now: Optional[datetime] = None,
    ) -> Tuple[int, List[MilestoneAward]]:
        """Award every newly reached milestone once. Returns (xp_awarded, awards)."""
        planned = plan_milestone_awards(progress, full_streak, participation_streak, table=self.table, now=now)
        if not planned and streak_values is None:
            return 0, []

        xp = sum(m.xp for m in planned)
        delta = ProgressDelta(xp_delta=xp, new_milestones=tuple(planned), streak_values=streak_values)
        outcome = self._commit(progress.user_id, delta)

        if outcome is DeltaOutcome.DUPLICATE:
            log_event(
                "info",
                "milestones.duplicate",
                user_id=progress.user_id,
                event_type="milestone",
                extra={"outcome": outcome.value, "keys": ",".join(m.key for m in planned)},
            )
            if streak_values is not None:
                self._commit(progress.user_id, ProgressDelta(streak_values=streak_values))
            return 0, []

        if planned:
            log_event(
                "info",
                "milestones.awarded",
                user_id=progress.user_id,
                event_type="milestone",
                extra={"outcome": outcome.value, "xp": xp, "keys": ",".join(m.key for m in planned), "table": self.table.version},
            )
        return xp, planned

    def _commit(self, user_id: str, delta: ProgressDelta) -> DeltaOutcome:
        return call_with_retry(
            lambda: self.store.apply_progress_delta(user_id, delta),
            policy=self._retry_policy,
            operation="milestones.commit",
        )
