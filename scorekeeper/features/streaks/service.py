from __future__ import annotations

from datetime import date, timedelta
from typing import Mapping, Optional

from scorekeeper.core.config import settings
from scorekeeper.core.errors import TransientStorageError
from scorekeeper.core.logging import log_event
from scorekeeper.features.ledger.reader import ActivityLedgerReader, has_full, has_participation, utc_today
from scorekeeper.features.milestones.table import DEFAULT_MILESTONE_TABLE, MilestoneTable
from scorekeeper.models.activity import DailyActivityRecord
from scorekeeper.models.streak import DEGRADED_STREAKS, StreakResult, ZERO_STREAKS


def walk_streaks(
    records: Mapping[date, DailyActivityRecord],
    today: date,
    *,
    max_days: int = 365,
) -> StreakResult:
    """Single backward pass over the ledger producing both streak counters.

    A day without both check-ins (or without any record) ends the walk. A
    checked-in day without a sale extends participation only; from that day on
    the full counter stays at the height it had reached.
    """
    record = records.get(today)
    if not has_participation(record):
        return ZERO_STREAKS

    full_today = has_full(record)
    full = 1 if full_today else 0
    participation = 1
    full_open = full_today

    for offset in range(1, max_days + 1):
        prior = records.get(today - timedelta(days=offset))
        if not has_participation(prior):
            break
        participation += 1
        if full_open and has_full(prior):
            full += 1
        else:
            full_open = False

    return StreakResult(
        full_streak=full,
        participation_streak=participation,
        has_full_today=full_today,
        has_participation_today=True,
    )


class StreakCalculator:
    """Computes streaks from the ledger. Storage failures degrade to zero."""

    def __init__(
        self,
        reader: Optional[ActivityLedgerReader] = None,
        *,
        lookback_days: Optional[int] = None,
        table: MilestoneTable = DEFAULT_MILESTONE_TABLE,
    ):
        self.reader = reader or ActivityLedgerReader()
        self.lookback_days = lookback_days or settings.STREAK_LOOKBACK_DAYS
        self.table = table

    def compute_streaks(self, user_id: str, today: Optional[date] = None) -> StreakResult:
        day = today or utc_today()
        try:
            # today plus the full lookback, in one read
            window = self.reader.read_window(user_id, day, self.lookback_days + 1)
        except TransientStorageError as exc:
            log_event(
                "warning",
                "streaks.degraded",
                user_id=user_id,
                event_type="streak",
                error_code=exc.code,
                extra={"day": day.isoformat()},
            )
            return DEGRADED_STREAKS
        return walk_streaks(window, day, max_days=self.lookback_days)

    def describe(self, result: StreakResult) -> dict:
        """Display fields derived from a computed result."""
        return {
            "full_streak": result.full_streak,
            "participation_streak": result.participation_streak,
            "has_full_today": result.has_full_today,
            "has_participation_today": result.has_participation_today,
            "display_streak": result.display_streak,
            "display_type": result.display_type,
            "perfect_days": result.perfect_days,
            "next_milestones": {
                "full": self.table.next_milestone("full", result.full_streak).to_dict(),
                "participation": self.table.next_milestone("participation", result.participation_streak).to_dict(),
            },
        }
