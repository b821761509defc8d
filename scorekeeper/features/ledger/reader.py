"""
Activity ledger reader.

Answers "did the user check in morning and evening, and did they sell,
on this UTC day?" on top of the store, with bounded retries.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from scorekeeper.core.retry import RetryPolicy, call_with_retry
from scorekeeper.features.storage.contracts import ProgressStore
from scorekeeper.features.storage.provider import get_store
from scorekeeper.models.activity import DailyActivityRecord


def utc_today(now: Optional[datetime] = None) -> date:
    return (now or datetime.now(timezone.utc)).astimezone(timezone.utc).date()


def has_participation(record: Optional[DailyActivityRecord]) -> bool:
    return bool(record and record.morning_completed and record.evening_completed)


def has_full(record: Optional[DailyActivityRecord]) -> bool:
    return has_participation(record) and record.sale_count > 0


class ActivityLedgerReader:
    def __init__(
        self,
        store: Optional[ProgressStore] = None,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self._store = store
        self._retry_policy = retry_policy
        self._sleep = sleep

    @property
    def store(self) -> ProgressStore:
        return self._store or get_store()

    def _retry(self, fn, operation: str):
        kwargs = {"policy": self._retry_policy, "operation": operation}
        if self._sleep is not None:
            kwargs["sleep"] = self._sleep
        return call_with_retry(fn, **kwargs)

    def read_day(self, user_id: str, day: date) -> Optional[DailyActivityRecord]:
        return self._retry(lambda: self.store.get_daily_activity(user_id, day), "ledger.read_day")

    def read_window(self, user_id: str, end: date, days: int) -> Dict[date, DailyActivityRecord]:
        """Records for the `days` days ending at `end` (inclusive), keyed by day."""
        start = end - timedelta(days=max(0, days - 1))
        records = self._retry(lambda: self.store.list_daily_activity(user_id, start, end), "ledger.read_window")
        return {r.day: r for r in records}

    def day_flags(self, user_id: str, day: date) -> dict:
        record = self.read_day(user_id, day)
        return {
            "morning_completed": bool(record and record.morning_completed),
            "evening_completed": bool(record and record.evening_completed),
            "has_sale": bool(record and record.sale_count > 0),
        }
