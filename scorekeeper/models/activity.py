from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Literal, Optional

ActivityType = Literal["login", "dailyIntentions", "nightlyWrap", "policy", "cheerSent", "cheerReceived"]
CheckInSlot = Literal["morning", "evening"]

ACTIVITY_TYPES: tuple[str, ...] = ("login", "dailyIntentions", "nightlyWrap", "policy", "cheerSent", "cheerReceived")

# Activities that need a referenceId (sale id / cheer id) to build their claim key
REFERENCED_ACTIVITIES = frozenset({"policy", "cheerSent", "cheerReceived"})

# Check-in activities mark a slot on the day's ledger record
CHECK_IN_SLOTS: dict[str, CheckInSlot] = {
    "dailyIntentions": "morning",
    "nightlyWrap": "evening",
}


def activity_record_key(user_id: str, day: date) -> str:
    return f"{user_id}_{day.isoformat()}"


@dataclass(frozen=True)
class DailyActivityRecord:
    """One ledger row per (user, UTC calendar day)."""

    user_id: str
    day: date
    morning_completed: bool = False
    evening_completed: bool = False
    sale_count: int = 0

    @property
    def key(self) -> str:
        return activity_record_key(self.user_id, self.day)

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "user_id": self.user_id,
            "date": self.day.isoformat(),
            "morning_completed": self.morning_completed,
            "evening_completed": self.evening_completed,
            "sale_count": self.sale_count,
        }


@dataclass(frozen=True)
class SaleRecord:
    sale_id: str
    user_id: str
    day: date
    policy_type: str
    created_at: datetime
    points: int = 0
    customer_name: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["day"] = self.day.isoformat()
        data["created_at"] = self.created_at.isoformat()
        return data


@dataclass(frozen=True)
class ActivityTotals:
    """Aggregate points and sales for a user over a date window."""

    points: int = 0
    sales: int = 0
