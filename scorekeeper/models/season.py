from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Literal, Optional

RankName = Literal["bronze", "silver", "gold", "platinum", "diamond", "master", "grandmaster"]


@dataclass(frozen=True)
class RankTier:
    name: RankName
    label: str
    tier: int
    sr_min: int
    sr_max: int
    # season transition: points seeded next season, divisions kept on placement
    starting_bonus: int = 0
    keep_divisions: int = 0


@dataclass(frozen=True)
class SeasonRank:
    """Derived rank for a season point total. Never stored."""

    season_points: int
    sr: int  # 0..5000
    rank: RankName
    tier: int  # 1 (bronze) .. 7 (grandmaster)
    division: int  # 1 (highest) .. 5 (lowest)
    display: str
    sr_to_next_division: Optional[int]  # None at the top of grandmaster
    division_progress: int  # 0..100

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SeasonResult:
    """Final standing of a user in an ended season. Written once."""

    user_id: str
    season_id: str
    season_points: int
    sr: int
    rank: RankName
    division: int
    peak_sr: int
    ended_at: datetime

    def to_dict(self) -> dict:
        data = asdict(self)
        data["ended_at"] = self.ended_at.isoformat()
        return data
