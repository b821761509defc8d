"""
Privacy projection.

Users see their exact numbers; everyone else sees percentages, lifetime
totals and achievements. All functions here are pure: the source record is
never mutated and the same input always yields the same view.
"""
from __future__ import annotations

import copy
from typing import Any, Dict, Literal, Optional

ViewerRelationship = Literal["self", "leader", "teammate", "public"]
RELATIONSHIPS = ("self", "leader", "teammate", "public")
LEADER_ROLES = ("leader", "co-leader")

# Raw period totals only the subject may see
RAW_PERIOD_FIELDS = (
    "today_points",
    "week_points",
    "month_points",
    "today_sales",
    "week_sales",
    "month_sales",
    "season_points",
)

TEAMMATE_FIELDS = (
    "user_id",
    "name",
    "email",
    "team_role",
    "lifetime_points",
    "total_sales",
    "member_since",
    "full_streak",
    "participation_streak",
    "achievements",
    "level",
)

PUBLIC_FIELDS = (
    "user_id",
    "name",
    "lifetime_points",
    "total_sales",
    "member_since",
    "achievements",
    "level",
)


def calculate_progress(current: Any, goal: Any) -> int:
    """Rounded percent of goal, capped at 100. 0 when there is no goal."""
    try:
        current_value = float(current or 0)
        goal_value = float(goal or 0)
    except (TypeError, ValueError):
        return 0
    if goal_value <= 0:
        return 0
    return max(0, min(100, int(round(current_value / goal_value * 100))))


def resolve_relationship(
    viewer_id: str,
    subject_id: str,
    viewer_role: Optional[str] = None,
    viewer_team_id: Optional[str] = None,
    subject_team_id: Optional[str] = None,
) -> ViewerRelationship:
    if viewer_id == subject_id:
        return "self"
    if not viewer_team_id or not subject_team_id or viewer_team_id != subject_team_id:
        return "public"
    if viewer_role in LEADER_ROLES:
        return "leader"
    return "teammate"


def _percentages(record: Dict[str, Any]) -> Dict[str, int]:
    return {
        "weekly_progress": calculate_progress(record.get("week_points"), record.get("weekly_goal")),
        "monthly_progress": calculate_progress(record.get("month_points"), record.get("monthly_goal")),
    }


def _pick(record: Dict[str, Any], fields) -> Dict[str, Any]:
    return {field: copy.deepcopy(record.get(field)) for field in fields}


def project_view(progress: Optional[Dict[str, Any]], relationship: str) -> Optional[Dict[str, Any]]:
    """Filter a full progress record for a viewer. Unknown relationships get the public view."""
    if progress is None:
        return None

    if relationship == "self":
        return copy.deepcopy(progress)

    if relationship == "leader":
        view = {k: copy.deepcopy(v) for k, v in progress.items() if k not in RAW_PERIOD_FIELDS}
        view.update(_percentages(progress))
        return view

    if relationship == "teammate":
        view = _pick(progress, TEAMMATE_FIELDS)
        view.update(_percentages(progress))
        return view

    return _pick(progress, PUBLIC_FIELDS)


def filter_sale_activity(sale: Dict[str, Any], relationship: str) -> Dict[str, Any]:
    """Sale feed item: full detail for self, a bare 'bell rung' for anyone else."""
    if relationship == "self":
        return copy.deepcopy(sale)
    return {
        "user_id": sale.get("user_id"),
        "user_name": sale.get("user_name"),
        "timestamp": sale.get("created_at") or sale.get("timestamp"),
        "type": "bell_rung",
    }
