import copy
import json

import pytest

from scorekeeper.features.privacy.projection import (
    calculate_progress,
    filter_sale_activity,
    project_view,
    resolve_relationship,
)


@pytest.fixture
def record():
    return {
        "user_id": "u1",
        "name": "Ann",
        "email": "ann@example.com",
        "team_id": "t1",
        "team_role": "member",
        "weekly_goal": 500,
        "monthly_goal": 2000,
        "member_since": "2023-06-01T00:00:00+00:00",
        "season_id": "2024-03",
        "season_points": 300,
        "rank": "gold",
        "division": 5,
        "today_points": 42,
        "week_points": 120,
        "month_points": 300,
        "today_sales": 1,
        "week_sales": 3,
        "month_sales": 9,
        "lifetime_points": 1234,
        "total_sales": 17,
        "lifetime_xp": 1334,
        "level": 2,
        "full_streak": 3,
        "participation_streak": 5,
        "achievements": ["sales_streak_3"],
    }


def test_self_sees_everything(record):
    view = project_view(record, "self")
    assert view == record
    view["achievements"].append("mutated")
    assert record["achievements"] == ["sales_streak_3"]


def test_teammate_view_never_leaks_today_points(record):
    view = project_view(record, "teammate")
    assert 42 not in view.values()
    assert "42" not in json.dumps(view)
    assert set(view) == {
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
        "weekly_progress",
        "monthly_progress",
    }
    assert view["weekly_progress"] == 24
    assert view["monthly_progress"] == 15


def test_leader_view_drops_raw_period_totals(record):
    view = project_view(record, "leader")
    for field in ("today_points", "week_points", "month_points", "today_sales", "week_sales", "month_sales", "season_points"):
        assert field not in view
    assert view["weekly_progress"] == 24
    assert view["lifetime_points"] == 1234
    assert view["team_id"] == "t1"
    assert view["achievements"] == ["sales_streak_3"]
    assert "42" not in json.dumps(view)


def test_public_view_is_minimal(record):
    view = project_view(record, "public")
    assert set(view) == {"user_id", "name", "lifetime_points", "total_sales", "member_since", "achievements", "level"}


def test_unknown_relationship_falls_back_to_public(record):
    assert project_view(record, "stranger") == project_view(record, "public")


def test_projection_is_pure_and_deterministic(record):
    before = copy.deepcopy(record)
    for relationship in ("self", "leader", "teammate", "public"):
        first = project_view(record, relationship)
        second = project_view(record, relationship)
        assert first == second
        assert list(first) == list(second)
    assert record == before


def test_missing_record_projects_to_none():
    assert project_view(None, "teammate") is None


@pytest.mark.parametrize(
    "current,goal,expected",
    [(50, 0, 0), (50, None, 0), (150, 100, 100), (1, 3, 33), (2, 3, 67), (None, 100, 0)],
)
def test_calculate_progress(current, goal, expected):
    assert calculate_progress(current, goal) == expected


class TestResolveRelationship:
    def test_same_user_is_self(self):
        assert resolve_relationship("u1", "u1") == "self"

    def test_different_team_is_public(self):
        assert resolve_relationship("u2", "u1", "leader", "t2", "t1") == "public"

    def test_no_team_is_public(self):
        assert resolve_relationship("u2", "u1", "member", None, None) == "public"

    @pytest.mark.parametrize("role", ["leader", "co-leader"])
    def test_leaders_on_same_team(self, role):
        assert resolve_relationship("u2", "u1", role, "t1", "t1") == "leader"

    def test_member_on_same_team_is_teammate(self):
        assert resolve_relationship("u2", "u1", "member", "t1", "t1") == "teammate"


def test_sale_feed_hides_details_from_others():
    sale = {
        "sale_id": "s1",
        "user_id": "u1",
        "user_name": "Ann",
        "policy_type": "house",
        "customer_name": "Bob",
        "points": 50,
        "created_at": "2024-03-15T09:00:00+00:00",
    }
    assert filter_sale_activity(sale, "self") == sale

    item = filter_sale_activity(sale, "teammate")
    assert item == {
        "user_id": "u1",
        "user_name": "Ann",
        "timestamp": "2024-03-15T09:00:00+00:00",
        "type": "bell_rung",
    }
