"""Milestone table validation, one-time awards and permanence."""

from datetime import date, datetime, timezone

import pytest

from scorekeeper.core.errors import InvalidThresholdError
from scorekeeper.features.milestones.service import MilestoneEngine, plan_milestone_awards
from scorekeeper.features.milestones.table import DEFAULT_MILESTONE_TABLE, MilestoneTable
from scorekeeper.models.progress import StreakValues

NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
SEASON = "2024-03"


class TestMilestoneTable:
    def test_default_table_shape(self):
        full = [m.threshold for m in DEFAULT_MILESTONE_TABLE.thresholds("full")]
        participation = [m.threshold for m in DEFAULT_MILESTONE_TABLE.thresholds("participation")]
        assert full == [3, 7, 14, 21, 30, 60, 90, 180, 365]
        assert participation == [7, 14, 30, 60, 90, 180, 365]
        assert DEFAULT_MILESTONE_TABLE.thresholds("full")[-1].xp == 10000
        assert DEFAULT_MILESTONE_TABLE.thresholds("participation")[0].achievement_id == "participation_week"

    @pytest.mark.parametrize(
        "rows",
        [
            [(3, 100, "a"), (3, 200, "b")],
            [(7, 100, "a"), (3, 200, "b")],
            [(0, 100, "a")],
            [(-1, 100, "a")],
            [(3, -5, "a")],
        ],
    )
    def test_invalid_thresholds_rejected(self, rows):
        with pytest.raises(InvalidThresholdError):
            MilestoneTable("bad", {"full": rows})

    def test_next_milestone_progress(self):
        upcoming = DEFAULT_MILESTONE_TABLE.next_milestone("full", 5)
        assert upcoming.threshold == 7
        assert upcoming.days_remaining == 2
        assert upcoming.progress_percent == 50

    def test_next_milestone_past_last(self):
        upcoming = DEFAULT_MILESTONE_TABLE.next_milestone("participation", 400)
        assert upcoming.threshold is None
        assert upcoming.progress_percent == 100


def test_plan_lists_every_reached_threshold_once(memory_store):
    progress = memory_store.get_user_progress("u1", SEASON)
    planned = plan_milestone_awards(progress, 7, 7, now=NOW)
    assert [m.key for m in planned] == ["full_3", "full_7", "participation_7"]
    assert sum(m.xp for m in planned) == 100 + 250 + 250


def test_award_is_idempotent(memory_store):
    engine = MilestoneEngine(memory_store)

    xp, awards = engine.award_milestones(memory_store.get_user_progress("u1", SEASON), 7, 0, now=NOW)
    assert xp == 350
    assert {a.key for a in awards} == {"full_3", "full_7"}

    xp_again, awards_again = engine.award_milestones(memory_store.get_user_progress("u1", SEASON), 7, 0, now=NOW)
    assert xp_again == 0
    assert awards_again == []
    assert memory_store.get_user_progress("u1", SEASON).lifetime_xp == 350


def test_concurrent_duplicate_commit_is_a_noop(memory_store):
    engine = MilestoneEngine(memory_store)
    stale = memory_store.get_user_progress("u1", SEASON)

    engine.award_milestones(stale, 3, 0, now=NOW)
    # Second request planned from the same starting state
    xp, awards = engine.award_milestones(stale, 3, 0, now=NOW)

    assert (xp, awards) == (0, [])
    progress = memory_store.get_user_progress("u1", SEASON)
    assert progress.lifetime_xp == 100
    assert list(progress.achieved_milestones) == ["full_3"]


def test_milestones_survive_streak_reset(memory_store):
    engine = MilestoneEngine(memory_store)
    engine.award_milestones(memory_store.get_user_progress("u1", SEASON), 7, 7, now=NOW)

    engine.award_milestones(
        memory_store.get_user_progress("u1", SEASON),
        0,
        0,
        streak_values=StreakValues(full_streak=0, participation_streak=0, as_of=date(2024, 3, 16)),
        now=NOW,
    )

    progress = memory_store.get_user_progress("u1", SEASON)
    assert progress.full_streak == 0
    assert progress.has_milestone("full_7")
    assert progress.has_milestone("participation_7")
    assert progress.lifetime_xp == 600


def test_streak_values_committed_with_awards(memory_store):
    engine = MilestoneEngine(memory_store)
    engine.award_milestones(
        memory_store.get_user_progress("u1", SEASON),
        3,
        4,
        streak_values=StreakValues(full_streak=3, participation_streak=4, as_of=date(2024, 3, 15)),
        now=NOW,
    )
    progress = memory_store.get_user_progress("u1", SEASON)
    assert (progress.full_streak, progress.participation_streak) == (3, 4)
    assert progress.last_streak_update_date == date(2024, 3, 15)
    assert progress.achieved_milestones["full_3"].awarded_at == NOW


def test_injected_table_is_used(memory_store):
    table = MilestoneTable("test", {"full": [(1, 5, "first_sale_day")], "participation": []})
    engine = MilestoneEngine(memory_store, table=table)
    xp, awards = engine.award_milestones(memory_store.get_user_progress("u1", SEASON), 1, 1, now=NOW)
    assert xp == 5
    assert awards[0].achievement_id == "first_sale_day"
