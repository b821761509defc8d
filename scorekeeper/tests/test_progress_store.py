"""Store contract tests, run against the in-memory and SQLite-backed stores."""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from scorekeeper.core.errors import TransientStorageError, ValidationError
from scorekeeper.features.storage.sql import SqlProgressStore
from scorekeeper.models.activity import SaleRecord
from scorekeeper.models.progress import (
    AwardClaim,
    DeltaOutcome,
    MemberProfile,
    MilestoneAward,
    ProgressDelta,
    StreakValues,
)
from scorekeeper.models.season import SeasonResult

DAY = date(2024, 3, 15)
SEASON = "2024-03"
NOW = datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return request.getfixturevalue("memory_store")
    return request.getfixturevalue("sql_store")


def _points(points, key, **claim_kwargs):
    return ProgressDelta(
        xp_delta=points,
        points_delta=points,
        season_id=SEASON,
        points_day=DAY,
        claim=AwardClaim(day=DAY, activity_key=key, **claim_kwargs),
    )


def _milestone(streak_type, threshold, xp):
    return MilestoneAward(
        streak_type=streak_type,
        threshold=threshold,
        xp=xp,
        achievement_id=f"{streak_type}-{threshold}",
        awarded_at=NOW,
    )


def test_missing_records_read_as_zero_state(store):
    assert store.get_daily_activity("nobody", DAY) is None
    progress = store.get_user_progress("nobody", SEASON)
    assert progress.season_points == 0
    assert progress.lifetime_xp == 0
    assert progress.level == 1
    assert progress.achieved_milestones == {}


def test_check_ins_mark_slots(store):
    store.record_check_in("u1", DAY, "morning")
    record = store.record_check_in("u1", DAY, "evening")
    assert record.morning_completed and record.evening_completed
    assert record.sale_count == 0
    assert record.key == "u1_2024-03-15"


def test_sales_increment_count_once_per_sale_id(store):
    sale = SaleRecord(sale_id="s1", user_id="u1", day=DAY, policy_type="car", created_at=NOW, points=50)
    store.record_sale(sale)
    store.record_sale(sale)
    store.record_sale(SaleRecord(sale_id="s2", user_id="u1", day=DAY, policy_type="life", created_at=NOW, points=50))

    assert store.get_daily_activity("u1", DAY).sale_count == 2
    assert sorted(s.sale_id for s in store.list_sales("u1", DAY, DAY)) == ["s1", "s2"]


def test_list_daily_activity_window(store):
    for d in (date(2024, 3, 10), date(2024, 3, 12), date(2024, 3, 20)):
        store.record_check_in("u1", d, "morning")
    days = [r.day for r in store.list_daily_activity("u1", date(2024, 3, 10), date(2024, 3, 15))]
    assert days == [date(2024, 3, 10), date(2024, 3, 12)]


def test_claimed_delta_applies_once(store):
    assert store.apply_progress_delta("u1", _points(10, "dailyIntentions")) is DeltaOutcome.APPLIED
    assert store.apply_progress_delta("u1", _points(10, "dailyIntentions")) is DeltaOutcome.DUPLICATE

    progress = store.get_user_progress("u1", SEASON)
    assert progress.season_points == 10
    assert progress.lifetime_xp == 10
    assert progress.day_points == {DAY: 10}


def test_capped_claims(store):
    for i in range(2):
        outcome = store.apply_progress_delta("u1", _points(1, f"cheerSent:c{i}", cap_prefix="cheerSent:", cap=2))
        assert outcome is DeltaOutcome.APPLIED
    outcome = store.apply_progress_delta("u1", _points(1, "cheerSent:c9", cap_prefix="cheerSent:", cap=2))
    assert outcome is DeltaOutcome.CAPPED
    assert store.count_daily_awards("u1", DAY, "cheerSent:") == 2
    assert store.get_user_progress("u1", SEASON).season_points == 2


def test_milestone_conflict_rolls_back_whole_delta(store):
    first = ProgressDelta(xp_delta=100, new_milestones=(_milestone("full", 3, 100),))
    assert store.apply_progress_delta("u1", first) is DeltaOutcome.APPLIED

    second = ProgressDelta(
        xp_delta=350,
        new_milestones=(_milestone("full", 3, 100), _milestone("full", 7, 250)),
        streak_values=StreakValues(full_streak=7, participation_streak=7, as_of=DAY),
    )
    assert store.apply_progress_delta("u1", second) is DeltaOutcome.DUPLICATE

    progress = store.get_user_progress("u1", SEASON)
    assert progress.lifetime_xp == 100
    assert set(progress.achieved_milestones) == {"full_3"}
    assert progress.full_streak == 0


def test_streak_values_and_peak_sr(store):
    store.apply_progress_delta("u1", ProgressDelta(
        streak_values=StreakValues(full_streak=2, participation_streak=4, as_of=DAY),
        season_id=SEASON,
        peak_sr=1600,
    ))
    store.apply_progress_delta("u1", ProgressDelta(season_id=SEASON, peak_sr=1200))

    progress = store.get_user_progress("u1", SEASON)
    assert (progress.full_streak, progress.participation_streak) == (2, 4)
    assert progress.last_streak_update_date == DAY
    assert progress.peak_sr == 1600


def test_negative_delta_rejected(store):
    with pytest.raises(ValidationError):
        store.apply_progress_delta("u1", ProgressDelta(xp_delta=-5))
    assert store.get_user_progress("u1", SEASON).lifetime_xp == 0


def test_standalone_claim(store):
    assert store.try_claim_daily_award("u1", DAY, "login") is True
    assert store.try_claim_daily_award("u1", DAY, "login") is False
    assert store.try_claim_daily_award("u1", date(2024, 3, 16), "login") is True


def test_goal_bonus_flags(store):
    assert store.set_goal_bonus("u1", SEASON, "team") is True
    assert store.set_goal_bonus("u1", SEASON, "team") is False
    assert store.get_user_progress("u1", SEASON).goal_bonuses == {"team"}
    assert store.get_user_progress("u1", "2024-04").goal_bonuses == set()


def test_member_profiles(store):
    store.upsert_member_profile(MemberProfile(user_id="u1", name="Ann", team_id="t1", weekly_goal=100))
    store.upsert_member_profile(MemberProfile(user_id="u1", name="Ann B", team_id="t1", weekly_goal=200))
    profile = store.get_member_profile("u1")
    assert profile.name == "Ann B"
    assert profile.weekly_goal == 200
    assert store.get_member_profile("ghost") is None


def test_sql_connection_failure_is_transient(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nested' / 'db.sqlite'}")
    store = SqlProgressStore(session_factory=sessionmaker(bind=engine))
    with pytest.raises(TransientStorageError):
        store.get_daily_activity("u1", DAY)


def test_sum_activity_aggregates_points_and_sales(store):
    april = date(2024, 4, 2)
    store.apply_progress_delta("u1", _points(10, "dailyIntentions"))
    store.apply_progress_delta("u1", ProgressDelta(
        xp_delta=50,
        points_delta=50,
        season_id="2024-04",
        points_day=april,
        claim=AwardClaim(day=april, activity_key="policy:s2"),
    ))
    store.record_sale(SaleRecord(sale_id="s1", user_id="u1", day=DAY, policy_type="car", created_at=NOW, points=50))
    store.record_sale(SaleRecord(sale_id="s2", user_id="u1", day=april, policy_type="car", created_at=NOW, points=50))

    totals = store.sum_activity("u1", date(1970, 1, 1), april)
    assert (totals.points, totals.sales) == (60, 2)
    march = store.sum_activity("u1", date(2024, 3, 1), date(2024, 3, 31))
    assert (march.points, march.sales) == (10, 1)
    assert store.sum_activity("ghost", DAY, DAY).points == 0

    # a season's read model only carries that season's days
    assert store.get_user_progress("u1", SEASON).day_points == {DAY: 10}
    assert store.get_user_progress("u1", "2024-04").day_points == {april: 50}


def test_season_counters_follow_applied_deltas(store):
    delta = ProgressDelta(
        xp_delta=50,
        points_delta=50,
        season_id=SEASON,
        points_day=DAY,
        claim=AwardClaim(day=DAY, activity_key="policy:s1"),
        counter="policies_house",
    )
    assert store.apply_progress_delta("u1", delta) is DeltaOutcome.APPLIED
    assert store.apply_progress_delta("u1", delta) is DeltaOutcome.DUPLICATE
    store.apply_progress_delta("u1", ProgressDelta(
        xp_delta=1,
        points_delta=1,
        season_id=SEASON,
        points_day=DAY,
        claim=AwardClaim(day=DAY, activity_key="login"),
        counter="login_days",
    ))

    progress = store.get_user_progress("u1", SEASON)
    assert progress.season_counters["policies_house"] == 1
    assert progress.season_counters["login_days"] == 1
    assert progress.season_counters["cheers_sent"] == 0
    assert progress.policies_sold()["house"] == 1
    assert store.get_user_progress("u1", "2024-04").season_counters["login_days"] == 0


def test_unknown_counter_rejected(store):
    with pytest.raises(ValidationError):
        store.apply_progress_delta("u1", ProgressDelta(season_id=SEASON, counter="naps_taken"))


def test_season_points_without_a_day(store):
    store.apply_progress_delta("u1", ProgressDelta(points_delta=100, season_id=SEASON, peak_sr=1500))
    progress = store.get_user_progress("u1", SEASON)
    assert progress.season_points == 100
    assert progress.day_points == {}
    assert progress.lifetime_xp == 0


def test_season_standings_order_and_members(store):
    store.upsert_member_profile(MemberProfile(user_id="b", name="Bea", team_id="t1"))
    for user_id, points in (("a", 30), ("b", 120), ("c", 30)):
        store.apply_progress_delta(user_id, ProgressDelta(points_delta=points, season_id=SEASON, points_day=DAY))
    store.apply_progress_delta("z", ProgressDelta(points_delta=500, season_id="2024-04", points_day=date(2024, 4, 1)))

    standings = store.list_season_standings(SEASON)
    assert [(s.user_id, s.season_points) for s in standings] == [("b", 120), ("a", 30), ("c", 30)]
    assert (standings[0].name, standings[0].team_id) == ("Bea", "t1")
    assert standings[1].name is None
    assert [s.user_id for s in store.list_season_standings(SEASON, limit=2)] == ["b", "a"]


def test_season_results_recorded_once(store):
    result = SeasonResult(
        user_id="u1", season_id=SEASON, season_points=150, sr=1625,
        rank="silver", division=4, peak_sr=1625, ended_at=NOW,
    )
    assert store.record_season_result(result) is True
    assert store.record_season_result(result) is False

    results = store.list_season_results(SEASON)
    assert [(r.user_id, r.rank, r.division, r.season_points) for r in results] == [("u1", "silver", 4, 150)]
    assert store.list_season_results("2024-04") == []
