from datetime import date, datetime, timezone

import pytest

from scorekeeper.core.errors import InvalidActivityTypeError, ValidationError
from scorekeeper.features.season.scoring_engine import SeasonScoringEngine


@pytest.mark.parametrize(
    "points,expected_sr",
    [
        (0, 0),
        (99, 1485),
        (100, 1500),
        (150, 1625),
        (299, 1997),
        (300, 2000),
        (599, 2499),
        (600, 2500),
        (999, 2998),
        (1000, 3000),
        (1499, 3499),
        (1500, 3500),
        (2499, 3999),
        (2500, 4000),
        (5000, 5000),
        (100000, 5000),
    ],
)
def test_points_to_sr_band_boundaries(points, expected_sr):
    assert SeasonScoringEngine.points_to_sr(points) == expected_sr


def test_150_points_is_silver():
    rank = SeasonScoringEngine.compute_rank(150)
    assert rank.sr == 1625
    assert rank.rank == "silver"
    assert rank.tier == 2
    assert rank.division == 4
    assert rank.display == "Silver IV"


def test_rank_is_monotonic_and_bounded():
    previous = -1
    for points in range(0, 6000, 7):
        sr = SeasonScoringEngine.compute_rank(points).sr
        assert 0 <= sr <= 5000
        assert sr >= previous
        previous = sr


def test_negative_and_missing_points_are_zero_state():
    for value in (-50, None, "garbage"):
        rank = SeasonScoringEngine.compute_rank(value)
        assert rank.sr == 0
        assert rank.rank == "bronze"
        assert rank.division == 5


@pytest.mark.parametrize(
    "sr,rank,division",
    [
        (0, "bronze", 5),
        (1499, "bronze", 1),
        (1500, "silver", 5),
        (1999, "silver", 1),
        (2000, "gold", 5),
        (4000, "grandmaster", 5),
        (5000, "grandmaster", 1),
    ],
)
def test_divisions_within_tier(sr, rank, division):
    tier = SeasonScoringEngine.tier_for_sr(sr)
    assert tier.name == rank
    assert SeasonScoringEngine.division_for_sr(sr, tier) == division


def test_next_division_progress():
    rank = SeasonScoringEngine.compute_rank(0)
    assert rank.sr_to_next_division == 300
    assert rank.division_progress == 0

    top = SeasonScoringEngine.compute_rank(10000)
    assert top.sr_to_next_division is None
    assert top.division_progress == 100

    edge = SeasonScoringEngine.compute_rank(99)  # SR 1485, bronze I
    assert edge.division == 1
    assert edge.sr_to_next_division == 15


class TestActivityPoints:
    def test_fixed_point_table(self):
        assert SeasonScoringEngine.points_for("login") == 1
        assert SeasonScoringEngine.points_for("dailyIntentions") == 10
        assert SeasonScoringEngine.points_for("nightlyWrap") == 10
        assert SeasonScoringEngine.points_for("cheerSent") == 1
        assert SeasonScoringEngine.points_for("cheerReceived") == 1

    @pytest.mark.parametrize(
        "policy_type,points",
        [("house", 50), ("car", 50), ("condo", 50), ("life", 50), ("HOUSE", 50), ("other", 20), ("boat", 20), (None, 20)],
    )
    def test_policy_points_by_product(self, policy_type, points):
        assert SeasonScoringEngine.points_for("policy", policy_type=policy_type) == points

    def test_goal_bonus_multiplier_is_floored(self):
        assert SeasonScoringEngine.points_for("dailyIntentions", active_bonuses=1) == 11
        assert SeasonScoringEngine.points_for("dailyIntentions", active_bonuses=2) == 12
        assert SeasonScoringEngine.points_for("policy", policy_type="car", active_bonuses=1) == 55
        assert SeasonScoringEngine.points_for("login", active_bonuses=1) == 1

    def test_unknown_activity_rejected(self):
        with pytest.raises(InvalidActivityTypeError):
            SeasonScoringEngine.points_for("teleport")

    def test_activity_keys(self):
        assert SeasonScoringEngine.activity_key("login") == "login"
        assert SeasonScoringEngine.activity_key("policy", "s-1") == "policy:s-1"
        assert SeasonScoringEngine.activity_key("cheerSent", "c-9") == "cheerSent:c-9"


class TestSeasonCalendar:
    def test_season_id_is_year_month(self):
        assert SeasonScoringEngine.season_id_for(date(2024, 3, 5)) == "2024-03"
        assert SeasonScoringEngine.season_id_for(date(2025, 12, 31)) == "2025-12"

    def test_season_bounds_handle_leap_years(self):
        assert SeasonScoringEngine.season_bounds("2024-02") == (date(2024, 2, 1), date(2024, 2, 29))

    def test_days_remaining_rounds_up(self):
        now = datetime(2024, 2, 28, 12, 0, tzinfo=timezone.utc)
        assert SeasonScoringEngine.days_remaining(now) == 2
        last_minute = datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone.utc)
        assert SeasonScoringEngine.days_remaining(last_minute) == 0


@pytest.mark.parametrize(
    "last_rank,last_division,placed_rank,placed_division",
    [
        ("bronze", 1, "bronze", 5),
        ("silver", 5, "bronze", 3),
        ("silver", 4, "bronze", 2),
        ("gold", 1, "gold", 4),
        ("diamond", 3, "platinum", 2),
        ("grandmaster", 1, "master", 1),
    ],
)
def test_placement_soft_reset(last_rank, last_division, placed_rank, placed_division):
    tier, division = SeasonScoringEngine.placement_for(last_rank, last_division)
    assert (tier.name, division) == (placed_rank, placed_division)


def test_starting_bonus_by_last_rank():
    bonuses = [SeasonScoringEngine.starting_bonus(name) for name in
               ("bronze", "silver", "gold", "platinum", "diamond", "master", "grandmaster")]
    assert bonuses == [0, 50, 100, 200, 300, 500, 750]
    with pytest.raises(ValidationError):
        SeasonScoringEngine.starting_bonus("wood")


def test_season_ids():
    assert SeasonScoringEngine.previous_season_id("2024-01") == "2023-12"
    assert SeasonScoringEngine.previous_season_id("2024-03") == "2024-02"
    for bad in ("2024-13", "2024-3", "March", ""):
        with pytest.raises(ValidationError):
            SeasonScoringEngine.validate_season_id(bad)


def test_counter_for_activity():
    assert SeasonScoringEngine.counter_for("login") == "login_days"
    assert SeasonScoringEngine.counter_for("policy", "Condo") == "policies_condo"
    assert SeasonScoringEngine.counter_for("policy", "jetski") == "policies_other"
    with pytest.raises(InvalidActivityTypeError):
        SeasonScoringEngine.counter_for("teleport")
