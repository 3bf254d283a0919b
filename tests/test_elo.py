"""Tests for the Elo rating engine."""
from padelclub.services import elo


def test_expected_score_is_half_for_equal_ratings():
    assert elo.expected_score(1200, 1200) == 0.5


def test_equal_singles_exchange_sixteen_points():
    changes = elo.calculate_rating_changes({1: 1200.0}, {2: 1200.0})
    assert changes == {1: (1200.0, 1216.0), 2: (1200.0, 1184.0)}


def test_exchange_is_zero_sum():
    changes = elo.calculate_rating_changes(
        {1: 1310.0, 2: 1150.0}, {3: 1275.0, 4: 1222.0},
    )
    gained = sum(after - before for before, after in changes.values())
    assert abs(gained) < 1e-9


def test_doubles_use_team_average():
    # Both teams average 1200, so the exchange matches the equal-rating case.
    changes = elo.calculate_rating_changes(
        {1: 1300.0, 2: 1100.0}, {3: 1200.0, 4: 1200.0},
    )
    assert changes[1] == (1300.0, 1316.0)
    assert changes[2] == (1100.0, 1116.0)
    assert changes[3] == (1200.0, 1184.0)


def test_underdog_win_moves_more_points():
    upset = elo.rating_delta([1000.0], [1400.0])
    expected_win = elo.rating_delta([1400.0], [1000.0])
    assert upset > expected_win
    assert upset <= elo.DEFAULT_K_FACTOR


def test_loser_is_clamped_at_floor():
    changes = elo.calculate_rating_changes({1: 110.0}, {2: 110.0}, floor=100.0)
    assert changes[1][1] == 126.0
    assert changes[2][1] == 100.0


def test_missing_side_yields_no_changes():
    assert elo.calculate_rating_changes({1: 1200.0}, {}) == {}
    assert elo.calculate_rating_changes({}, {2: 1200.0}) == {}


def test_custom_k_factor():
    changes = elo.calculate_rating_changes({1: 1200.0}, {2: 1200.0}, k_factor=20)
    assert changes[1] == (1200.0, 1210.0)
