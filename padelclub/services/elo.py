"""
Elo rating engine for padel results.

- Start: 1200 points for every new player.
- K-factor: fixed (32 by default) so each confirmed match moves ratings by
  the same scale regardless of history.
- Doubles: expected score uses the team average rating on both sides and
  every player on a team receives the same change.
- Zero-sum: the winners gain exactly what the losers give up, apart from
  the floor clamp.
- Formula: E = 1 / (1 + 10^((opp_avg - team_avg) / 400))
           ΔR = K * (actual - expected)
"""
import math

DEFAULT_K_FACTOR = 32.0
RATING_FLOOR = 100.0


def expected_score(team_rating, opponent_rating):
    """Calculate the expected score (win probability) for a team.

    Uses the standard Elo expected score formula:
    E = 1 / (1 + 10^((opponent - team) / 400))
    """
    return 1.0 / (1.0 + math.pow(10, (opponent_rating - team_rating) / 400.0))


def team_average(ratings):
    return sum(ratings) / len(ratings)


def rating_delta(winner_ratings, loser_ratings, k_factor=DEFAULT_K_FACTOR):
    """Points the winning side gains (and the losing side gives up)."""
    winner_avg = team_average(winner_ratings)
    loser_avg = team_average(loser_ratings)
    expected = expected_score(winner_avg, loser_avg)
    return round(k_factor * (1.0 - expected), 1)


def calculate_rating_changes(winner_ratings, loser_ratings,
                             k_factor=DEFAULT_K_FACTOR, floor=RATING_FLOOR):
    """Calculate new ratings for everyone in a decided match.

    Args:
        winner_ratings: Dict of player id -> current rating, winning side.
        loser_ratings: Dict of player id -> current rating, losing side.
        k_factor: Maximum points exchanged.
        floor: Lowest rating a player can drop to.

    Returns:
        Dict of player id -> (rating_before, rating_after). Empty when
        either side has no rated players.
    """
    if not winner_ratings or not loser_ratings:
        return {}

    delta = rating_delta(
        list(winner_ratings.values()), list(loser_ratings.values()), k_factor,
    )

    changes = {}
    for player_id, before in winner_ratings.items():
        changes[player_id] = (before, round(before + delta, 1))
    for player_id, before in loser_ratings.items():
        changes[player_id] = (before, round(max(floor, before - delta), 1))
    return changes
