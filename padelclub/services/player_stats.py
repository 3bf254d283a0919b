"""Player statistics, badges and ranking tiers."""
from padelclub.services import scoring

# (tier id, label, minimum rating), highest first
RANKING_TIERS = (
    ('elite', 'Elite', 1600),
    ('pro', 'Pro', 1400),
    ('intermediate', 'Intermediate', 1200),
    ('amateur', 'Amateur', 1100),
    ('beginner', 'Beginner', 0),
)

BADGES = {
    'debutante': {'label': 'Debutante', 'description': 'Play your first match'},
    'entusiasta': {'label': 'Enthusiast', 'description': 'Play 10 matches'},
    'veterano': {'label': 'Veteran', 'description': 'Play 50 matches'},
    'dominante': {'label': 'Dominant', 'description': 'Win 10 matches'},
    'invencible': {'label': 'Invincible', 'description': '70% wins over 10+ matches'},
    'social': {'label': 'Famous', 'description': 'Get 3 followers'},
}


def ranking_tier(rating):
    for tier_id, label, minimum in RANKING_TIERS:
        if rating >= minimum:
            return {'id': tier_id, 'label': label, 'min': minimum}
    tier_id, label, minimum = RANKING_TIERS[-1]
    return {'id': tier_id, 'label': label, 'min': minimum}


def player_stats(matches, user_id):
    """Tally results over ``matches`` from ``user_id``'s side.

    Win rate is a percentage over decided matches only.
    """
    wins = losses = incomplete = 0
    for match in matches:
        team = match.team_of(user_id)
        if team is None and match.owner_id == user_id:
            team = scoring.TEAM_HOME
        label = scoring.result_label(match.sets, team, match.incomplete_reason)
        if label == 'win':
            wins += 1
        elif label == 'loss':
            losses += 1
        elif label == 'incomplete':
            incomplete += 1
    decided = wins + losses
    return {
        'matches': len(matches),
        'wins': wins,
        'losses': losses,
        'incomplete': incomplete,
        'win_rate': round(100.0 * wins / decided, 1) if decided else 0.0,
    }


def earned_badges(stats, followers):
    earned = []
    if stats['matches'] >= 1:
        earned.append('debutante')
    if stats['matches'] >= 10:
        earned.append('entusiasta')
    if stats['matches'] >= 50:
        earned.append('veterano')
    if stats['wins'] >= 10:
        earned.append('dominante')
    if stats['matches'] >= 10 and stats['win_rate'] >= 70:
        earned.append('invencible')
    if followers >= 3:
        earned.append('social')
    return [dict(BADGES[badge_id], id=badge_id) for badge_id in earned]
