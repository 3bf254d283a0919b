"""Set-score rules for padel matches.

Scores are kept as three ``(home, away)`` pairs; the home side is team A
(the match owner's team) and the away side is team B. A pair is either
fully recorded or fully empty, and sets are recorded in order.
"""
from padelclub.errors import ValidationError

SET_COUNT = 3
MAX_GAMES = 7
TEAM_HOME = 'A'
TEAM_AWAY = 'B'

EMPTY_SETS = ((None, None),) * SET_COUNT


def _coerce_games(raw, set_number, side):
    if raw is None or raw == '':
        return None
    if isinstance(raw, bool):
        raise ValidationError(f'Set {set_number}: {side} games must be a whole number')
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f'Set {set_number}: {side} games must be a whole number')
    if value != raw and str(value) != str(raw).strip():
        raise ValidationError(f'Set {set_number}: {side} games must be a whole number')
    return value


def normalize_sets(raw_sets):
    """Turn request input into a 3-tuple of ``(home, away)`` pairs.

    Accepts a list of pairs (``[6, 2]``) or dicts (``{'home': 6, 'away': 2}``);
    ``None`` entries and missing trailing sets are empty.
    """
    if raw_sets is None:
        return EMPTY_SETS
    if not isinstance(raw_sets, (list, tuple)):
        raise ValidationError('Sets must be a list of [home, away] pairs')
    if len(raw_sets) > SET_COUNT:
        raise ValidationError(f'A match has at most {SET_COUNT} sets')

    pairs = []
    for index, raw in enumerate(raw_sets, start=1):
        if raw is None:
            pairs.append((None, None))
            continue
        if isinstance(raw, dict):
            home, away = raw.get('home'), raw.get('away')
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            home, away = raw
        else:
            raise ValidationError(f'Set {index} must be a [home, away] pair')
        pairs.append((
            _coerce_games(home, index, 'home'),
            _coerce_games(away, index, 'away'),
        ))
    while len(pairs) < SET_COUNT:
        pairs.append((None, None))
    return tuple(pairs)


def recorded_sets(sets):
    return [(home, away) for home, away in sets if home is not None and away is not None]


def set_tally(sets):
    """Return ``(home_set_wins, away_set_wins, recorded_count)``."""
    home_wins = away_wins = recorded = 0
    for home, away in recorded_sets(sets):
        recorded += 1
        if home > away:
            home_wins += 1
        elif away > home:
            away_wins += 1
    return home_wins, away_wins, recorded


def _last_recorded_index(sets):
    last = 0
    for index, (home, away) in enumerate(sets, start=1):
        if home is not None and away is not None:
            last = index
    return last


def shape_errors(sets):
    """Half-recorded sets and gaps between recorded sets."""
    errors = []
    previous_recorded = True
    for index, (home, away) in enumerate(sets, start=1):
        if (home is None) != (away is None):
            errors.append(f'Set {index}: both home and away games are required')
            previous_recorded = False
            continue
        recorded = home is not None
        if recorded and not previous_recorded:
            errors.append(f'Set {index} is recorded but set {index - 1} is missing')
        previous_recorded = recorded
    return errors


def set_games_error(home, away, set_number, last_set_unfinished=False):
    """Check one recorded set against padel game rules.

    Finished sets are 6-0 to 6-4, 7-5 and 7-6 in either direction. When
    ``last_set_unfinished`` is set the set was interrupted, so it must *not*
    look finished.
    """
    if home < 0 or away < 0:
        return 'Games cannot be negative'
    if home > MAX_GAMES or away > MAX_GAMES:
        return 'A set has at most 7 games (7-5, or 7-6 after a tie-break)'

    high, low = max(home, away), min(home, away)
    finished = (high == 6 and low <= 4) or (high == 7 and low in (5, 6))

    if last_set_unfinished:
        if finished:
            return (
                f'Set {set_number} is finished ({home}-{away}); the last set of an '
                'unfinished match cannot be complete'
            )
        if high == 7:
            return 'A set with 7 games is finished; the last set of an unfinished match cannot be complete'
        return None

    if finished:
        return None
    return 'Invalid result under padel rules'


def validate_sets(sets, incomplete=False):
    """Raise ValidationError listing every problem with ``sets``."""
    errors = shape_errors(sets)
    if not errors:
        last = _last_recorded_index(sets)
        for index, (home, away) in enumerate(sets, start=1):
            if home is None:
                continue
            error = set_games_error(
                home, away, index,
                last_set_unfinished=incomplete and index == last,
            )
            if error:
                errors.append(f'Set {index}: {error}')
    if errors:
        raise ValidationError('; '.join(errors), errors=errors)
    return sets


def is_decidable(sets):
    home_wins, away_wins, recorded = set_tally(sets)
    if recorded == 0:
        return False
    return (
        (recorded == 2 and (home_wins == 2 or away_wins == 2))
        or (recorded == 3 and home_wins != away_wins)
    )


def completeness_error(sets, incomplete_reason=None):
    """Explain why ``sets`` cannot be confirmed, or return None."""
    if incomplete_reason:
        return f'Match was marked unfinished ({incomplete_reason}) and cannot be confirmed'
    for index, (home, away) in enumerate(recorded_sets(sets), start=1):
        if home == away:
            return f'Set {index} is tied at {home}-{away}'
    if is_decidable(sets):
        return None

    home_wins, away_wins, recorded = set_tally(sets)
    if recorded == 0:
        return 'Set 1 is missing: no sets recorded'
    if recorded == 1:
        return 'Set 2 is missing: one set does not decide a match'
    if recorded == 2:
        return f'Sets are level at {home_wins}-{away_wins}; set 3 is missing'
    return f'Sets are level at {home_wins}-{away_wins}'


def winner(sets, incomplete_reason=None):
    """Winning team label, or None when the match has no result."""
    if completeness_error(sets, incomplete_reason):
        return None
    home_wins, away_wins, _ = set_tally(sets)
    if home_wins > away_wins:
        return TEAM_HOME
    if away_wins > home_wins:
        return TEAM_AWAY
    return None


def require_winner(sets, incomplete_reason=None):
    error = completeness_error(sets, incomplete_reason)
    if error:
        raise ValidationError(error)
    return winner(sets, incomplete_reason)


def is_incomplete(sets, incomplete_reason=None):
    """Unfinished: flagged as such, or some sets recorded but no winner."""
    if incomplete_reason:
        return True
    _, _, recorded = set_tally(sets)
    return recorded > 0 and not is_decidable(sets)


def result_label(sets, team, incomplete_reason=None):
    """``win`` / ``loss`` / ``incomplete`` / ``none`` from ``team``'s side."""
    if is_incomplete(sets, incomplete_reason):
        return 'incomplete'
    won_by = winner(sets, incomplete_reason)
    if won_by is None or team not in (TEAM_HOME, TEAM_AWAY):
        return 'none'
    return 'win' if won_by == team else 'loss'


def format_score(sets):
    return ' '.join(f'{home}-{away}' for home, away in recorded_sets(sets))
