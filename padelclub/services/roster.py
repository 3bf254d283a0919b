"""Team slots and the share-link join flow."""
import logging

from padelclub.errors import ConflictError, MatchFull, NotFound, ValidationError
from padelclub.services.records import TEAMS

logger = logging.getLogger(__name__)

_JOIN_ATTEMPTS = 5


def team_capacity(match_type):
    return 1 if match_type == 'singles' else 2


def fits(participants, match_type):
    capacity = team_capacity(match_type)
    for team in TEAMS:
        if sum(1 for p in participants if p.team == team) > capacity:
            return False
    return True


def next_open_slot(participants, match_type):
    """First free ``(team, slot)``: team A fills before team B."""
    capacity = team_capacity(match_type)
    for team in TEAMS:
        taken = {p.slot for p in participants if p.team == team}
        for slot in range(1, capacity + 1):
            if slot not in taken:
                return team, slot
    return None


def initial_placements(match_type, owner_id, partner_id=None, opponent_ids=()):
    """Roster rows for a new match: owner and partner on A, opponents on B."""
    opponent_ids = [oid for oid in (opponent_ids or []) if oid is not None]
    capacity = team_capacity(match_type)

    team_a = [owner_id] + ([partner_id] if partner_id is not None else [])
    if len(team_a) > capacity:
        raise ValidationError('Singles matches have no partner')
    if len(opponent_ids) > capacity:
        raise ValidationError(f'{match_type.capitalize()} allows {capacity} opponent(s)')

    everyone = team_a + opponent_ids
    if len(set(everyone)) != len(everyone):
        raise ValidationError('A player can only appear once in a match')

    placements = [(uid, 'A', slot) for slot, uid in enumerate(team_a, start=1)]
    placements += [(uid, 'B', slot) for slot, uid in enumerate(opponent_ids, start=1)]
    return placements


def resolve_match_ref(store, match_ref):
    """Find a match by numeric id or by share code."""
    match = None
    ref = str(match_ref or '').strip()
    if ref.isdigit():
        match = store.read_match(int(ref))
    if match is None and ref:
        match = store.read_match_by_share_code(ref)
    if match is None:
        raise NotFound('Match not found')
    return match


def join_match(store, match_ref, user_id):
    """Attach ``user_id`` to the first open team slot of a shared match.

    Returns ``(participant, created)``. Joining twice returns the existing
    entry. The slot picked from the roster read is only a proposal: the
    unique (match, team, slot) constraint decides, and a lost race re-reads
    the roster before trying again.
    """
    match = resolve_match_ref(store, match_ref)

    for _ in range(_JOIN_ATTEMPTS):
        participants = store.list_participants(match.id)
        existing = next((p for p in participants if p.user_id == user_id), None)
        if existing:
            return existing, False

        opening = next_open_slot(participants, match.match_type)
        if opening is None:
            raise MatchFull('The match is already full')

        team, slot = opening
        try:
            participant = store.insert_participant(match.id, user_id, team, slot)
        except ConflictError:
            logger.info('Join race on match %s slot %s%s; re-reading roster', match.id, team, slot)
            continue

        if match.owner_id != user_id:
            store.add_notification(
                match.owner_id, 'match_join',
                f'A player joined your match on team {team}.',
                reference_id=match.id, actor_id=user_id,
            )
        try:
            store.commit()
        except Exception:
            store.rollback()
            raise
        return participant, True

    raise ConflictError('Could not claim a roster slot, please try again')
