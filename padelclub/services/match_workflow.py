"""Match lifecycle: authoring, score edits, submission, confirmation.

Every operation takes the store it works against as its first argument and
either commits all of its writes or none of them.

    draft ──submit──> pending_confirmation ──confirm──> confirmed
      │                    │
      └──────cancel────────┴──────> cancelled

Confirmation is the only path that touches ratings. The status change is a
guarded update (``WHERE status = 'pending_confirmation'``) in the same
transaction as the rating writes, so a retried or concurrent confirm can
never apply ratings twice.
"""
import logging
import secrets
import string
from contextlib import contextmanager
from dataclasses import replace

from padelclub.errors import AlreadyFinalized, ConflictError, NotFound, ValidationError
from padelclub.services import elo, roster, scoring
from padelclub.services.authorization import require_match_permission
from padelclub.services.match_store import sets_to_columns
from padelclub.services.records import (
    INITIAL_STATUSES, MATCH_TYPES, OPEN_STATUSES,
    STATUS_CANCELLED, STATUS_CONFIRMED, STATUS_DRAFT, STATUS_PENDING,
)
from padelclub.time_utils import parse_iso_datetime, utcnow_naive

logger = logging.getLogger(__name__)

_SHARE_CODE_ALPHABET = string.ascii_uppercase + string.digits
_FEELING_FIELDS = ('overall_feeling', 'physical_feeling', 'mental_feeling')
_NAME_FIELDS = ('partner_name', 'opponent1_name', 'opponent2_name')
_MAX_TEXT = {'location': 200, 'incomplete_reason': 200, 'notes': 4000}


@contextmanager
def _transaction(store):
    try:
        yield
        store.commit()
    except Exception:
        store.rollback()
        raise


def _coerce_bool(raw_value):
    if isinstance(raw_value, bool):
        return raw_value
    if isinstance(raw_value, (int, float)):
        return raw_value == 1
    if raw_value is None:
        return False
    return str(raw_value).strip().lower() in {'1', 'true', 'yes', 'on'}


def _clean_text(raw_value, max_length=120):
    text = str(raw_value or '').strip()
    return text[:max_length] or None


def _parse_optional_id(raw_value, label):
    if raw_value in (None, ''):
        return None
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a numeric id')
    if value <= 0:
        raise ValidationError(f'{label} must be a numeric id')
    return value


def clean_match_fields(data, partial=False):
    """Validate request data into match column values.

    With ``partial`` only keys present in ``data`` are returned. Set scores
    come back under ``'sets'`` as normalized pairs; they are checked against
    padel rules by the operation that writes them.
    """
    if not isinstance(data, dict):
        raise ValidationError('Invalid JSON payload')
    fields = {}

    if 'match_type' in data or not partial:
        match_type = str(data.get('match_type') or 'doubles').strip().lower()
        if match_type not in MATCH_TYPES:
            raise ValidationError('Invalid match type')
        fields['match_type'] = match_type

    if 'played_at' in data:
        played_at = parse_iso_datetime(data.get('played_at'))
        if played_at is None:
            raise ValidationError('played_at must be an ISO-8601 timestamp')
        fields['played_at'] = played_at
    elif not partial:
        fields['played_at'] = utcnow_naive()

    if 'location' in data or not partial:
        fields['location'] = _clean_text(data.get('location'), _MAX_TEXT['location']) or ''
    if 'notes' in data or not partial:
        fields['notes'] = _clean_text(data.get('notes'), _MAX_TEXT['notes']) or ''
    if 'incomplete_reason' in data or not partial:
        fields['incomplete_reason'] = _clean_text(
            data.get('incomplete_reason'), _MAX_TEXT['incomplete_reason'],
        )

    for name_field in _NAME_FIELDS:
        if name_field in data or not partial:
            fields[name_field] = _clean_text(data.get(name_field))

    for feeling_field in _FEELING_FIELDS:
        if feeling_field not in data and partial:
            continue
        raw = data.get(feeling_field)
        if raw in (None, ''):
            fields[feeling_field] = None
            continue
        try:
            feeling = int(raw)
        except (TypeError, ValueError):
            raise ValidationError(f'{feeling_field} must be between 1 and 5')
        if feeling < 1 or feeling > 5:
            raise ValidationError(f'{feeling_field} must be between 1 and 5')
        fields[feeling_field] = feeling

    if 'is_public' in data or not partial:
        fields['is_public'] = _coerce_bool(data.get('is_public', False))

    if 'sets' in data or not partial:
        fields['sets'] = scoring.normalize_sets(data.get('sets'))

    if not partial:
        fields['club_id'] = _parse_optional_id(data.get('club_id'), 'club_id')
        fields['reservation_id'] = _parse_optional_id(data.get('reservation_id'), 'reservation_id')
    return fields


def generate_share_code(store, length=8):
    while True:
        code = ''.join(secrets.choice(_SHARE_CODE_ALPHABET) for _ in range(length))
        if not store.share_code_taken(code):
            return code


def load_match(store, match_id):
    match = store.read_match(match_id)
    if match is None:
        raise NotFound('Match not found')
    return match


def _require_open(match):
    if match.is_terminal:
        raise AlreadyFinalized(f'Match is already {match.status}')


def create_match(store, owner_id, fields, partner_id=None, opponent_ids=(),
                 initial_status=STATUS_DRAFT, share_code_length=8):
    """Author a match with the owner on team A and any named players."""
    if initial_status not in INITIAL_STATUSES:
        raise ValidationError('A new match starts as draft or pending_confirmation')

    values = dict(fields)
    sets = values.pop('sets', scoring.EMPTY_SETS)
    scoring.validate_sets(sets, incomplete=bool(values.get('incomplete_reason')))
    values.update(sets_to_columns(sets))

    placements = roster.initial_placements(
        values.get('match_type', 'doubles'), owner_id, partner_id, opponent_ids,
    )
    missing = store.missing_user_ids(user_id for user_id, _, _ in placements)
    if missing:
        raise NotFound('One or more players not found')

    with _transaction(store):
        match = store.insert_match(dict(
            values,
            owner_id=owner_id,
            status=initial_status,
            share_code=generate_share_code(store, share_code_length),
        ))
        for user_id, team, slot in placements:
            store.insert_participant(match.id, user_id, team, slot)
            if user_id != owner_id:
                store.add_notification(
                    user_id, 'match_invite',
                    'You were added to a match. Check the score and confirm when ready.',
                    reference_id=match.id, actor_id=owner_id,
                )
    return load_match(store, match.id)


def _apply_edit(store, match, actor_id, fields):
    require_match_permission(store, match, actor_id, 'edit')
    _require_open(match)

    values = dict(fields)
    values.pop('is_public', None)
    sets = values.pop('sets', match.sets)
    incomplete_reason = values.get('incomplete_reason', match.incomplete_reason)
    scoring.validate_sets(sets, incomplete=bool(incomplete_reason))
    values.update(sets_to_columns(sets))

    match_type = values.get('match_type', match.match_type)
    if not roster.fits(match.participants, match_type):
        raise ValidationError(f'The roster has too many players for {match_type}')

    if not store.update_match(match.id, values):
        raise AlreadyFinalized('Match was finalized while you were editing it')


def edit_match(store, match_id, actor_id, fields):
    """Change score or details of a match that is not finalized."""
    match = load_match(store, match_id)
    with _transaction(store):
        _apply_edit(store, match, actor_id, fields)
    return load_match(store, match_id)


def _apply_submit(store, match, actor_id):
    require_match_permission(store, match, actor_id, 'submit')
    _require_open(match)
    if match.status == STATUS_PENDING:
        return False
    if not store.transition_status(match.id, (STATUS_DRAFT,), STATUS_PENDING):
        raise AlreadyFinalized('Match changed state; reload and try again')
    return True


def submit_match(store, match_id, actor_id):
    """Move a draft to pending_confirmation. Already pending is a no-op."""
    match = load_match(store, match_id)
    with _transaction(store):
        _apply_submit(store, match, actor_id)
    return load_match(store, match_id)


def apply_rating_adjustment(store, match, winning_team,
                            k_factor=elo.DEFAULT_K_FACTOR, floor=elo.RATING_FLOOR):
    """Exchange rating points between the two teams of a decided match.

    Participants without a rating record carry no rating and are skipped.
    Returns one dict per adjusted player.
    """
    winner_ratings = {}
    loser_ratings = {}
    for participant in match.participants:
        rating = store.read_rating(participant.user_id)
        if rating is None:
            continue
        if participant.team == winning_team:
            winner_ratings[participant.user_id] = rating
        else:
            loser_ratings[participant.user_id] = rating

    changes = elo.calculate_rating_changes(
        winner_ratings, loser_ratings, k_factor=k_factor, floor=floor,
    )
    adjustments = []
    for user_id, (before, after) in changes.items():
        store.write_rating(user_id, after)
        store.record_rating_event(match.id, user_id, before, after)
        adjustments.append({
            'user_id': user_id,
            'rating_before': before,
            'rating_after': after,
            'delta': round(after - before, 1),
            'won': user_id in winner_ratings,
        })
    return adjustments


def _apply_confirm(store, match, actor_id, k_factor, floor):
    # Validate what is in the row now, not what the caller read earlier.
    match = store.lock_match(match.id)
    if match is None:
        raise NotFound('Match not found')
    require_match_permission(store, match, actor_id, 'confirm')
    _require_open(match)
    if match.status != STATUS_PENDING:
        raise ValidationError('Submit the match for confirmation first')
    winning_team = scoring.require_winner(match.sets, match.incomplete_reason)

    validated = sets_to_columns(match.sets)
    validated['incomplete_reason'] = match.incomplete_reason
    if not store.transition_status(
        match.id, (STATUS_PENDING,), STATUS_CONFIRMED,
        expected=validated, confirmed_at=utcnow_naive(),
    ):
        current = store.read_match(match.id)
        if current is not None and current.status == STATUS_PENDING:
            raise ConflictError('The score changed while confirming; reload and try again')
        raise AlreadyFinalized('Match is already confirmed')

    # Ratings go to whoever is on the roster when the status flips.
    match = replace(match, participants=tuple(store.list_participants(match.id)))
    adjustments = apply_rating_adjustment(
        store, match, winning_team, k_factor=k_factor, floor=floor,
    )
    for change in adjustments:
        sign = '+' if change['delta'] >= 0 else ''
        store.add_notification(
            change['user_id'], 'match_result',
            (
                f'{"Win" if change["won"] else "Loss"} {scoring.format_score(match.sets)} | '
                f'rating {sign}{change["delta"]:.1f} -> {change["rating_after"]:.1f}'
            ),
            reference_id=match.id, actor_id=actor_id,
        )
    logger.info(
        'Match %s confirmed by user %s: team %s won, %d ratings adjusted',
        match.id, actor_id, winning_team, len(adjustments),
    )
    return adjustments


def confirm_match(store, match_id, actor_id,
                  k_factor=elo.DEFAULT_K_FACTOR, floor=elo.RATING_FLOOR):
    """Lock the result and apply the rating exchange exactly once."""
    match = load_match(store, match_id)
    with _transaction(store):
        adjustments = _apply_confirm(store, match, actor_id, k_factor, floor)
    return load_match(store, match_id), adjustments


def record_result(store, match_id, actor_id, sets, confirm=False,
                  k_factor=elo.DEFAULT_K_FACTOR, floor=elo.RATING_FLOOR):
    """Write set scores and, when ``confirm`` is set, finalize in one step.

    Used by the club console, where staff enter the result and tick
    confirmation together. Either everything lands or nothing does.
    """
    match = load_match(store, match_id)
    adjustments = []
    with _transaction(store):
        _apply_edit(store, match, actor_id, {'sets': sets})
        if confirm:
            match = store.read_match(match_id)
            _apply_submit(store, match, actor_id)
            match = store.read_match(match_id)
            adjustments = _apply_confirm(store, match, actor_id, k_factor, floor)
    return load_match(store, match_id), adjustments


def cancel_match(store, match_id, actor_id):
    match = load_match(store, match_id)
    require_match_permission(store, match, actor_id, 'cancel')
    _require_open(match)
    with _transaction(store):
        if not store.transition_status(match.id, OPEN_STATUSES, STATUS_CANCELLED):
            raise AlreadyFinalized('Match is already finalized')
        for participant in match.participants:
            if participant.user_id == actor_id:
                continue
            store.add_notification(
                participant.user_id, 'match_cancelled', 'A match you were in was cancelled.',
                reference_id=match.id, actor_id=actor_id,
            )
    return load_match(store, match_id)


def set_visibility(store, match_id, actor_id, is_public):
    """Show or hide a match in feeds. Allowed in every state."""
    match = load_match(store, match_id)
    require_match_permission(store, match, actor_id, 'visibility')
    with _transaction(store):
        store.update_match(
            match.id, {'is_public': bool(is_public)},
            allowed_statuses=(STATUS_DRAFT, STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED),
        )
    return load_match(store, match_id)
