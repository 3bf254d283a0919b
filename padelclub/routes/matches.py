from flask import Blueprint, request, jsonify, current_app
from padelclub.auth_utils import login_required, optional_current_user
from padelclub.errors import NotAuthorized, ValidationError
from padelclub.routes.helpers import (
    match_store, rating_policy, parse_positive_int, parse_id_list,
    _emit_match_update, _emit_notification_update,
)
from padelclub.services import match_workflow, roster
from padelclub.services.authorization import match_roles
from padelclub.services.records import INITIAL_STATUSES, STATUS_DRAFT

matches_bp = Blueprint('matches', __name__)


def _participant_ids(match):
    return [p.user_id for p in match.participants]


def _require_can_view(store, match, user_id):
    if match.is_public:
        return
    if match_roles(store, match, user_id):
        return
    raise NotAuthorized('This match is private')


@matches_bp.route('', methods=['POST'])
@login_required
def create_match():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    user = request.current_user
    fields = match_workflow.clean_match_fields(data)
    status = str(data.get('status') or STATUS_DRAFT).strip().lower()
    if status not in INITIAL_STATUSES:
        return jsonify({'error': 'status must be draft or pending_confirmation'}), 400

    store = match_store()
    match = match_workflow.create_match(
        store, user.id, fields,
        partner_id=parse_positive_int(data.get('partner_id'), 'partner_id'),
        opponent_ids=parse_id_list(data.get('opponent_ids'), 'opponent_ids'),
        initial_status=status,
        share_code_length=current_app.config.get('SHARE_CODE_LENGTH', 8),
    )
    current_app.logger.info('Match %s created by user %s', match.id, user.id)

    _emit_match_update(match_id=match.id, reason='created')
    invited = [uid for uid in _participant_ids(match) if uid != user.id]
    if invited:
        _emit_notification_update(user_ids=invited, reason='match_invite')
    return jsonify({'match': match.to_dict(viewer_id=user.id)}), 201


@matches_bp.route('/mine', methods=['GET'])
@login_required
def my_matches():
    user_id = request.current_user.id
    matches = match_store().list_matches_for_user(user_id)
    return jsonify({'matches': [m.to_dict(viewer_id=user_id) for m in matches]})


@matches_bp.route('/<int:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    store = match_store()
    user_id = request.current_user.id
    match = match_workflow.load_match(store, match_id)
    _require_can_view(store, match, user_id)
    payload = match.to_dict(viewer_id=user_id)
    payload['rating_changes'] = [e.to_dict() for e in store.rating_events(match.id)]
    return jsonify({'match': payload})


@matches_bp.route('/share/<share_code>', methods=['GET'])
def share_preview(share_code):
    """Preview behind a join link. Works without an account."""
    store = match_store()
    match = store.read_match_by_share_code(share_code)
    if match is None:
        return jsonify({'error': 'Match not found'}), 404
    viewer = optional_current_user()
    viewer_id = viewer.id if viewer else None
    payload = match.to_dict(viewer_id=viewer_id)
    # Private notes and feelings stay with the players.
    for private_field in ('notes', 'overall_feeling', 'physical_feeling', 'mental_feeling'):
        payload.pop(private_field, None)
    payload['open_slot'] = roster.next_open_slot(match.participants, match.match_type)
    return jsonify({'match': payload})


@matches_bp.route('/<int:match_id>', methods=['PATCH', 'PUT'])
@login_required
def edit_match(match_id):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    fields = match_workflow.clean_match_fields(data, partial=True)
    if not fields:
        return jsonify({'error': 'Nothing to update'}), 400

    user_id = request.current_user.id
    is_public = fields.pop('is_public', None)
    store = match_store()
    if fields:
        match = match_workflow.edit_match(store, match_id, user_id, fields)
    if is_public is not None:
        match = match_workflow.set_visibility(store, match_id, user_id, is_public)
    _emit_match_update(match_id=match.id, reason='edited')
    return jsonify({'match': match.to_dict(viewer_id=user_id)})


@matches_bp.route('/<int:match_id>/submit', methods=['POST'])
@login_required
def submit_match(match_id):
    user_id = request.current_user.id
    match = match_workflow.submit_match(match_store(), match_id, user_id)
    _emit_match_update(match_id=match.id, reason='submitted')
    return jsonify({'match': match.to_dict(viewer_id=user_id)})


@matches_bp.route('/<int:match_id>/confirm', methods=['POST'])
@login_required
def confirm_match(match_id):
    user_id = request.current_user.id
    match, adjustments = match_workflow.confirm_match(
        match_store(), match_id, user_id, **rating_policy(),
    )
    _emit_match_update(match_id=match.id, reason='confirmed')
    if adjustments:
        _emit_notification_update(
            user_ids=[change['user_id'] for change in adjustments], reason='match_result',
        )
    return jsonify({
        'match': match.to_dict(viewer_id=user_id),
        'rating_changes': adjustments,
    })


@matches_bp.route('/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel_match(match_id):
    user_id = request.current_user.id
    match = match_workflow.cancel_match(match_store(), match_id, user_id)
    _emit_match_update(match_id=match.id, reason='cancelled')
    others = [uid for uid in _participant_ids(match) if uid != user_id]
    if others:
        _emit_notification_update(user_ids=others, reason='match_cancelled')
    return jsonify({'match': match.to_dict(viewer_id=user_id)})


@matches_bp.route('/<int:match_id>/visibility', methods=['POST'])
@login_required
def set_visibility(match_id):
    data = request.get_json(silent=True) or {}
    if 'is_public' not in data:
        raise ValidationError('is_public is required')
    user_id = request.current_user.id
    match = match_workflow.set_visibility(
        match_store(), match_id, user_id,
        match_workflow._coerce_bool(data.get('is_public')),
    )
    _emit_match_update(match_id=match.id, reason='visibility')
    return jsonify({'match': match.to_dict(viewer_id=user_id)})


@matches_bp.route('/join/<match_ref>', methods=['POST'])
@login_required
def join_match(match_ref):
    """Join through a share link. ``match_ref`` is a share code or a match id."""
    user_id = request.current_user.id
    store = match_store()
    participant, created = roster.join_match(store, match_ref, user_id)
    match = match_workflow.load_match(store, participant.match_id)
    if created:
        current_app.logger.info(
            'User %s joined match %s on team %s', user_id, match.id, participant.team,
        )
        _emit_match_update(match_id=match.id, reason='player_joined')
        _emit_notification_update(user_id=match.owner_id, reason='match_join')
    return jsonify({
        'joined': created,
        'participant': participant.to_dict(),
        'match': match.to_dict(viewer_id=user_id),
    }), 201 if created else 200
