from datetime import date, datetime, time, timedelta

from flask import Blueprint, request, jsonify, current_app
from padelclub.app import db
from padelclub.models import Club, ClubMember, Court, Match, Notification, Reservation, User
from padelclub.auth_utils import login_required, admin_required
from padelclub.errors import NotFound, ValidationError
from padelclub.routes.helpers import (
    match_store, rating_policy, _emit_match_update, _emit_notification_update,
)
from padelclub.services import match_workflow, reservations, scoring
from padelclub.services.authorization import CLUB_ROLES, require_club_role
from padelclub.services.club_payloads import (
    normalize_club_payload, normalize_court_payload, apply_changes,
)
from padelclub.services.records import (
    OPEN_STATUSES, STATUS_CONFIRMED, STATUS_PENDING,
)
from padelclub.time_utils import utcnow_naive

clubs_bp = Blueprint('clubs', __name__)

_MATCH_FILTERS = {
    'pending': OPEN_STATUSES,
    'confirmed': (STATUS_CONFIRMED,),
    'all': None,
}


def _get_club(club_id):
    club = db.session.get(Club, club_id)
    if not club:
        raise NotFound('Club not found')
    return club


def _get_court(club, court_id):
    court = db.session.get(Court, court_id)
    if not court or court.club_id != club.id:
        raise NotFound('Court not found')
    return court


def _require_staff(club):
    return require_club_role(match_store(), club.id, request.current_user.id, CLUB_ROLES)


def _require_club_admin(club):
    return require_club_role(match_store(), club.id, request.current_user.id, ('admin',))


def _parse_day(raw_value):
    if not raw_value:
        return utcnow_naive().date()
    try:
        return date.fromisoformat(str(raw_value).strip())
    except ValueError:
        raise ValidationError('date must be formatted YYYY-MM-DD')


def _sync_user_role(user):
    """Mirror the strongest club membership onto ``User.role``."""
    roles = {m.role for m in user.club_memberships}
    if 'admin' in roles:
        user.role = 'club_admin'
    elif 'staff' in roles:
        user.role = 'club_staff'
    else:
        user.role = 'player'


# ── clubs ─────────────────────────────────────────────────────────────

@clubs_bp.route('', methods=['GET'])
def list_clubs():
    clubs = Club.query.order_by(Club.name).all()
    return jsonify({'clubs': [c.to_dict() for c in clubs]})


@clubs_bp.route('', methods=['POST'])
@admin_required
def create_club():
    data = request.get_json(silent=True) or {}
    club_data, errors = normalize_club_payload(data, partial=False)
    if errors:
        return jsonify({'error': errors[0], 'errors': errors}), 400
    if Club.query.filter_by(slug=club_data['slug']).first():
        return jsonify({'error': 'A club with that slug already exists'}), 409

    user = request.current_user
    club = Club(**club_data)
    db.session.add(club)
    db.session.flush()
    db.session.add(ClubMember(club_id=club.id, user_id=user.id, role='admin'))
    db.session.flush()
    _sync_user_role(user)
    db.session.commit()
    current_app.logger.info('Club %s (%s) created by user %s', club.id, club.slug, user.id)
    return jsonify({'club': club.to_dict()}), 201


@clubs_bp.route('/<int:club_id>', methods=['GET'])
def get_club(club_id):
    club = _get_club(club_id)
    payload = club.to_dict()
    payload['courts'] = [c.to_dict() for c in club.courts if c.is_active]
    return jsonify({'club': payload})


@clubs_bp.route('/slug/<slug>', methods=['GET'])
def get_club_by_slug(slug):
    club = Club.query.filter_by(slug=str(slug).strip().lower()).first()
    if not club:
        return jsonify({'error': 'Club not found'}), 404
    payload = club.to_dict()
    payload['courts'] = [c.to_dict() for c in club.courts if c.is_active]
    return jsonify({'club': payload})


@clubs_bp.route('/<int:club_id>', methods=['PUT', 'PATCH'])
@login_required
def update_club(club_id):
    club = _get_club(club_id)
    _require_club_admin(club)
    data = request.get_json(silent=True) or {}
    club_data, errors = normalize_club_payload(data, partial=True)
    if errors:
        return jsonify({'error': errors[0], 'errors': errors}), 400
    if not club_data:
        return jsonify({'error': 'No valid club fields were provided'}), 400

    opening = club_data.get('opening_hour', club.opening_hour)
    closing = club_data.get('closing_hour', club.closing_hour)
    if closing <= opening:
        return jsonify({'error': 'closing_hour must be after opening_hour.'}), 400
    if 'slug' in club_data:
        taken = Club.query.filter(Club.slug == club_data['slug'], Club.id != club.id).first()
        if taken:
            return jsonify({'error': 'A club with that slug already exists'}), 409

    apply_changes(club, club_data)
    db.session.commit()
    return jsonify({'club': club.to_dict()})


@clubs_bp.route('/<int:club_id>', methods=['DELETE'])
@admin_required
def delete_club(club_id):
    club = _get_club(club_id)
    reservation_ids = db.session.query(Reservation.id).filter(Reservation.club_id == club.id)
    # Logged matches outlive the club; only the links go.
    Match.query.filter(Match.club_id == club.id).update(
        {'club_id': None}, synchronize_session=False,
    )
    Match.query.filter(Match.reservation_id.in_(reservation_ids)).update(
        {'reservation_id': None}, synchronize_session=False,
    )
    members = [m.user for m in club.members]
    db.session.delete(club)
    db.session.flush()
    for user in members:
        db.session.refresh(user)
        _sync_user_role(user)
    db.session.commit()
    current_app.logger.info('Club %s deleted by user %s', club_id, request.current_user.id)
    return jsonify({'message': 'Club deleted'})


# ── members ───────────────────────────────────────────────────────────

@clubs_bp.route('/<int:club_id>/members', methods=['GET'])
@login_required
def list_members(club_id):
    club = _get_club(club_id)
    _require_staff(club)
    members = ClubMember.query.filter_by(club_id=club.id).order_by(ClubMember.id).all()
    return jsonify({'members': [m.to_dict() for m in members]})


@clubs_bp.route('/<int:club_id>/members', methods=['POST'])
@login_required
def add_member(club_id):
    club = _get_club(club_id)
    _require_club_admin(club)
    data = request.get_json(silent=True) or {}
    role = str(data.get('role') or 'staff').strip().lower()
    if role not in CLUB_ROLES:
        return jsonify({'error': 'role must be admin or staff'}), 400

    user = None
    if data.get('user_id') is not None:
        try:
            user = db.session.get(User, int(data['user_id']))
        except (TypeError, ValueError):
            return jsonify({'error': 'user_id must be numeric'}), 400
    elif data.get('email'):
        user = User.query.filter_by(email=str(data['email']).strip().lower()).first()
    else:
        return jsonify({'error': 'user_id or email is required'}), 400
    if not user:
        return jsonify({'error': 'User not found'}), 404

    if ClubMember.query.filter_by(club_id=club.id, user_id=user.id).first():
        return jsonify({'error': 'User is already a member of this club'}), 409

    member = ClubMember(club_id=club.id, user_id=user.id, role=role)
    db.session.add(member)
    db.session.flush()
    _sync_user_role(user)
    db.session.add(
        _club_notification(user.id, f'You were added to {club.name} as {role}.', club.id)
    )
    db.session.commit()
    _emit_notification_update(user_id=user.id, reason='club_member_added')
    return jsonify({'member': member.to_dict()}), 201


def _club_notification(user_id, content, club_id):
    return Notification(
        user_id=user_id, actor_id=request.current_user.id,
        notif_type='club_member', content=content, reference_id=club_id,
    )


def _get_member(club, member_id):
    member = db.session.get(ClubMember, member_id)
    if not member or member.club_id != club.id:
        raise NotFound('Member not found')
    return member


@clubs_bp.route('/<int:club_id>/members/<int:member_id>', methods=['PUT', 'PATCH'])
@login_required
def update_member(club_id, member_id):
    club = _get_club(club_id)
    _require_club_admin(club)
    member = _get_member(club, member_id)
    data = request.get_json(silent=True) or {}
    role = str(data.get('role') or '').strip().lower()
    if role not in CLUB_ROLES:
        return jsonify({'error': 'role must be admin or staff'}), 400
    member.role = role
    db.session.flush()
    _sync_user_role(member.user)
    db.session.commit()
    return jsonify({'member': member.to_dict()})


@clubs_bp.route('/<int:club_id>/members/<int:member_id>', methods=['DELETE'])
@login_required
def remove_member(club_id, member_id):
    club = _get_club(club_id)
    _require_club_admin(club)
    member = _get_member(club, member_id)
    user = member.user
    db.session.delete(member)
    db.session.flush()
    db.session.refresh(user)
    _sync_user_role(user)
    db.session.commit()
    return jsonify({'message': 'Member removed'})


# ── courts ────────────────────────────────────────────────────────────

@clubs_bp.route('/<int:club_id>/courts', methods=['GET'])
def list_courts(club_id):
    club = _get_club(club_id)
    courts = Court.query.filter_by(club_id=club.id).order_by(Court.name).all()
    return jsonify({'courts': [c.to_dict() for c in courts]})


@clubs_bp.route('/<int:club_id>/courts', methods=['POST'])
@login_required
def add_court(club_id):
    club = _get_club(club_id)
    _require_staff(club)
    data = request.get_json(silent=True) or {}
    court_data, errors = normalize_court_payload(data, partial=False)
    if errors:
        return jsonify({'error': errors[0], 'errors': errors}), 400

    court = Court(club_id=club.id, **court_data)
    db.session.add(court)
    db.session.commit()
    return jsonify({'court': court.to_dict()}), 201


@clubs_bp.route('/<int:club_id>/courts/<int:court_id>', methods=['PUT', 'PATCH'])
@login_required
def update_court(club_id, court_id):
    club = _get_club(club_id)
    _require_staff(club)
    court = _get_court(club, court_id)
    data = request.get_json(silent=True) or {}
    court_data, errors = normalize_court_payload(data, partial=True)
    if errors:
        return jsonify({'error': errors[0], 'errors': errors}), 400
    if not court_data:
        return jsonify({'error': 'No valid court fields were provided'}), 400

    apply_changes(court, court_data)
    db.session.commit()
    return jsonify({'court': court.to_dict()})


@clubs_bp.route('/<int:club_id>/courts/<int:court_id>', methods=['DELETE'])
@login_required
def delete_court(club_id, court_id):
    club = _get_club(club_id)
    _require_staff(club)
    court = _get_court(club, court_id)
    reservation_ids = db.session.query(Reservation.id).filter(Reservation.court_id == court.id)
    Match.query.filter(Match.reservation_id.in_(reservation_ids)).update(
        {'reservation_id': None}, synchronize_session=False,
    )
    db.session.delete(court)
    db.session.commit()
    return jsonify({'message': 'Court deleted'})


# ── reservations ──────────────────────────────────────────────────────

@clubs_bp.route('/<int:club_id>/reservations', methods=['GET'])
@login_required
def day_view(club_id):
    """Every confirmed reservation of the club on one day, all courts."""
    club = _get_club(club_id)
    _require_staff(club)
    day = _parse_day(request.args.get('date'))
    rows = reservations.day_reservations(db.session, club.id, day)
    return jsonify({
        'date': day.isoformat(),
        'courts': [c.to_dict() for c in club.courts],
        'reservations': [r.to_dict() for r in rows],
    })


@clubs_bp.route('/<int:club_id>/availability', methods=['GET'])
def availability(club_id):
    """Busy slots for one day, without who booked them."""
    club = _get_club(club_id)
    day = _parse_day(request.args.get('date'))
    rows = reservations.day_reservations(db.session, club.id, day)
    return jsonify({
        'date': day.isoformat(),
        'opening_hour': club.opening_hour,
        'closing_hour': club.closing_hour,
        'booking_duration': club.booking_duration,
        'busy': [
            {
                'court_id': r.court_id,
                'start_time': r.start_time.isoformat(),
                'end_time': r.end_time.isoformat(),
            }
            for r in rows
        ],
    })


# ── matches ───────────────────────────────────────────────────────────

@clubs_bp.route('/<int:club_id>/matches', methods=['GET'])
@login_required
def club_matches(club_id):
    club = _get_club(club_id)
    _require_staff(club)
    status_filter = str(request.args.get('status') or 'all').strip().lower()
    if status_filter not in _MATCH_FILTERS:
        return jsonify({'error': 'status must be pending, confirmed or all'}), 400
    matches = match_store().list_club_matches(club.id, _MATCH_FILTERS[status_filter])
    return jsonify({'matches': [m.to_dict() for m in matches]})


@clubs_bp.route('/<int:club_id>/matches/<int:match_id>/result', methods=['POST'])
@login_required
def record_match_result(club_id, match_id):
    """Staff enter set scores and optionally confirm in the same request."""
    club = _get_club(club_id)
    _require_staff(club)
    store = match_store()
    match = match_workflow.load_match(store, match_id)
    if match.club_id != club.id:
        raise NotFound('Match not found')

    data = request.get_json(silent=True) or {}
    sets = scoring.normalize_sets(data.get('sets'))
    confirm = match_workflow._coerce_bool(data.get('confirm', False))
    match, adjustments = match_workflow.record_result(
        store, match_id, request.current_user.id, sets, confirm=confirm, **rating_policy(),
    )
    _emit_match_update(match_id=match.id, reason='confirmed' if confirm else 'edited')
    if adjustments:
        _emit_notification_update(
            user_ids=[change['user_id'] for change in adjustments], reason='match_result',
        )
    return jsonify({'match': match.to_dict(), 'rating_changes': adjustments})


# ── dashboard ─────────────────────────────────────────────────────────

@clubs_bp.route('/<int:club_id>/stats', methods=['GET'])
@login_required
def dashboard_stats(club_id):
    club = _get_club(club_id)
    _require_staff(club)
    today = utcnow_naive().date()
    start = datetime.combine(today, time())
    end = start + timedelta(days=1)

    todays_reservations = Reservation.query.filter(
        Reservation.club_id == club.id,
        Reservation.status == reservations.STATUS_CONFIRMED,
        Reservation.start_time >= start,
        Reservation.start_time < end,
    ).count()
    active_courts = Court.query.filter_by(club_id=club.id, is_active=True).count()
    pending_matches = Match.query.filter(
        Match.club_id == club.id, Match.status == STATUS_PENDING,
    ).count()
    member_count = ClubMember.query.filter_by(club_id=club.id).count()
    return jsonify({'stats': {
        'todays_reservations': todays_reservations,
        'active_courts': active_courts,
        'pending_matches': pending_matches,
        'member_count': member_count,
    }})
