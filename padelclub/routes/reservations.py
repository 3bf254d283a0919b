from flask import Blueprint, request, jsonify, current_app
from padelclub.app import db
from padelclub.models import Club, Court, Reservation, ReservationPlayer, Notification
from padelclub.auth_utils import login_required
from padelclub.errors import NotFound, ValidationError
from padelclub.routes.helpers import (
    match_store, _emit_reservation_update, _emit_notification_update,
)
from padelclub.services import reservations as reservation_service
from padelclub.services.authorization import CLUB_ROLES, require_club_role
from padelclub.time_utils import parse_iso_datetime, utcnow_naive

reservations_bp = Blueprint('reservations', __name__)


def _max_players():
    return int(current_app.config.get('RESERVATION_MAX_PLAYERS', 4))


def _get_reservation(reservation_id):
    reservation = db.session.get(Reservation, reservation_id)
    if not reservation:
        raise NotFound('Reservation not found')
    return reservation


def _parse_start(raw_value, label='start_time'):
    parsed = parse_iso_datetime(raw_value)
    if parsed is None:
        raise ValidationError(f'{label} must be an ISO-8601 timestamp')
    return parsed


def _notify_players(reservation, content, reason, exclude_user_id=None):
    user_ids = {
        p.user_id for p in reservation.players
        if p.user_id is not None and p.user_id != exclude_user_id
    }
    for user_id in user_ids:
        db.session.add(Notification(
            user_id=user_id, actor_id=exclude_user_id, notif_type=reason,
            content=content, reference_id=reservation.id,
        ))
    return sorted(user_ids)


@reservations_bp.route('', methods=['POST'])
@login_required
def create_reservation():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    user = request.current_user
    try:
        club_id = int(data.get('club_id'))
        court_id = int(data.get('court_id'))
    except (TypeError, ValueError):
        return jsonify({'error': 'club_id and court_id are required'}), 400
    club = db.session.get(Club, club_id)
    if not club:
        return jsonify({'error': 'Club not found'}), 404
    court = db.session.get(Court, court_id)
    if not court or court.club_id != club.id:
        return jsonify({'error': 'Court not found'}), 404

    start_time = _parse_start(data.get('start_time'))
    end_time = None
    if data.get('end_time'):
        end_time = _parse_start(data.get('end_time'), 'end_time')

    reservation_type = str(data.get('type') or 'booking').strip().lower()
    # Only the club blocks courts for maintenance or classes, or sets prices.
    if reservation_type != 'booking' or 'price' in data or end_time is not None:
        require_club_role(match_store(), club.id, user.id, CLUB_ROLES)

    price = None
    if data.get('price') not in (None, ''):
        try:
            price = float(data['price'])
        except (TypeError, ValueError):
            return jsonify({'error': 'price must be a number'}), 400

    reservation = reservation_service.create_reservation(
        db.session, club, court, start_time, end_time=end_time,
        user=user if reservation_type == 'booking' else None,
        reservation_type=reservation_type, price=price,
        notes=str(data.get('notes') or '').strip()[:2000],
        players=data.get('players'),
        max_players=_max_players(),
    )
    current_app.logger.info(
        'Reservation %s on court %s at %s by user %s',
        reservation.id, court.id, reservation.start_time.isoformat(), user.id,
    )
    _emit_reservation_update(reservation_id=reservation.id, club_id=club.id, reason='created')
    return jsonify({'reservation': reservation.to_dict()}), 201


@reservations_bp.route('/mine', methods=['GET'])
@login_required
def my_reservations():
    user_id = request.current_user.id
    include_past = str(request.args.get('include_past', '')).strip().lower() in {'1', 'true', 'yes'}
    joined_ids = db.session.query(ReservationPlayer.reservation_id).filter(
        ReservationPlayer.user_id == user_id,
    )
    query = Reservation.query.filter(
        (Reservation.user_id == user_id) | Reservation.id.in_(joined_ids),
        Reservation.status == reservation_service.STATUS_CONFIRMED,
    )
    if not include_past:
        query = query.filter(Reservation.end_time >= utcnow_naive())
    rows = query.order_by(Reservation.start_time).all()
    return jsonify({'reservations': [r.to_dict() for r in rows]})


@reservations_bp.route('/<int:reservation_id>', methods=['GET'])
@login_required
def get_reservation(reservation_id):
    reservation = _get_reservation(reservation_id)
    payload = reservation.to_dict()
    payload['club'] = reservation.club.to_dict()
    payload['spots_left'] = max(0, _max_players() - len(reservation.players))
    return jsonify({'reservation': payload})


@reservations_bp.route('/<int:reservation_id>/join', methods=['POST'])
@login_required
def join_reservation(reservation_id):
    """Join through a shared reservation link."""
    user = request.current_user
    reservation = _get_reservation(reservation_id)
    created = reservation_service.join_reservation(
        db.session, reservation, user, max_players=_max_players(),
    )
    if created:
        notify_ids = []
        if reservation.user_id and reservation.user_id != user.id:
            db.session.add(Notification(
                user_id=reservation.user_id, actor_id=user.id,
                notif_type='reservation_join',
                content=f'{user.display_name or user.username} joined your booking.',
                reference_id=reservation.id,
            ))
            notify_ids.append(reservation.user_id)
        db.session.commit()
        _emit_reservation_update(
            reservation_id=reservation.id, club_id=reservation.club_id, reason='player_joined',
        )
        if notify_ids:
            _emit_notification_update(user_ids=notify_ids, reason='reservation_join')
    return jsonify({
        'joined': created,
        'reservation': reservation.to_dict(),
    }), 201 if created else 200


@reservations_bp.route('/<int:reservation_id>', methods=['PUT', 'PATCH'])
@login_required
def update_reservation(reservation_id):
    reservation = _get_reservation(reservation_id)
    require_club_role(match_store(), reservation.club_id, request.current_user.id, CLUB_ROLES)
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    changes = {key: data[key] for key in ('price', 'notes', 'players') if key in data}
    if 'start_time' in data:
        changes['start_time'] = _parse_start(data.get('start_time'))
    if not changes:
        return jsonify({'error': 'Nothing to update'}), 400

    reservation = reservation_service.update_reservation(
        db.session, reservation, changes, max_players=_max_players(),
    )
    _emit_reservation_update(
        reservation_id=reservation.id, club_id=reservation.club_id, reason='updated',
    )
    return jsonify({'reservation': reservation.to_dict()})


@reservations_bp.route('/<int:reservation_id>/cancel', methods=['POST'])
@login_required
def cancel_reservation(reservation_id):
    user = request.current_user
    reservation = _get_reservation(reservation_id)
    if reservation.user_id != user.id:
        require_club_role(match_store(), reservation.club_id, user.id, CLUB_ROLES)
    if reservation.status == reservation_service.STATUS_CANCELLED:
        return jsonify({'reservation': reservation.to_dict()})

    notified = _notify_players(
        reservation, 'A booking you were in was cancelled.', 'reservation_cancelled',
        exclude_user_id=user.id,
    )
    reservation = reservation_service.cancel_reservation(db.session, reservation)
    current_app.logger.info('Reservation %s cancelled by user %s', reservation.id, user.id)
    _emit_reservation_update(
        reservation_id=reservation.id, club_id=reservation.club_id, reason='cancelled',
    )
    if notified:
        _emit_notification_update(user_ids=notified, reason='reservation_cancelled')
    return jsonify({'reservation': reservation.to_dict()})
