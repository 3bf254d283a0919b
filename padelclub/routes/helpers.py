"""Shared helpers for the API blueprints."""
from flask import current_app
from padelclub.app import db, socketio
from padelclub.errors import ValidationError
from padelclub.services.match_store import SqlMatchStore
from padelclub.time_utils import utcnow_naive


def match_store():
    return SqlMatchStore(db.session)


def rating_policy():
    """``k_factor`` and ``floor`` keyword arguments from the app config."""
    return {
        'k_factor': float(current_app.config.get('RATING_K_FACTOR', 32.0)),
        'floor': float(current_app.config.get('RATING_FLOOR', 100.0)),
    }


def parse_positive_int(raw_value, label):
    if raw_value in (None, ''):
        return None
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        raise ValidationError(f'{label} must be a positive integer')
    if value <= 0:
        raise ValidationError(f'{label} must be a positive integer')
    return value


def parse_id_list(raw_ids, label):
    if raw_ids in (None, ''):
        return []
    if not isinstance(raw_ids, list):
        raise ValidationError(f'{label} must be a list of user ids')
    return [parse_positive_int(raw, label) for raw in raw_ids]


def _emit_match_update(match_id=None, reason='updated'):
    socketio.emit('match_update', {
        'match_id': match_id,
        'reason': reason,
        'at': utcnow_naive().isoformat(),
    })


def _emit_reservation_update(reservation_id=None, club_id=None, reason='updated'):
    socketio.emit('reservation_update', {
        'reservation_id': reservation_id,
        'club_id': club_id,
        'reason': reason,
        'at': utcnow_naive().isoformat(),
    })


def _emit_notification_update(user_id=None, user_ids=None, reason='updated'):
    targets = set(user_ids or [])
    if user_id is not None:
        targets.add(user_id)
    socketio.emit('notification_update', {
        'user_ids': sorted(targets),
        'reason': reason,
        'at': utcnow_naive().isoformat(),
    })
