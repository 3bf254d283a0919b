"""Court reservations.

Bookings are checked for overlap twice: once up front for a quick error, and
again at commit while the court row is locked. The unique index on confirmed
(court, start time) backs up the exact-duplicate case.
"""
import logging
from datetime import datetime, time, timedelta

from sqlalchemy.exc import IntegrityError

from padelclub.errors import CapacityExceeded, ConflictError, ValidationError
from padelclub.models import Court, Reservation, ReservationPlayer
from padelclub.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

RESERVATION_TYPES = ('booking', 'maintenance', 'class')
STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'


def reservation_window(club, start_time, end_time=None):
    """Return ``(start, end)`` after checking it against the club's hours."""
    if end_time is None:
        end_time = start_time + timedelta(minutes=club.booking_duration or 90)
    if end_time <= start_time:
        raise ValidationError('A reservation must end after it starts')

    day = start_time.date()
    opens = datetime.combine(day, time(hour=club.opening_hour))
    if club.closing_hour >= 24:
        closes = datetime.combine(day + timedelta(days=1), time())
    else:
        closes = datetime.combine(day, time(hour=club.closing_hour))
    if start_time < opens or end_time > closes:
        raise ValidationError(
            f'Reservations must fit between {club.opening_hour}:00 and {club.closing_hour}:00'
        )
    return start_time, end_time


def find_overlap(session, court_id, start_time, end_time, exclude_id=None):
    query = session.query(Reservation).filter(
        Reservation.court_id == court_id,
        Reservation.status == STATUS_CONFIRMED,
        Reservation.start_time < end_time,
        Reservation.end_time > start_time,
    )
    if exclude_id is not None:
        query = query.filter(Reservation.id != exclude_id)
    return query.first()


def _clean_players(raw_players, max_players):
    if raw_players is None:
        return []
    if not isinstance(raw_players, list):
        raise ValidationError('players must be a list')
    if len(raw_players) > max_players:
        raise CapacityExceeded(f'A reservation holds at most {max_players} players')
    players = []
    seen_user_ids = set()
    for raw in raw_players:
        if not isinstance(raw, dict):
            raise ValidationError('Each player must be an object')
        name = str(raw.get('name') or '').strip()[:120]
        if not name:
            raise ValidationError('Each player needs a name')
        user_id = raw.get('user_id')
        if user_id is not None:
            try:
                user_id = int(user_id)
            except (TypeError, ValueError):
                raise ValidationError('player user_id must be numeric')
            if user_id in seen_user_ids:
                raise ValidationError('A player can only be listed once')
            seen_user_ids.add(user_id)
        try:
            amount = float(raw.get('amount') or 0)
        except (TypeError, ValueError):
            raise ValidationError('player amount must be a number')
        players.append(ReservationPlayer(
            user_id=user_id, name=name,
            paid=bool(raw.get('paid', False)), amount=amount,
        ))
    return players


def _slot_conflict(session, reservation, exc=None):
    court_id, start_time = reservation.court_id, reservation.start_time
    session.rollback()
    logger.info('Slot conflict on court %s at %s', court_id, start_time.isoformat())
    raise ConflictError('That slot is already taken, please pick another') from exc


def _commit_or_conflict(session, reservation):
    """Commit ``reservation`` unless another confirmed booking overlaps it.

    The court row stays locked from the overlap check to the commit, so two
    writers on one court are serialized even when their start times differ.
    """
    try:
        session.query(Court).filter(Court.id == reservation.court_id) \
            .with_for_update().one_or_none()
        session.flush()
        clash = None
        if reservation.status == STATUS_CONFIRMED:
            clash = find_overlap(
                session, reservation.court_id, reservation.start_time,
                reservation.end_time, exclude_id=reservation.id,
            )
    except IntegrityError as exc:
        _slot_conflict(session, reservation, exc)
    if clash is not None:
        _slot_conflict(session, reservation)
    try:
        session.commit()
    except IntegrityError as exc:
        _slot_conflict(session, reservation, exc)


def create_reservation(session, club, court, start_time, end_time=None, user=None,
                       reservation_type='booking', price=None, notes='',
                       players=None, max_players=4):
    if reservation_type not in RESERVATION_TYPES:
        raise ValidationError('Invalid reservation type')
    if court.club_id != club.id:
        raise ValidationError('Court does not belong to this club')
    if not court.is_active:
        raise ValidationError('Court is not available for booking')
    if start_time < utcnow_naive():
        raise ValidationError('Reservations cannot start in the past')

    start_time, end_time = reservation_window(club, start_time, end_time)
    if find_overlap(session, court.id, start_time, end_time):
        raise ConflictError('That slot is already taken, please pick another')

    player_rows = _clean_players(players, max_players)
    if not player_rows and user is not None and reservation_type == 'booking':
        player_rows = [ReservationPlayer(
            user_id=user.id, name=user.display_name or user.username, paid=False,
        )]

    if price is None:
        price = court.price if court.price is not None else club.default_price

    reservation = Reservation(
        club_id=club.id, court_id=court.id,
        user_id=user.id if user else None,
        start_time=start_time, end_time=end_time,
        status=STATUS_CONFIRMED, reservation_type=reservation_type,
        price=price, notes=notes or '',
        players=player_rows,
    )
    session.add(reservation)
    _commit_or_conflict(session, reservation)
    return reservation


def update_reservation(session, reservation, data, max_players=4):
    """Staff edit: move the slot, change price, notes or player payments."""
    if reservation.status != STATUS_CONFIRMED:
        raise ValidationError('Only confirmed reservations can be edited')

    if 'start_time' in data:
        start_time = data['start_time']
        start_time, end_time = reservation_window(reservation.club, start_time)
        if find_overlap(session, reservation.court_id, start_time, end_time,
                        exclude_id=reservation.id):
            raise ConflictError('That slot is already taken, please pick another')
        reservation.start_time = start_time
        reservation.end_time = end_time
    if 'price' in data:
        try:
            reservation.price = float(data['price'])
        except (TypeError, ValueError):
            raise ValidationError('price must be a number')
    if 'notes' in data:
        reservation.notes = str(data.get('notes') or '')
    if 'players' in data:
        players = _clean_players(data['players'], max_players)
        # Old rows go first so a re-listed user does not collide with itself.
        reservation.players = []
        session.flush()
        reservation.players = players

    _commit_or_conflict(session, reservation)
    return reservation


def join_reservation(session, reservation, user, max_players=4):
    """Add ``user`` to the player list. Returns True when a row was added.

    The reservation row is locked and the players are counted from the
    database, so two joiners cannot both take the last place.
    """
    reservation_id, user_id = reservation.id, user.id
    locked = session.query(Reservation).filter(Reservation.id == reservation_id) \
        .populate_existing().with_for_update().one()
    if locked.status != STATUS_CONFIRMED:
        raise ValidationError('This reservation was cancelled')
    players = session.query(ReservationPlayer).filter_by(reservation_id=reservation_id).all()
    if any(p.user_id == user_id for p in players):
        return False
    if len(players) >= max_players:
        raise CapacityExceeded('This reservation is already full')

    session.add(ReservationPlayer(
        reservation_id=reservation_id, user_id=user_id,
        name=user.display_name or user.username,
    ))
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        already_listed = session.query(ReservationPlayer.id).filter_by(
            reservation_id=reservation_id, user_id=user_id,
        ).first()
        if already_listed is not None:
            return False
        logger.warning('Join of user %s to reservation %s failed: %s',
                       user_id, reservation_id, exc.orig)
        raise ConflictError('Could not join this reservation, please retry') from exc
    return True


def cancel_reservation(session, reservation):
    if reservation.status == STATUS_CANCELLED:
        return reservation
    reservation.status = STATUS_CANCELLED
    session.commit()
    return reservation


def day_reservations(session, club_id, day):
    start = datetime.combine(day, time())
    end = start + timedelta(days=1)
    return session.query(Reservation).filter(
        Reservation.club_id == club_id,
        Reservation.status == STATUS_CONFIRMED,
        Reservation.start_time >= start,
        Reservation.start_time < end,
    ).order_by(Reservation.start_time, Reservation.court_id).all()
