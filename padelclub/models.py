from padelclub.app import db
from padelclub.time_utils import utcnow_naive


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    google_sub = db.Column(db.String(255), unique=True, nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    role = db.Column(db.String(20), default='player', nullable=False)  # player, club_admin, club_staff
    display_name = db.Column(db.String(120), default='')
    avatar_url = db.Column(db.String(500), default='')
    is_public = db.Column(db.Boolean, default=True, nullable=False)
    rating = db.Column(db.Float, default=1200.0, nullable=False)
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    locked_until = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(), onupdate=lambda: utcnow_naive())

    def to_public_dict(self):
        return {
            'id': self.id, 'username': self.username,
            'display_name': self.display_name, 'avatar_url': self.avatar_url,
            'rating': self.rating, 'is_public': self.is_public,
        }

    def to_dict(self):
        data = self.to_public_dict()
        data.update({
            'email': self.email, 'role': self.role, 'is_admin': self.is_admin,
            'created_at': _iso(self.created_at),
        })
        return data


class Club(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    slug = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, default='')
    location = db.Column(db.String(200), default='')
    logo_url = db.Column(db.String(500), default='')
    booking_duration = db.Column(db.Integer, default=90, nullable=False)  # minutes
    default_price = db.Column(db.Float, default=0.0, nullable=False)
    opening_hour = db.Column(db.Integer, default=8, nullable=False)
    closing_hour = db.Column(db.Integer, default=23, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    members = db.relationship('ClubMember', backref='club', cascade='all, delete')
    courts = db.relationship('Court', backref='club', cascade='all, delete')

    def to_dict(self):
        return {
            'id': self.id, 'name': self.name, 'slug': self.slug,
            'description': self.description, 'location': self.location,
            'logo_url': self.logo_url, 'booking_duration': self.booking_duration,
            'default_price': self.default_price,
            'opening_hour': self.opening_hour, 'closing_hour': self.closing_hour,
            'created_at': _iso(self.created_at),
        }


class ClubMember(db.Model):
    """Staff membership of a user in a club console."""
    id = db.Column(db.Integer, primary_key=True)
    club_id = db.Column(db.Integer, db.ForeignKey('club.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    role = db.Column(db.String(20), default='staff', nullable=False)  # admin, staff
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('club_id', 'user_id', name='uq_club_member_club_user'),
    )

    user = db.relationship('User', backref='club_memberships')

    def to_dict(self):
        return {
            'id': self.id, 'club_id': self.club_id, 'user_id': self.user_id,
            'role': self.role,
            'user': self.user.to_public_dict() if self.user else None,
            'created_at': _iso(self.created_at),
        }


class Court(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    club_id = db.Column(db.Integer, db.ForeignKey('club.id'), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    court_type = db.Column(db.String(20), default='outdoor', nullable=False)  # indoor, outdoor
    surface = db.Column(db.String(20), default='synthetic', nullable=False)  # crystal, wall, synthetic
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    price = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id, 'club_id': self.club_id, 'name': self.name,
            'court_type': self.court_type, 'surface': self.surface,
            'is_active': self.is_active, 'price': self.price,
            'created_at': _iso(self.created_at),
        }


class Reservation(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    club_id = db.Column(db.Integer, db.ForeignKey('club.id'), nullable=False)
    court_id = db.Column(db.Integer, db.ForeignKey('court.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    start_time = db.Column(db.DateTime, nullable=False)
    end_time = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), default='confirmed', nullable=False)  # confirmed, cancelled
    reservation_type = db.Column(db.String(20), default='booking', nullable=False)  # booking, maintenance, class
    price = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    # Two confirmed bookings may never share a court start time; cancelled rows free the slot.
    __table_args__ = (
        db.Index(
            'uq_reservation_court_start_confirmed', 'court_id', 'start_time',
            unique=True,
            sqlite_where=db.text("status = 'confirmed'"),
            postgresql_where=db.text("status = 'confirmed'"),
        ),
        db.Index('ix_reservation_club_start', 'club_id', 'start_time'),
    )

    club = db.relationship('Club', backref=db.backref('reservations', cascade='all, delete'))
    court = db.relationship('Court', backref=db.backref('reservations', cascade='all, delete'))
    user = db.relationship('User', backref='reservations')
    players = db.relationship(
        'ReservationPlayer', backref='reservation', lazy='joined',
        cascade='all, delete-orphan', order_by='ReservationPlayer.id',
    )

    @property
    def payment_status(self):
        if not self.players:
            return 'pending'
        paid = sum(1 for p in self.players if p.paid)
        if paid == 0:
            return 'pending'
        if paid == len(self.players):
            return 'completed'
        return 'partial'

    def to_dict(self):
        return {
            'id': self.id, 'club_id': self.club_id, 'court_id': self.court_id,
            'user_id': self.user_id,
            'start_time': _iso(self.start_time), 'end_time': _iso(self.end_time),
            'status': self.status, 'type': self.reservation_type,
            'price': self.price, 'notes': self.notes,
            'players': [p.to_dict() for p in self.players],
            'payment_status': self.payment_status,
            'court': self.court.to_dict() if self.court else None,
            'created_at': _iso(self.created_at),
        }


class ReservationPlayer(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey('reservation.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    name = db.Column(db.String(120), nullable=False)
    paid = db.Column(db.Boolean, default=False, nullable=False)
    amount = db.Column(db.Float, default=0.0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('reservation_id', 'user_id', name='uq_reservation_player_user'),
    )

    def to_dict(self):
        return {
            'id': self.id, 'user_id': self.user_id, 'name': self.name,
            'paid': self.paid, 'amount': self.amount,
        }


class Match(db.Model):
    """A logged padel match. Read and written through MatchStore."""
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    club_id = db.Column(db.Integer, db.ForeignKey('club.id'), nullable=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey('reservation.id'), nullable=True)
    match_type = db.Column(db.String(20), nullable=False, default='doubles')  # singles, doubles
    played_at = db.Column(db.DateTime, nullable=False, default=lambda: utcnow_naive())
    location = db.Column(db.String(200), default='')
    partner_name = db.Column(db.String(120), nullable=True)
    opponent1_name = db.Column(db.String(120), nullable=True)
    opponent2_name = db.Column(db.String(120), nullable=True)
    # home = team A (the owner's side), away = team B
    set1_home = db.Column(db.Integer, nullable=True)
    set1_away = db.Column(db.Integer, nullable=True)
    set2_home = db.Column(db.Integer, nullable=True)
    set2_away = db.Column(db.Integer, nullable=True)
    set3_home = db.Column(db.Integer, nullable=True)
    set3_away = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(30), nullable=False, default='draft')
    # draft = being written by the owner
    # pending_confirmation = submitted, waiting for the owner or club staff to confirm
    # confirmed = result locked, ratings applied
    # cancelled = withdrawn by the owner
    incomplete_reason = db.Column(db.String(200), nullable=True)
    notes = db.Column(db.Text, default='')
    overall_feeling = db.Column(db.Integer, nullable=True)
    physical_feeling = db.Column(db.Integer, nullable=True)
    mental_feeling = db.Column(db.Integer, nullable=True)
    is_public = db.Column(db.Boolean, default=False, nullable=False)
    share_code = db.Column(db.String(16), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    confirmed_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.Index('ix_match_owner_played', 'owner_id', 'played_at'),
        db.Index('ix_match_club_status', 'club_id', 'status'),
    )

    participants = db.relationship(
        'MatchParticipant', backref='match', cascade='all, delete',
        order_by='MatchParticipant.id',
    )


class MatchParticipant(db.Model):
    """Roster entry: one player bound to a team slot of a match."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    team = db.Column(db.String(1), nullable=False)  # A, B
    slot = db.Column(db.Integer, nullable=False)  # 1, 2
    joined_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('match_id', 'user_id', name='uq_match_participant_user'),
        db.UniqueConstraint('match_id', 'team', 'slot', name='uq_match_participant_slot'),
        db.Index('ix_match_participant_user', 'user_id'),
    )

    user = db.relationship('User', backref='match_participations')


class RatingEvent(db.Model):
    """Rating change applied to one player by one confirmed match."""
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    rating_before = db.Column(db.Float, nullable=False)
    rating_after = db.Column(db.Float, nullable=False)
    delta = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('match_id', 'user_id', name='uq_rating_event_match_user'),
    )

    def to_dict(self):
        return {
            'match_id': self.match_id, 'user_id': self.user_id,
            'rating_before': self.rating_before, 'rating_after': self.rating_after,
            'delta': self.delta, 'created_at': _iso(self.created_at),
        }


class Follow(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    follower_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    followed_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    __table_args__ = (
        db.UniqueConstraint('follower_id', 'followed_id', name='uq_follow_pair'),
        db.CheckConstraint('follower_id != followed_id', name='ck_follow_not_self'),
    )

    follower = db.relationship('User', foreign_keys=[follower_id], backref='following_links')
    followed = db.relationship('User', foreign_keys=[followed_id], backref='follower_links')


class Notification(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=True)
    notif_type = db.Column(db.String(50), nullable=False)
    content = db.Column(db.Text, nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    read = db.Column(db.Boolean, default=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    user = db.relationship('User', foreign_keys=[user_id], backref='notifications')
    actor = db.relationship('User', foreign_keys=[actor_id])

    def to_dict(self):
        return {
            'id': self.id, 'notif_type': self.notif_type,
            'content': self.content, 'reference_id': self.reference_id,
            'read': self.read,
            'actor': self.actor.to_public_dict() if self.actor else None,
            'created_at': _iso(self.created_at),
        }
