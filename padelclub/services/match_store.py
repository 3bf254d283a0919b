"""Data access for the match workflow.

Workflow operations receive a store instead of reaching for the global
session, so every read and write they perform goes through this interface
and comes back as a typed record.
"""
from sqlalchemy import update, or_
from sqlalchemy.exc import IntegrityError

from padelclub.errors import ConflictError
from padelclub.models import (
    Match, MatchParticipant, User, ClubMember, RatingEvent, Notification,
)
from padelclub.services.records import MatchRecord, ParticipantRecord, OPEN_STATUSES
from padelclub.time_utils import utcnow_naive

SET_COLUMNS = (
    ('set1_home', 'set1_away'),
    ('set2_home', 'set2_away'),
    ('set3_home', 'set3_away'),
)


def sets_to_columns(sets):
    columns = {}
    for (home_col, away_col), (home, away) in zip(SET_COLUMNS, sets):
        columns[home_col] = home
        columns[away_col] = away
    return columns


class SqlMatchStore:
    """Match store backed by a SQLAlchemy session.

    Writes are flushed, never committed, until :meth:`commit` is called so
    a workflow operation can make its status change and its rating writes
    land in the same transaction.
    """

    def __init__(self, session):
        self.session = session

    # ── transactions ──────────────────────────────────────────────────

    def commit(self):
        self.session.commit()

    def rollback(self):
        self.session.rollback()

    # ── matches ───────────────────────────────────────────────────────

    def _decode(self, row):
        if row is None:
            return None
        return MatchRecord.from_row(row, participants=self.list_participants(row.id))

    def read_match(self, match_id):
        return self._decode(self.session.get(Match, match_id, populate_existing=True))

    def lock_match(self, match_id):
        """Re-read the match holding its row lock until the transaction ends."""
        row = self.session.query(Match).filter(Match.id == match_id) \
            .populate_existing().with_for_update().one_or_none()
        return self._decode(row)

    def read_match_by_share_code(self, share_code):
        code = str(share_code or '').strip().upper()
        if not code:
            return None
        row = self.session.query(Match).filter_by(share_code=code).first()
        return self._decode(row)

    def share_code_taken(self, share_code):
        return self.session.query(Match.id).filter_by(share_code=share_code).first() is not None

    def insert_match(self, fields):
        now = utcnow_naive()
        row = Match(created_at=now, updated_at=now, **fields)
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError('Match could not be saved; please retry') from exc
        return self._decode(row)

    def update_match(self, match_id, fields, allowed_statuses=OPEN_STATUSES, expected=None):
        """Apply ``fields`` only while the match is in ``allowed_statuses``.

        ``expected`` maps column names to the values the caller validated;
        the write is skipped if any of them changed in the meantime.
        Returns False when the guard rejected the write, which is how a
        concurrent confirmation or edit is detected.
        """
        values = dict(fields)
        values['updated_at'] = utcnow_naive()
        conditions = [Match.id == match_id, Match.status.in_(allowed_statuses)]
        for name, value in (expected or {}).items():
            column = getattr(Match, name)
            conditions.append(column.is_(None) if value is None else column == value)
        result = self.session.execute(
            update(Match)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session='fetch')
        )
        return result.rowcount == 1

    def transition_status(self, match_id, from_statuses, to_status, expected=None, **fields):
        fields['status'] = to_status
        return self.update_match(
            match_id, fields, allowed_statuses=from_statuses, expected=expected,
        )

    def list_matches_for_user(self, user_id):
        participant_ids = self.session.query(MatchParticipant.match_id).filter(
            MatchParticipant.user_id == user_id,
        )
        rows = self.session.query(Match).filter(
            or_(Match.owner_id == user_id, Match.id.in_(participant_ids)),
        ).order_by(Match.played_at.desc(), Match.id.desc()).all()
        return [self._decode(row) for row in rows]

    def list_public_matches(self, owner_ids, limit, offset=0):
        owner_ids = list(owner_ids)
        if not owner_ids:
            return []
        rows = self.session.query(Match).filter(
            Match.owner_id.in_(owner_ids),
            Match.is_public.is_(True),
            Match.status != 'cancelled',
        ).order_by(
            Match.played_at.desc(), Match.id.desc(),
        ).offset(offset).limit(limit).all()
        return [self._decode(row) for row in rows]

    def list_club_matches(self, club_id, statuses=None):
        query = self.session.query(Match).filter(Match.club_id == club_id)
        if statuses:
            query = query.filter(Match.status.in_(list(statuses)))
        rows = query.order_by(Match.played_at.desc(), Match.id.desc()).all()
        return [self._decode(row) for row in rows]

    def list_confirmed_matches_for_player(self, user_id):
        rows = self.session.query(Match).join(
            MatchParticipant, MatchParticipant.match_id == Match.id,
        ).filter(
            MatchParticipant.user_id == user_id,
            Match.status == 'confirmed',
        ).order_by(Match.played_at.desc()).all()
        return [self._decode(row) for row in rows]

    # ── roster ────────────────────────────────────────────────────────

    def list_participants(self, match_id):
        rows = self.session.query(MatchParticipant).filter_by(
            match_id=match_id,
        ).order_by(MatchParticipant.team, MatchParticipant.slot).all()
        return [ParticipantRecord.from_row(row) for row in rows]

    def insert_participant(self, match_id, user_id, team, slot):
        """Insert a roster row; a unique-constraint hit becomes ConflictError.

        On conflict the session is rolled back, so callers must not have
        other unflushed work pending.
        """
        row = MatchParticipant(
            match_id=match_id, user_id=user_id, team=team, slot=slot,
            joined_at=utcnow_naive(),
        )
        self.session.add(row)
        try:
            self.session.flush()
        except IntegrityError as exc:
            self.session.rollback()
            raise ConflictError('Roster slot already taken') from exc
        return ParticipantRecord.from_row(row)

    # ── people ────────────────────────────────────────────────────────

    def user_exists(self, user_id):
        return self.session.get(User, user_id) is not None

    def missing_user_ids(self, user_ids):
        wanted = set(user_ids)
        if not wanted:
            return set()
        found = {
            row.id for row in self.session.query(User.id).filter(User.id.in_(wanted)).all()
        }
        return wanted - found

    def is_site_admin(self, user_id):
        user = self.session.get(User, user_id)
        return bool(user and user.is_admin)

    def club_role(self, club_id, user_id):
        if club_id is None or user_id is None:
            return None
        member = self.session.query(ClubMember).filter_by(
            club_id=club_id, user_id=user_id,
        ).first()
        return member.role if member else None

    # ── ratings ───────────────────────────────────────────────────────

    def read_rating(self, user_id):
        user = self.session.get(User, user_id)
        if user is None or user.rating is None:
            return None
        return float(user.rating)

    def write_rating(self, user_id, value):
        user = self.session.get(User, user_id)
        user.rating = value

    def record_rating_event(self, match_id, user_id, before, after):
        self.session.add(RatingEvent(
            match_id=match_id, user_id=user_id,
            rating_before=before, rating_after=after,
            delta=round(after - before, 1),
        ))
        self.session.flush()

    def rating_events(self, match_id):
        return self.session.query(RatingEvent).filter_by(match_id=match_id).order_by(RatingEvent.id).all()

    # ── notifications ─────────────────────────────────────────────────

    def add_notification(self, user_id, notif_type, content, reference_id=None, actor_id=None):
        self.session.add(Notification(
            user_id=user_id, actor_id=actor_id, notif_type=notif_type,
            content=content, reference_id=reference_id,
        ))
