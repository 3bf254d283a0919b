"""Typed match records decoded from database rows.

The workflow services never touch ORM rows directly: the store maps each
row onto one of these records and refuses rows that break the match
invariants with :class:`RecordDecodeError`.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from padelclub.errors import RecordDecodeError
from padelclub.services import scoring

STATUS_DRAFT = 'draft'
STATUS_PENDING = 'pending_confirmation'
STATUS_CONFIRMED = 'confirmed'
STATUS_CANCELLED = 'cancelled'

STATUSES = (STATUS_DRAFT, STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)
INITIAL_STATUSES = (STATUS_DRAFT, STATUS_PENDING)
TERMINAL_STATUSES = (STATUS_CONFIRMED, STATUS_CANCELLED)
OPEN_STATUSES = (STATUS_DRAFT, STATUS_PENDING)

MATCH_TYPES = ('singles', 'doubles')
TEAMS = (scoring.TEAM_HOME, scoring.TEAM_AWAY)


def _iso(value):
    return value.isoformat() if value else None


@dataclass(frozen=True)
class ParticipantRecord:
    id: int
    match_id: int
    user_id: int
    team: str
    slot: int
    joined_at: Optional[datetime] = None
    username: Optional[str] = None
    display_name: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        if row.team not in TEAMS:
            raise RecordDecodeError(f'Participant {row.id} has unknown team {row.team!r}')
        if row.slot not in (1, 2):
            raise RecordDecodeError(f'Participant {row.id} has invalid slot {row.slot!r}')
        user = getattr(row, 'user', None)
        return cls(
            id=row.id,
            match_id=row.match_id,
            user_id=row.user_id,
            team=row.team,
            slot=row.slot,
            joined_at=row.joined_at,
            username=user.username if user else None,
            display_name=user.display_name if user else None,
        )

    def to_dict(self):
        return {
            'id': self.id, 'match_id': self.match_id, 'user_id': self.user_id,
            'team': self.team, 'slot': self.slot,
            'username': self.username, 'display_name': self.display_name,
            'joined_at': _iso(self.joined_at),
        }


@dataclass(frozen=True)
class MatchRecord:
    id: int
    owner_id: int
    match_type: str
    status: str
    share_code: str
    sets: Tuple[Tuple[Optional[int], Optional[int]], ...] = scoring.EMPTY_SETS
    played_at: Optional[datetime] = None
    club_id: Optional[int] = None
    reservation_id: Optional[int] = None
    location: str = ''
    partner_name: Optional[str] = None
    opponent1_name: Optional[str] = None
    opponent2_name: Optional[str] = None
    incomplete_reason: Optional[str] = None
    notes: str = ''
    overall_feeling: Optional[int] = None
    physical_feeling: Optional[int] = None
    mental_feeling: Optional[int] = None
    is_public: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    participants: Tuple[ParticipantRecord, ...] = field(default_factory=tuple)

    @classmethod
    def from_row(cls, row, participants=None):
        if row.status not in STATUSES:
            raise RecordDecodeError(f'Match {row.id} has unknown status {row.status!r}')
        if row.match_type not in MATCH_TYPES:
            raise RecordDecodeError(f'Match {row.id} has unknown type {row.match_type!r}')
        sets = (
            (row.set1_home, row.set1_away),
            (row.set2_home, row.set2_away),
            (row.set3_home, row.set3_away),
        )
        problems = scoring.shape_errors(sets)
        if problems:
            raise RecordDecodeError(f'Match {row.id} has malformed sets: {"; ".join(problems)}')
        if row.status == STATUS_CONFIRMED and scoring.winner(sets, row.incomplete_reason) is None:
            raise RecordDecodeError(f'Match {row.id} is confirmed without a result')
        if participants is None:
            participants = [ParticipantRecord.from_row(p) for p in row.participants]
        return cls(
            id=row.id,
            owner_id=row.owner_id,
            match_type=row.match_type,
            status=row.status,
            share_code=row.share_code,
            sets=sets,
            played_at=row.played_at,
            club_id=row.club_id,
            reservation_id=row.reservation_id,
            location=row.location or '',
            partner_name=row.partner_name,
            opponent1_name=row.opponent1_name,
            opponent2_name=row.opponent2_name,
            incomplete_reason=row.incomplete_reason,
            notes=row.notes or '',
            overall_feeling=row.overall_feeling,
            physical_feeling=row.physical_feeling,
            mental_feeling=row.mental_feeling,
            is_public=bool(row.is_public),
            created_at=row.created_at,
            updated_at=row.updated_at,
            confirmed_at=row.confirmed_at,
            participants=tuple(participants),
        )

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    @property
    def winner(self):
        return scoring.winner(self.sets, self.incomplete_reason)

    def team_of(self, user_id):
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant.team
        return None

    def to_dict(self, viewer_id=None):
        players = [p.to_dict() for p in self.participants]
        home_wins, away_wins, _ = scoring.set_tally(self.sets)
        data = {
            'id': self.id, 'owner_id': self.owner_id,
            'club_id': self.club_id, 'reservation_id': self.reservation_id,
            'match_type': self.match_type, 'status': self.status,
            'played_at': _iso(self.played_at), 'location': self.location,
            'partner_name': self.partner_name,
            'opponent1_name': self.opponent1_name,
            'opponent2_name': self.opponent2_name,
            'sets': [
                {'home': home, 'away': away} if home is not None else None
                for home, away in self.sets
            ],
            'score': scoring.format_score(self.sets),
            'sets_won': {'home': home_wins, 'away': away_wins},
            'winner_team': self.winner,
            'incomplete': scoring.is_incomplete(self.sets, self.incomplete_reason),
            'incomplete_reason': self.incomplete_reason,
            'notes': self.notes,
            'overall_feeling': self.overall_feeling,
            'physical_feeling': self.physical_feeling,
            'mental_feeling': self.mental_feeling,
            'is_public': self.is_public,
            'share_code': self.share_code,
            'players': players,
            'team_a': [p for p in players if p['team'] == scoring.TEAM_HOME],
            'team_b': [p for p in players if p['team'] == scoring.TEAM_AWAY],
            'created_at': _iso(self.created_at),
            'confirmed_at': _iso(self.confirmed_at),
        }
        if viewer_id is not None:
            team = self.team_of(viewer_id)
            if team is None and viewer_id == self.owner_id:
                team = scoring.TEAM_HOME
            data['viewer_team'] = team
            data['result'] = scoring.result_label(self.sets, team, self.incomplete_reason)
        return data
