"""Tests for team slots and joining matches by share link."""
import pytest

from padelclub.app import db
from padelclub.errors import ConflictError, MatchFull, NotFound, ValidationError
from padelclub.models import MatchParticipant, Notification
from padelclub.services import match_workflow, roster
from padelclub.services.match_store import SqlMatchStore
from padelclub.services.records import ParticipantRecord


def _participant(team, slot, user_id=1):
    return ParticipantRecord(id=slot, match_id=1, user_id=user_id, team=team, slot=slot)


def _doubles(store, owner_id, **kwargs):
    fields = match_workflow.clean_match_fields({'match_type': 'doubles'})
    return match_workflow.create_match(store, owner_id, fields, **kwargs)


def test_team_capacity_by_kind():
    assert roster.team_capacity('singles') == 1
    assert roster.team_capacity('doubles') == 2


def test_next_open_slot_fills_team_a_first():
    assert roster.next_open_slot([], 'doubles') == ('A', 1)
    assert roster.next_open_slot([_participant('A', 1)], 'doubles') == ('A', 2)
    taken = [_participant('A', 1), _participant('A', 2)]
    assert roster.next_open_slot(taken, 'doubles') == ('B', 1)
    assert roster.next_open_slot([_participant('A', 1)], 'singles') == ('B', 1)
    full = taken + [_participant('B', 1), _participant('B', 2)]
    assert roster.next_open_slot(full, 'doubles') is None


def test_initial_placements_reject_duplicates_and_extra_opponents():
    with pytest.raises(ValidationError):
        roster.initial_placements('doubles', 1, partner_id=2, opponent_ids=[2])
    with pytest.raises(ValidationError):
        roster.initial_placements('singles', 1, opponent_ids=[2, 3])


def test_join_by_share_code_takes_next_slot(store, make_user):
    owner = make_user('owner')
    joiner = make_user('joiner')
    match = _doubles(store, owner)

    participant, created = roster.join_match(store, match.share_code.lower(), joiner)
    assert created is True
    assert (participant.team, participant.slot) == ('A', 2)
    assert Notification.query.filter_by(user_id=owner, notif_type='match_join').count() == 1


def test_join_by_numeric_id(store, make_user):
    owner = make_user('owner')
    joiner = make_user('joiner')
    match = _doubles(store, owner)

    participant, created = roster.join_match(store, str(match.id), joiner)
    assert created
    assert participant.match_id == match.id


def test_join_twice_is_idempotent(store, make_user):
    owner = make_user('owner')
    joiner = make_user('joiner')
    match = _doubles(store, owner)

    first, created_first = roster.join_match(store, match.share_code, joiner)
    second, created_second = roster.join_match(store, match.share_code, joiner)
    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert MatchParticipant.query.filter_by(match_id=match.id, user_id=joiner).count() == 1


def test_fifth_join_on_doubles_is_full(store, make_user):
    owner = make_user('owner')
    match = _doubles(store, owner)
    for name in ('p2', 'p3', 'p4'):
        roster.join_match(store, match.share_code, make_user(name))

    with pytest.raises(MatchFull):
        roster.join_match(store, match.share_code, make_user('p5'))
    assert MatchParticipant.query.filter_by(match_id=match.id).count() == 4


def test_unknown_share_code(store, make_user):
    joiner = make_user('joiner')
    with pytest.raises(NotFound):
        roster.join_match(store, 'NOPE1234', joiner)


class _StaleRosterStore(SqlMatchStore):
    """Serves an old roster snapshot until an insert hits the constraint."""

    def __init__(self, session, snapshot):
        super().__init__(session)
        self.snapshot = snapshot
        self.conflicts = 0

    def list_participants(self, match_id):
        if self.snapshot is not None:
            return list(self.snapshot)
        return super().list_participants(match_id)

    def insert_participant(self, match_id, user_id, team, slot):
        try:
            return super().insert_participant(match_id, user_id, team, slot)
        except ConflictError:
            self.conflicts += 1
            self.snapshot = None
            raise


def test_race_for_last_slot_has_one_winner(store, make_user):
    owner = make_user('owner')
    match = _doubles(store, owner, partner_id=make_user('partner'),
                     opponent_ids=[make_user('opp')])
    snapshot = store.list_participants(match.id)
    first = make_user('first')
    second = make_user('second')

    # Both players read the roster while B2 was open; the first one commits.
    winner, created = roster.join_match(store, match.share_code, first)
    assert created and (winner.team, winner.slot) == ('B', 2)

    stale = _StaleRosterStore(db.session, snapshot)
    with pytest.raises(MatchFull):
        roster.join_match(stale, match.share_code, second)

    assert stale.conflicts == 1
    rows = MatchParticipant.query.filter_by(match_id=match.id).all()
    assert len(rows) == 4
    assert second not in {row.user_id for row in rows}


def test_join_is_allowed_on_any_status(store, make_user):
    owner = make_user('owner')
    match = _doubles(store, owner)
    match_workflow.cancel_match(store, match.id, owner)

    _, created = roster.join_match(store, match.share_code, make_user('late'))
    assert created
