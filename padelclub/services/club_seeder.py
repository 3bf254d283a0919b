"""Seed the database with a demo club and its courts."""

from padelclub.app import db
from padelclub.models import Club, Court

DEMO_CLUB = {
    'name': 'Padel Central',
    'slug': 'padel-central',
    'description': 'Demo club created on first start.',
    'location': 'Madrid',
    'booking_duration': 90,
    'default_price': 24.0,
    'opening_hour': 8,
    'closing_hour': 23,
}

DEMO_COURTS = (
    {'name': 'Court 1', 'court_type': 'indoor', 'surface': 'crystal'},
    {'name': 'Court 2', 'court_type': 'indoor', 'surface': 'crystal'},
    {'name': 'Court 3', 'court_type': 'outdoor', 'surface': 'wall', 'price': 18.0},
)


def seed_demo_club():
    """Insert the demo club only when no club exists. Returns courts created."""
    if Club.query.first():
        return 0

    try:
        club = Club(**DEMO_CLUB)
        db.session.add(club)
        db.session.flush()
        for court_data in DEMO_COURTS:
            db.session.add(Court(club_id=club.id, **court_data))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return len(DEMO_COURTS)
