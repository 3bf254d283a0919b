"""WSGI entrypoint used by Gunicorn."""
import os

from padelclub.app import create_app
from padelclub.services.club_seeder import seed_demo_club


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {'1', 'true', 'yes', 'on'}


config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if _env_bool('AUTO_SEED_DEMO_CLUB', False):
    with app.app_context():
        seeded = seed_demo_club()
        if seeded:
            app.logger.info('Seeded demo club with %d courts', seeded)
