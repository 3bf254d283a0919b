#!/usr/bin/env python3
"""Entry point for the Padel Club application."""
import os
from padelclub.app import create_app, socketio

config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Seed a demo club on first run
with app.app_context():
    from padelclub.services.club_seeder import seed_demo_club
    count = seed_demo_club()
    if count:
        app.logger.info('Seeded demo club with %d courts', count)

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    app.logger.info('Padel Club starting on http://localhost:%d', port)
    socketio.run(
        app, host='0.0.0.0', port=port,
        debug=(config_name == 'development'),
        allow_unsafe_werkzeug=True,
    )
