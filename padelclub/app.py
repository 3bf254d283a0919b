import logging

from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from padelclub.config import config

db = SQLAlchemy()
socketio = SocketIO()


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s [%(name)s] %(message)s',
    )
    app.logger.setLevel(level)
    logging.getLogger('padelclub').setLevel(level)


def _register_error_handlers(app):
    from padelclub.errors import PadelError

    @app.errorhandler(PadelError)
    def _handle_padel_error(error):
        if error.status_code >= 500:
            app.logger.error('%s on %s %s: %s', type(error).__name__,
                             request.method, request.path, error.message)
        return jsonify(error.to_dict()), error.status_code


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    _configure_logging(app)

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    @app.before_request
    def _enforce_origin_for_mutating_api_requests():
        if request.method in {'GET', 'HEAD', 'OPTIONS'}:
            return None
        if not request.path.startswith('/api/'):
            return None

        origin = str(request.headers.get('Origin') or '').strip()
        if not origin:
            return None

        configured_origins = _parse_allowed_origins(
            app.config.get('CORS_ALLOWED_ORIGINS', '*')
        )
        if configured_origins != '*' and origin not in configured_origins:
            return jsonify({'error': 'Invalid request origin'}), 403

        auth_header = str(request.headers.get('Authorization') or '').strip()
        if not auth_header:
            return None

        csrf_header = request.headers.get('X-CSRF-Token')
        from padelclub.auth_utils import csrf_token_matches
        if not csrf_token_matches(auth_header, csrf_header):
            return jsonify({'error': 'Invalid CSRF token'}), 403
        return None

    _register_error_handlers(app)

    from padelclub.routes.auth import auth_bp
    from padelclub.routes.clubs import clubs_bp
    from padelclub.routes.reservations import reservations_bp
    from padelclub.routes.matches import matches_bp
    from padelclub.routes.social import social_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(clubs_bp, url_prefix='/api/clubs')
    app.register_blueprint(reservations_bp, url_prefix='/api/reservations')
    app.register_blueprint(matches_bp, url_prefix='/api/matches')
    app.register_blueprint(social_bp, url_prefix='/api')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    with app.app_context():
        from padelclub import models  # noqa: F401
        db.create_all()

    app.logger.info('padelclub started (%s)', config_name)
    return app
