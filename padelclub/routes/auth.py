import re
import secrets
import time
from datetime import timedelta

import requests
from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from padelclub.app import db
from padelclub.models import User, Notification
from padelclub.auth_utils import generate_token, login_required, csrf_token_for_bearer
from padelclub.routes.helpers import _emit_notification_update
from padelclub.time_utils import utcnow_naive

auth_bp = Blueprint('auth', __name__)

_USERNAME_PATTERN = re.compile(r'^[A-Za-z0-9_.]{3,80}$')

_GOOGLE_TOKEN_INFO_URL = 'https://oauth2.googleapis.com/tokeninfo'
_ALLOWED_GOOGLE_ISSUERS = {'accounts.google.com', 'https://accounts.google.com'}


def _configured_admin_emails():
    raw_value = current_app.config.get('ADMIN_EMAILS', '')
    return {
        item.strip().lower()
        for item in str(raw_value).split(',')
        if item and item.strip()
    }


def _is_configured_admin_email(email):
    normalized = (email or '').strip().lower()
    return normalized in _configured_admin_emails()


def _maybe_grant_admin_from_config(user):
    if not user or user.is_admin:
        return False
    if not _is_configured_admin_email(user.email):
        return False
    user.is_admin = True
    return True


def _normalize_username_base(raw_value):
    cleaned = re.sub(r'[^a-zA-Z0-9_]+', '', str(raw_value or '').strip().lower())
    if not cleaned:
        cleaned = f'player{secrets.randbelow(100000):05d}'
    if len(cleaned) < 3:
        cleaned = f'{cleaned}_padel'
    return cleaned[:70]


def _build_unique_username(raw_value):
    base = _normalize_username_base(raw_value)
    candidate = base
    suffix = 1
    while User.query.filter_by(username=candidate).first():
        suffix += 1
        candidate_base = base[:max(1, 79 - len(str(suffix)))]
        candidate = f'{candidate_base}{suffix}'
    return candidate


def _verify_google_id_token(id_token):
    client_id = str(current_app.config.get('GOOGLE_CLIENT_ID') or '').strip()
    if not client_id:
        return None, ('Google login is not configured', 503)

    try:
        response = requests.get(
            _GOOGLE_TOKEN_INFO_URL,
            params={'id_token': id_token},
            timeout=5,
        )
    except requests.RequestException:
        current_app.logger.warning('Google token verification request failed')
        return None, ('Unable to verify Google token', 502)

    if response.status_code != 200:
        return None, ('Invalid Google token', 401)

    try:
        token_info = response.json()
    except ValueError:
        return None, ('Invalid Google verification response', 502)

    aud = str(token_info.get('aud') or '').strip()
    if aud != client_id:
        return None, ('Invalid Google token audience', 401)

    iss = str(token_info.get('iss') or '').strip()
    if iss not in _ALLOWED_GOOGLE_ISSUERS:
        return None, ('Invalid Google token issuer', 401)

    try:
        exp_ts = int(token_info.get('exp'))
    except (TypeError, ValueError):
        return None, ('Invalid Google token expiration', 401)
    if exp_ts <= int(time.time()):
        return None, ('Google token expired', 401)

    email_verified = str(token_info.get('email_verified') or '').strip().lower()
    if email_verified not in {'true', '1'}:
        return None, ('Google account email is not verified', 401)

    if not token_info.get('sub') or not token_info.get('email'):
        return None, ('Google token missing required fields', 401)

    return token_info, None


def _find_or_create_google_user(token_info):
    google_sub = str(token_info.get('sub') or '').strip()
    email = str(token_info.get('email') or '').strip().lower()
    name = str(token_info.get('name') or '').strip()
    picture = str(token_info.get('picture') or '').strip()

    user = User.query.filter_by(google_sub=google_sub).first()
    if not user:
        user = User.query.filter_by(email=email).first()
        if user and user.google_sub and user.google_sub != google_sub:
            return None, ('Email is already linked to another Google account', 409)
        if user:
            user.google_sub = google_sub
        else:
            username_seed = email.split('@', 1)[0] if '@' in email else name
            user = User(
                username=_build_unique_username(username_seed),
                email=email,
                password_hash=generate_password_hash(secrets.token_urlsafe(32)),
                google_sub=google_sub,
                is_admin=_is_configured_admin_email(email),
                display_name=name[:120],
                avatar_url=picture[:500],
                rating=current_app.config.get('RATING_DEFAULT', 1200.0),
            )
            db.session.add(user)

    if name and not user.display_name:
        user.display_name = name[:120]
    if picture and not user.avatar_url:
        user.avatar_url = picture[:500]
    _maybe_grant_admin_from_config(user)

    db.session.commit()
    return user, None


def _password_complexity_error(raw_password):
    password = str(raw_password or '')
    if len(password) < 8:
        return 'Password must be at least 8 characters long'
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        return 'Password must include at least one letter and one number'
    return None


def _lockout_threshold():
    raw_value = current_app.config.get('AUTH_LOCKOUT_THRESHOLD', 5)
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        parsed = 5
    return max(1, parsed)


def _lockout_minutes():
    raw_value = current_app.config.get('AUTH_LOCKOUT_MINUTES', 15)
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        parsed = 15
    return max(1, parsed)


def _clear_login_lock_state(user):
    changed = False
    if user.failed_login_attempts:
        user.failed_login_attempts = 0
        changed = True
    if user.locked_until is not None:
        user.locked_until = None
        changed = True
    return changed


def _active_lockout_retry_seconds(user):
    if not user or not user.locked_until:
        return 0
    now = utcnow_naive()
    if user.locked_until <= now:
        return 0
    remaining = (user.locked_until - now).total_seconds()
    return max(1, int(remaining))


def _record_failed_login_attempt(user):
    now = utcnow_naive()
    if user.locked_until and user.locked_until <= now:
        user.locked_until = None
        user.failed_login_attempts = 0

    attempts = int(user.failed_login_attempts or 0) + 1
    user.failed_login_attempts = attempts
    if attempts >= _lockout_threshold():
        user.locked_until = now + timedelta(minutes=_lockout_minutes())
        current_app.logger.warning('Locked account %s after %d failed logins', user.id, attempts)


@auth_bp.route('/google/config', methods=['GET'])
def google_config():
    client_id = str(current_app.config.get('GOOGLE_CLIENT_ID') or '').strip()
    return jsonify({
        'enabled': bool(client_id),
        'client_id': client_id if client_id else None,
    })


@auth_bp.route('/google', methods=['POST'])
def google_login():
    data = request.get_json(silent=True) or {}
    id_token = str(data.get('id_token') or '').strip()
    if not id_token:
        return jsonify({'error': 'Google ID token is required'}), 400

    token_info, token_error = _verify_google_id_token(id_token)
    if token_error:
        message, status = token_error
        return jsonify({'error': message}), status

    user, user_error = _find_or_create_google_user(token_info)
    if user_error:
        message, status = user_error
        return jsonify({'error': message}), status

    token = generate_token(user.id)
    return jsonify({
        'token': token,
        'csrf_token': csrf_token_for_bearer(token),
        'user': user.to_dict(),
    })


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not data or not data.get('username') or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Username, email, and password are required'}), 400

    username = str(data['username']).strip()
    email = str(data['email']).strip().lower()
    if not _USERNAME_PATTERN.match(username):
        return jsonify({'error': 'Username must be 3-80 letters, digits, dots or underscores'}), 400
    password_error = _password_complexity_error(data.get('password'))
    if password_error:
        return jsonify({'error': password_error}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already taken'}), 409
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(data['password']),
        is_admin=_is_configured_admin_email(email),
        display_name=str(data.get('display_name') or username).strip()[:120],
        is_public=bool(data.get('is_public', True)),
        rating=current_app.config.get('RATING_DEFAULT', 1200.0),
    )
    db.session.add(user)
    db.session.commit()
    token = generate_token(user.id)
    return jsonify({
        'token': token,
        'csrf_token': csrf_token_for_bearer(token),
        'user': user.to_dict(),
    }), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    if not data or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    user = User.query.filter_by(email=email).first()
    if user:
        locked_retry_after = _active_lockout_retry_seconds(user)
        if locked_retry_after:
            return jsonify({
                'error': 'Account is temporarily locked due to repeated failed logins.',
                'retry_after_seconds': locked_retry_after,
            }), 423

    if not user or not check_password_hash(user.password_hash, data['password']):
        if user:
            _record_failed_login_attempt(user)
            db.session.commit()
            locked_retry_after = _active_lockout_retry_seconds(user)
            if locked_retry_after:
                return jsonify({
                    'error': 'Account is temporarily locked due to repeated failed logins.',
                    'retry_after_seconds': locked_retry_after,
                }), 423
        return jsonify({'error': 'Invalid email or password'}), 401

    profile_changed = _clear_login_lock_state(user)
    if _maybe_grant_admin_from_config(user):
        profile_changed = True
    if profile_changed:
        db.session.commit()

    token = generate_token(user.id)
    return jsonify({
        'token': token,
        'csrf_token': csrf_token_for_bearer(token),
        'user': user.to_dict(),
    })


@auth_bp.route('/csrf', methods=['GET'])
@login_required
def get_csrf_token():
    auth_header = request.headers.get('Authorization', '')
    token = csrf_token_for_bearer(auth_header)
    if not token:
        return jsonify({'error': 'Unable to generate CSRF token'}), 400
    return jsonify({'csrf_token': token})


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    user = request.current_user
    profile = user.to_dict()
    profile['clubs'] = [
        {'club_id': m.club_id, 'role': m.role, 'name': m.club.name, 'slug': m.club.slug}
        for m in user.club_memberships
    ]
    return jsonify({'user': profile})


@auth_bp.route('/me', methods=['PUT', 'PATCH'])
@login_required
def update_me():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    user = request.current_user

    if 'username' in data:
        username = str(data.get('username') or '').strip()
        if not _USERNAME_PATTERN.match(username):
            return jsonify({'error': 'Username must be 3-80 letters, digits, dots or underscores'}), 400
        taken = User.query.filter(User.username == username, User.id != user.id).first()
        if taken:
            return jsonify({'error': 'Username already taken'}), 409
        user.username = username

    text_fields = {
        'display_name': 120,
        'avatar_url': 500,
    }
    for field, max_len in text_fields.items():
        if field not in data:
            continue
        raw_value = data.get(field)
        if raw_value is None:
            setattr(user, field, '')
            continue
        setattr(user, field, str(raw_value).strip()[:max_len])

    if 'is_public' in data:
        user.is_public = bool(data.get('is_public'))

    db.session.commit()
    return jsonify({'user': user.to_dict()})


@auth_bp.route('/users/search', methods=['GET'])
@login_required
def search_users():
    q = str(request.args.get('q', '')).strip()
    if len(q) < 2:
        return jsonify({'users': []})
    users = User.query.filter(
        (User.username.ilike(f'%{q}%')) | (User.display_name.ilike(f'%{q}%'))
    ).order_by(User.username).limit(20).all()
    return jsonify({
        'users': [u.to_public_dict() for u in users if u.id != request.current_user.id]
    })


@auth_bp.route('/notifications', methods=['GET'])
@login_required
def get_notifications():
    notifs = Notification.query.filter_by(
        user_id=request.current_user.id
    ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(50).all()
    unread = sum(1 for n in notifs if not n.read)
    return jsonify({'notifications': [n.to_dict() for n in notifs], 'unread': unread})


@auth_bp.route('/notifications/read', methods=['POST'])
@login_required
def mark_notifications_read():
    data = request.get_json(silent=True) or {}
    query = Notification.query.filter_by(user_id=request.current_user.id, read=False)
    ids = data.get('ids') if isinstance(data, dict) else None
    if isinstance(ids, list) and ids:
        query = query.filter(Notification.id.in_(ids))
    query.update({'read': True}, synchronize_session=False)
    db.session.commit()
    _emit_notification_update(user_id=request.current_user.id, reason='notifications_read')
    return jsonify({'message': 'Notifications marked as read'})
