"""Tests for authentication routes."""
import json

from padelclub.app import db
from padelclub.models import Notification, User


class _FakeGoogleResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        return self._payload


def _google_payload(**overrides):
    payload = {
        'aud': 'padel-client-id.apps.googleusercontent.com',
        'iss': 'https://accounts.google.com',
        'exp': '9999999999',
        'email_verified': 'true',
        'sub': 'google-sub-123',
        'email': 'googleuser@test.com',
        'name': 'Google User',
        'picture': 'https://example.com/avatar.png',
    }
    payload.update(overrides)
    return payload


def test_register(client):
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'Test@Test.com',
        'password': 'password123', 'display_name': 'Test User',
    })
    assert res.status_code == 201
    data = json.loads(res.data)
    assert 'token' in data
    assert data['csrf_token']
    assert data['user']['username'] == 'testuser'
    assert data['user']['email'] == 'test@test.com'
    assert data['user']['display_name'] == 'Test User'
    assert data['user']['rating'] == 1200.0
    assert data['user']['role'] == 'player'


def test_register_uses_configured_starting_rating(app, client):
    app.config['RATING_DEFAULT'] = 1000.0
    res = client.post('/api/auth/register', json={
        'username': 'newcomer', 'email': 'newcomer@test.com', 'password': 'password123',
    })
    assert res.status_code == 201
    assert json.loads(res.data)['user']['rating'] == 1000.0


def test_register_missing_fields(client):
    res = client.post('/api/auth/register', json={'username': 'x'})
    assert res.status_code == 400


def test_register_rejects_bad_username(client):
    res = client.post('/api/auth/register', json={
        'username': 'no spaces!', 'email': 'bad@test.com', 'password': 'password123',
    })
    assert res.status_code == 400


def test_register_duplicate_username_and_email(client):
    client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup@test.com', 'password': 'password123',
    })
    same_name = client.post('/api/auth/register', json={
        'username': 'dup', 'email': 'dup2@test.com', 'password': 'password123',
    })
    assert same_name.status_code == 409
    same_email = client.post('/api/auth/register', json={
        'username': 'dup2', 'email': 'DUP@test.com', 'password': 'password123',
    })
    assert same_email.status_code == 409


def test_register_rejects_weak_password(client):
    res = client.post('/api/auth/register', json={
        'username': 'weakpw',
        'email': 'weakpw@test.com',
        'password': 'abcdefgh',
    })
    assert res.status_code == 400
    assert 'Password must' in json.loads(res.data)['error']


def test_login(client):
    client.post('/api/auth/register', json={
        'username': 'loginuser', 'email': 'login@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'login@test.com', 'password': 'password123',
    })
    assert res.status_code == 200
    data = json.loads(res.data)
    assert 'token' in data
    assert data['user']['username'] == 'loginuser'


def test_login_bad_password(client):
    client.post('/api/auth/register', json={
        'username': 'badpw', 'email': 'badpw@test.com', 'password': 'password123',
    })
    res = client.post('/api/auth/login', json={
        'email': 'badpw@test.com', 'password': 'wrongpass1',
    })
    assert res.status_code == 401


def test_login_lockout_after_repeated_failures(client):
    client.application.config['AUTH_LOCKOUT_THRESHOLD'] = 5
    client.post('/api/auth/register', json={
        'username': 'lockme', 'email': 'lockme@test.com', 'password': 'password123',
    })

    for _ in range(4):
        res = client.post('/api/auth/login', json={
            'email': 'lockme@test.com', 'password': 'wrongpass1',
        })
        assert res.status_code == 401

    locked = client.post('/api/auth/login', json={
        'email': 'lockme@test.com', 'password': 'wrongpass1',
    })
    assert locked.status_code == 423
    assert json.loads(locked.data)['retry_after_seconds'] > 0

    # The right password does not get through while the lock holds.
    still_locked = client.post('/api/auth/login', json={
        'email': 'lockme@test.com', 'password': 'password123',
    })
    assert still_locked.status_code == 423

    user = User.query.filter_by(email='lockme@test.com').first()
    assert user.failed_login_attempts == 5
    assert user.locked_until is not None


def test_successful_login_resets_failed_attempts(client):
    client.post('/api/auth/register', json={
        'username': 'oops', 'email': 'oops@test.com', 'password': 'password123',
    })
    client.post('/api/auth/login', json={'email': 'oops@test.com', 'password': 'wrongpass1'})
    res = client.post('/api/auth/login', json={
        'email': 'oops@test.com', 'password': 'password123',
    })
    assert res.status_code == 200
    assert User.query.filter_by(email='oops@test.com').first().failed_login_attempts == 0


def test_get_profile(client, auth_headers):
    res = client.get('/api/auth/me', headers=auth_headers)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['user']['username'] == 'testuser'
    assert data['user']['clubs'] == []


def test_get_profile_requires_token(client):
    assert client.get('/api/auth/me').status_code == 401
    bad = client.get('/api/auth/me', headers={'Authorization': 'Bearer not-a-jwt'})
    assert bad.status_code == 401
    assert json.loads(bad.data)['error'] == 'Invalid token'


def test_update_profile(client, auth_headers):
    res = client.patch('/api/auth/me', headers=auth_headers, json={
        'display_name': 'Updated Name', 'avatar_url': 'https://example.com/me.png',
        'is_public': False,
    })
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['user']['display_name'] == 'Updated Name'
    assert data['user']['is_public'] is False


def test_update_profile_rejects_taken_username(client, auth_headers):
    client.post('/api/auth/register', json={
        'username': 'taken', 'email': 'taken@test.com', 'password': 'password123',
    })
    res = client.patch('/api/auth/me', headers=auth_headers, json={'username': 'taken'})
    assert res.status_code == 409
    invalid = client.patch('/api/auth/me', headers=auth_headers, json={'username': 'a'})
    assert invalid.status_code == 400


def test_search_users(client, auth_headers):
    client.post('/api/auth/register', json={
        'username': 'searchme', 'email': 'searchme@test.com', 'password': 'password123',
    })
    res = client.get('/api/auth/users/search?q=search', headers=auth_headers)
    assert res.status_code == 200
    users = json.loads(res.data)['users']
    assert [u['username'] for u in users] == ['searchme']
    assert 'email' not in users[0]

    short = client.get('/api/auth/users/search?q=s', headers=auth_headers)
    assert json.loads(short.data)['users'] == []


def test_notifications_read(client, auth_headers):
    me = json.loads(client.get('/api/auth/me', headers=auth_headers).data)['user']
    for content in ('first', 'second'):
        db.session.add(Notification(
            user_id=me['id'], notif_type='match_invite', content=content,
        ))
    db.session.commit()

    res = client.get('/api/auth/notifications', headers=auth_headers)
    data = json.loads(res.data)
    assert data['unread'] == 2
    first_id = data['notifications'][-1]['id']

    client.post('/api/auth/notifications/read', json={'ids': [first_id]}, headers=auth_headers)
    assert json.loads(client.get('/api/auth/notifications', headers=auth_headers).data)['unread'] == 1

    client.post('/api/auth/notifications/read', json={}, headers=auth_headers)
    assert json.loads(client.get('/api/auth/notifications', headers=auth_headers).data)['unread'] == 0


def test_google_config_endpoint(client):
    client.application.config['GOOGLE_CLIENT_ID'] = ''
    disabled = client.get('/api/auth/google/config')
    assert disabled.status_code == 200
    assert json.loads(disabled.data)['enabled'] is False

    client.application.config['GOOGLE_CLIENT_ID'] = 'padel-client-id.apps.googleusercontent.com'
    enabled = client.get('/api/auth/google/config')
    payload = json.loads(enabled.data)
    assert payload['enabled'] is True
    assert payload['client_id'] == 'padel-client-id.apps.googleusercontent.com'


def test_google_login_disabled_without_client_id(client):
    client.application.config['GOOGLE_CLIENT_ID'] = ''
    res = client.post('/api/auth/google', json={'id_token': 'anything'})
    assert res.status_code == 503


def test_google_login_creates_user(client, monkeypatch):
    client.application.config['GOOGLE_CLIENT_ID'] = 'padel-client-id.apps.googleusercontent.com'

    def fake_google_verify(url, params=None, timeout=0):
        assert params['id_token'] == 'valid-google-token'
        return _FakeGoogleResponse(200, _google_payload())

    monkeypatch.setattr('padelclub.routes.auth.requests.get', fake_google_verify)

    res = client.post('/api/auth/google', json={'id_token': 'valid-google-token'})
    assert res.status_code == 200
    data = json.loads(res.data)
    assert 'token' in data
    assert data['user']['email'] == 'googleuser@test.com'
    assert data['user']['username'] == 'googleuser'
    assert data['user']['display_name'] == 'Google User'

    user = User.query.filter_by(email='googleuser@test.com').first()
    assert user.google_sub == 'google-sub-123'


def test_google_login_links_existing_email_account(client, monkeypatch):
    client.application.config['GOOGLE_CLIENT_ID'] = 'padel-client-id.apps.googleusercontent.com'
    client.post('/api/auth/register', json={
        'username': 'existing', 'email': 'existing@test.com', 'password': 'password123',
    })

    def fake_google_verify(url, params=None, timeout=0):
        return _FakeGoogleResponse(200, _google_payload(
            sub='google-sub-xyz', email='existing@test.com',
        ))

    monkeypatch.setattr('padelclub.routes.auth.requests.get', fake_google_verify)

    res = client.post('/api/auth/google', json={'id_token': 'valid-google-token'})
    assert res.status_code == 200
    assert json.loads(res.data)['user']['username'] == 'existing'
    assert User.query.filter_by(email='existing@test.com').first().google_sub == 'google-sub-xyz'


def test_google_login_rejects_invalid_token_and_audience(client, monkeypatch):
    client.application.config['GOOGLE_CLIENT_ID'] = 'padel-client-id.apps.googleusercontent.com'

    monkeypatch.setattr(
        'padelclub.routes.auth.requests.get',
        lambda url, params=None, timeout=0: _FakeGoogleResponse(401, {'error': 'invalid_token'}),
    )
    assert client.post('/api/auth/google', json={'id_token': 'bad'}).status_code == 401

    monkeypatch.setattr(
        'padelclub.routes.auth.requests.get',
        lambda url, params=None, timeout=0: _FakeGoogleResponse(
            200, _google_payload(aud='someone-else'),
        ),
    )
    res = client.post('/api/auth/google', json={'id_token': 'foreign'})
    assert res.status_code == 401
    assert 'audience' in json.loads(res.data)['error']


def test_admin_emails_config_sets_admin_on_register_and_login(client):
    client.application.config['ADMIN_EMAILS'] = 'boss@test.com'

    register = client.post('/api/auth/register', json={
        'username': 'boss', 'email': 'boss@test.com', 'password': 'password123',
    })
    assert json.loads(register.data)['user']['is_admin'] is True

    normal = client.post('/api/auth/register', json={
        'username': 'normaluser', 'email': 'normal@test.com', 'password': 'password123',
    })
    assert json.loads(normal.data)['user']['is_admin'] is False

    client.application.config['ADMIN_EMAILS'] = 'boss@test.com, normal@test.com'
    login = client.post('/api/auth/login', json={
        'email': 'normal@test.com', 'password': 'password123',
    })
    assert login.status_code == 200
    assert json.loads(login.data)['user']['is_admin'] is True


def test_mutating_api_rejects_disallowed_origin(client):
    client.application.config['CORS_ALLOWED_ORIGINS'] = 'https://allowed.example'
    res = client.post('/api/auth/register', json={
        'username': 'originblocked',
        'email': 'originblocked@test.com',
        'password': 'password123',
    }, headers={'Origin': 'https://evil.example'})
    assert res.status_code == 403

    allowed = client.post('/api/auth/register', json={
        'username': 'originallowed',
        'email': 'originallowed@test.com',
        'password': 'password123',
    }, headers={'Origin': 'https://allowed.example'})
    assert allowed.status_code == 201


def test_authenticated_mutation_requires_csrf_token_with_origin(client):
    client.application.config['CORS_ALLOWED_ORIGINS'] = 'https://allowed.example'
    register = client.post('/api/auth/register', json={
        'username': 'csrfuser', 'email': 'csrfuser@test.com', 'password': 'password123',
    })
    assert register.status_code == 201
    token = json.loads(register.data)['token']

    base_headers = {
        'Authorization': f'Bearer {token}',
        'Origin': 'https://allowed.example',
    }

    missing_csrf = client.post('/api/auth/notifications/read', json={}, headers=base_headers)
    assert missing_csrf.status_code == 403
    assert json.loads(missing_csrf.data)['error'] == 'Invalid CSRF token'

    csrf = client.get('/api/auth/csrf', headers={'Authorization': f'Bearer {token}'})
    assert csrf.status_code == 200
    csrf_token = json.loads(csrf.data)['csrf_token']
    assert csrf_token == json.loads(register.data)['csrf_token']

    bad_csrf = client.post('/api/auth/notifications/read', json={}, headers={
        **base_headers, 'X-CSRF-Token': 'bad-csrf-token',
    })
    assert bad_csrf.status_code == 403

    good = client.post('/api/auth/notifications/read', json={}, headers={
        **base_headers, 'X-CSRF-Token': csrf_token,
    })
    assert good.status_code == 200
