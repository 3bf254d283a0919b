import pytest
from padelclub.app import create_app, db

ADMIN_EMAIL = 'admin@example.com'


@pytest.fixture
def app():
    app = create_app('testing')
    app.config['ADMIN_EMAILS'] = ADMIN_EMAIL
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(client):
    """Register a user and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'testuser', 'email': 'test@example.com',
        'password': 'password123', 'display_name': 'Test User',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def admin_headers(client):
    """Register the configured site admin and return auth headers."""
    res = client.post('/api/auth/register', json={
        'username': 'siteadmin', 'email': ADMIN_EMAIL,
        'password': 'password123',
    })
    token = res.get_json()['token']
    return {'Authorization': f'Bearer {token}', 'Content-Type': 'application/json'}


@pytest.fixture
def make_user(app):
    """Insert a user row directly and return its id."""
    from werkzeug.security import generate_password_hash
    from padelclub.models import User

    def _make_user(username, rating=1200.0, is_public=True):
        user = User(
            username=username, email=f'{username}@example.com',
            password_hash=generate_password_hash('password123'),
            display_name=username.title(), rating=rating, is_public=is_public,
        )
        db.session.add(user)
        db.session.commit()
        return user.id

    return _make_user


@pytest.fixture
def store(app):
    from padelclub.services.match_store import SqlMatchStore
    return SqlMatchStore(db.session)
