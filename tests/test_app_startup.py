"""Tests for app startup helpers and production guards."""
import json

import pytest

from padelclub.app import _parse_allowed_origins, create_app
from padelclub.config import ProductionConfig
from padelclub.errors import MatchFull, PadelError


def test_parse_allowed_origins():
    assert _parse_allowed_origins('') == '*'
    assert _parse_allowed_origins('*') == '*'
    assert _parse_allowed_origins('https://a.example, https://b.example') == [
        'https://a.example', 'https://b.example',
    ]
    assert _parse_allowed_origins(['https://a.example', '']) == ['https://a.example']


def test_production_requires_secret_key(monkeypatch):
    monkeypatch.setattr(ProductionConfig, 'SECRET_KEY', 'dev-secret-key-change-in-prod')
    monkeypatch.setattr(ProductionConfig, 'CORS_ALLOWED_ORIGINS', 'https://club.example')
    monkeypatch.setattr(ProductionConfig, 'SQLALCHEMY_DATABASE_URI', 'sqlite:///:memory:')
    with pytest.raises(RuntimeError, match='SECRET_KEY'):
        create_app('production')


def test_production_requires_explicit_origins(monkeypatch):
    monkeypatch.setattr(ProductionConfig, 'SECRET_KEY', 'a-real-secret')
    monkeypatch.setattr(ProductionConfig, 'CORS_ALLOWED_ORIGINS', '*')
    monkeypatch.setattr(ProductionConfig, 'SQLALCHEMY_DATABASE_URI', 'sqlite:///:memory:')
    with pytest.raises(RuntimeError, match='CORS_ALLOWED_ORIGINS'):
        create_app('production')


def test_health(client):
    res = client.get('/api/health')
    assert res.status_code == 200
    assert json.loads(res.data) == {'status': 'ok'}


def test_domain_errors_render_as_json(app):
    @app.route('/api/_boom')
    def _boom():
        raise MatchFull('This match is already full', match_id=7)

    res = app.test_client().get('/api/_boom')
    assert res.status_code == 409
    assert json.loads(res.data) == {'error': 'This match is already full', 'match_id': 7}


def test_error_details_and_status():
    error = PadelError('Something broke', field='sets')
    assert error.status_code == 400
    assert error.to_dict() == {'error': 'Something broke', 'field': 'sets'}
