import pytest

from equators.factory import create_web_app
from equators.services import datastore


@pytest.fixture()
def app(monkeypatch):
    monkeypatch.setenv('SQLALCHEMY_DATABASE_URI', 'sqlite://')
    monkeypatch.setenv('REDIS_FAKE', '1')
    monkeypatch.setenv('AUTH_SESSION_COOKIE_SECURE', '0')
    monkeypatch.setenv('AUTHLIB_INSECURE_TRANSPORT', '1')
    app = create_web_app()
    with app.app_context():
        datastore.create_all()
    return app
