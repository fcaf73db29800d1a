"""Tests for :class:`equators.auth.Auth` and its middleware."""

from datetime import datetime, timedelta
from unittest import mock

import pytest
from pytz import UTC
from werkzeug.exceptions import Unauthorized

from ... import auth, domain
from .. import tokens
from ..middleware import AuthMiddleware


def _session(**kwargs):
    start = datetime.now(tz=UTC)
    data = dict(
        session_id='fooid',
        start_time=start,
        end_time=start + timedelta(hours=1),
        user=domain.User(user_id='235678', email='foo@foo.com',
                         username='foouser'),
        authorizations=domain.Authorizations(scopes=[auth.scopes.READ_PROFILE])
    )
    data.update(kwargs)
    return domain.Session(**data)


def test_token_session(app):
    """A session unpacked by the middleware is attached to the request."""
    inst = app.extensions['equators.auth']
    session = _session()
    with app.test_request_context(environ_base={'session': session}):
        inst.load_session()
        assert auth.request.auth == session


def test_expired_token_session(app):
    """An expired token session is dropped."""
    inst = app.extensions['equators.auth']
    session = _session(end_time=datetime.now(tz=UTC) - timedelta(seconds=1))
    with app.test_request_context(environ_base={'session': session}):
        inst.load_session()
        assert auth.request.auth is None


def test_cookie_session(app):
    """A session is loaded from the store using the session cookie."""
    inst = app.extensions['equators.auth']
    session = _session()
    cookie = f"{app.config['AUTH_SESSION_COOKIE_NAME']}=sessioncookie123"
    with app.test_request_context(headers={'Cookie': cookie}):
        with mock.patch(f'{auth.__name__}.SessionStore') as mock_store:
            mock_store.current_session.return_value.load.return_value = \
                session
            inst.load_session()
            assert auth.request.auth == session
            mock_store.current_session.return_value.load \
                .assert_called_once_with('sessioncookie123')


def test_invalid_cookie(app):
    """An invalid cookie gives no session, rather than an error."""
    inst = app.extensions['equators.auth']
    cookie = f"{app.config['AUTH_SESSION_COOKIE_NAME']}=garbage"
    with app.test_request_context(headers={'Cookie': cookie}):
        inst.load_session()
        assert auth.request.auth is None


def test_store_unavailable(app):
    """Loading is retried, then the failure is raised."""
    inst = app.extensions['equators.auth']
    cookie = f"{app.config['AUTH_SESSION_COOKIE_NAME']}=sessioncookie123"
    with app.test_request_context(headers={'Cookie': cookie}):
        with mock.patch(f'{auth.__name__}.SessionStore') as mock_store, \
                mock.patch('time.sleep'):
            mock_store.current_session.return_value.load.side_effect = \
                auth.exceptions.Unavailable('nope')
            with pytest.raises(auth.exceptions.Unavailable):
                inst.load_session()
            assert mock_store.current_session.return_value.load.call_count \
                == 3


def test_middleware_exception(app):
    """Middleware has passed an exception."""
    inst = app.extensions['equators.auth']
    with app.test_request_context(
            environ_base={'session': RuntimeError('Nope!')}):
        with pytest.raises(RuntimeError):
            inst.load_session()


class TestMiddleware:
    """:class:`.AuthMiddleware` unpacks session JWTs."""

    def _call(self, header):
        inner = mock.MagicMock()
        middleware = AuthMiddleware(inner, secret='foosecret')
        environ = {}
        if header is not None:
            environ['HTTP_AUTHORIZATION'] = header
        middleware(environ, mock.MagicMock())
        return environ

    def test_no_header(self):
        """No auth header, no session."""
        assert self._call(None)['session'] is None

    def test_bearer_token(self):
        """OAuth2 bearer tokens are left for the resource protector."""
        environ = self._call('Bearer abc123')
        assert environ['session'] is None
        assert environ['token'] is None

    def test_valid_jwt(self):
        """A valid JWT is unpacked into a session."""
        session = _session()
        token = tokens.encode(session, 'foosecret')
        environ = self._call(token)
        assert environ['session'] == session
        assert environ['token'] == token

    def test_invalid_jwt(self):
        """An invalid JWT becomes an exception for the app to raise."""
        environ = self._call('not-a-jwt')
        assert isinstance(environ['session'], Unauthorized)
