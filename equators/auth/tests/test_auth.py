"""Tests for :mod:`equators.auth` tokens, passwords, scopes and decorators."""

from unittest import TestCase, mock
from datetime import datetime, timedelta

from flask import Flask
from pytz import UTC
from werkzeug.exceptions import Unauthorized, Forbidden

from ... import domain
from .. import tokens, passwords, scopes, decorators, helpers
from ..exceptions import InvalidToken, PasswordAuthenticationFailed


def _session(scope=None) -> domain.Session:
    start = datetime.now(tz=UTC)
    return domain.Session(
        session_id='foo-session',
        start_time=start,
        end_time=start + timedelta(hours=1),
        user=domain.User(user_id='1234', username='foouser',
                         email='foo@user.com'),
        authorizations=domain.Authorizations(
            scopes=scope if scope is not None else scopes.GENERAL_USER
        )
    )


class TestTokens(TestCase):
    """Sessions are encoded as signed JWTs."""

    def test_encode_decode(self):
        """A session can be recovered from its token with the same secret."""
        session = _session()
        token = tokens.encode(session, 'foosecret')
        self.assertEqual(tokens.decode(token, 'foosecret'), session)

    def test_wrong_secret(self):
        """A token signed with another secret is rejected."""
        token = tokens.encode(_session(), 'foosecret')
        with self.assertRaises(InvalidToken):
            tokens.decode(token, 'othersecret')

    def test_generate_token(self):
        """The helper gives admins the admin scopes."""
        token = helpers.generate_token('1', 'a@b.c', 'ab', role='admin',
                                       secret='foosecret')
        session = tokens.decode(token, 'foosecret')
        self.assertIn(scopes.MANAGE_API_KEYS, session.authorizations.scopes)
        self.assertEqual(session.user.role, 'admin')


class TestPasswords(TestCase):
    """Passwords are stored as salted hashes."""

    def test_check(self):
        """The right password passes, and a wrong one raises."""
        hashed = passwords.hash_password('correct horse')
        self.assertNotEqual(hashed, 'correct horse')
        self.assertTrue(passwords.check_password('correct horse', hashed))
        with self.assertRaises(PasswordAuthenticationFailed):
            passwords.check_password('battery staple', hashed)
        with self.assertRaises(PasswordAuthenticationFailed):
            passwords.check_password('correct horse', '')


class TestScopes(TestCase):
    """Scope sets and labels."""

    def test_admin_includes_general(self):
        """Admins can do everything general users can."""
        for scope in scopes.GENERAL_USER:
            self.assertIn(scope, scopes.ADMIN)
        self.assertNotIn(scopes.MANAGE_API_KEYS, scopes.GENERAL_USER)

    def test_human_label(self):
        """Labels are found by scope or by scope string."""
        self.assertEqual(scopes.get_human_label('email:read'),
                         scopes.get_human_label(scopes.READ_EMAIL))
        self.assertIsNone(scopes.get_human_label('nope:nope'))


class TestScoped(TestCase):
    """The :func:`.scoped` decorator protects routes."""

    def setUp(self):
        self.app = Flask('test')

    def test_no_session(self):
        """Without a session the request is unauthorized."""
        @decorators.scoped(scopes.READ_PROFILE)
        def route():
            return 'ok'

        with self.app.test_request_context():
            with mock.patch(f'{decorators.__name__}.request') as mock_req:
                mock_req.auth = None
                with self.assertRaises(Unauthorized):
                    route()

    def test_unauthorized_callback(self):
        """An ``unauthorized`` callback replaces the exception."""
        @decorators.scoped(unauthorized=lambda: 'log in first')
        def route():
            return 'ok'

        with self.app.test_request_context():
            with mock.patch(f'{decorators.__name__}.request') as mock_req:
                mock_req.auth = None
                self.assertEqual(route(), 'log in first')

    def test_missing_scope(self):
        """A session without the required scope is forbidden."""
        @decorators.scoped(scopes.MANAGE_API_KEYS)
        def route():
            return 'ok'

        with self.app.test_request_context():
            with mock.patch(f'{decorators.__name__}.request') as mock_req:
                mock_req.auth = _session()
                with self.assertRaises(Forbidden):
                    route()

    def test_authorizer(self):
        """The authorizer gets the session and the route parameters."""
        authorizer = mock.MagicMock(return_value=False)

        @decorators.scoped(scopes.MANAGE_APPS, authorizer=authorizer)
        def route(client_id):
            return client_id

        with self.app.test_request_context():
            with mock.patch(f'{decorators.__name__}.request') as mock_req:
                mock_req.auth = _session()
                with self.assertRaises(Forbidden):
                    route(client_id='abc')
                authorizer.assert_called_once_with(mock_req.auth,
                                                   client_id='abc')
                authorizer.return_value = True
                self.assertEqual(route(client_id='abc'), 'abc')
