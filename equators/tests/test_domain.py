"""Tests for :mod:`equators.domain`."""

from unittest import TestCase
from datetime import datetime, timedelta

from pytz import UTC

from .. import domain
from ..auth import scopes


class TestScope(TestCase):
    """Scopes are ``domain:action`` strings."""

    def test_parse(self):
        """A scope string is parsed into its parts."""
        scope = domain.Scope.parse('profile:extended')
        self.assertEqual(scope.domain, 'profile')
        self.assertEqual(scope.action, 'extended')
        self.assertEqual(scope, scopes.READ_EXTENDED_PROFILE)
        self.assertEqual(str(scope), 'profile:extended')

    def test_authorizations_from_str(self):
        """Space-delimited scopes are cast to :class:`.Scope`."""
        auths = domain.from_dict(domain.Authorizations,
                                 {'scopes': 'profile:read email:read'})
        self.assertEqual(auths.scopes, [scopes.READ_PROFILE,
                                        scopes.READ_EMAIL])


class TestSession(TestCase):
    """Sessions survive a trip through a dict."""

    def setUp(self):
        start = datetime.now(tz=UTC)
        self.session = domain.Session(
            session_id='asdf1234',
            start_time=start,
            end_time=start + timedelta(hours=1),
            user=domain.User(
                user_id='12345',
                email='foo@bar.com',
                username='emanresu',
                name='First Last',
                profile=domain.UserProfile(display_name='Firsty',
                                           social={'github': 'emanresu'}),
                preferences=domain.Preferences(theme='light')
            ),
            authorizations=domain.Authorizations(
                scopes=[scopes.READ_PROFILE, scopes.EDIT_PROFILE]
            ),
            ip_address='10.0.0.1',
            nonce='0123'
        )

    def test_to_dict(self):
        """Scopes become strings and datetimes become ISO-8601."""
        data = domain.to_dict(self.session)
        self.assertEqual(data['authorizations']['scopes'],
                         ['profile:read', 'profile:update'])
        self.assertEqual(data['start_time'],
                         self.session.start_time.isoformat())
        self.assertEqual(data['user']['profile']['display_name'], 'Firsty')
        self.assertEqual(data['user']['preferences']['theme'], 'light')

    def test_from_dict(self):
        """The dict representation can be loaded back."""
        data = domain.to_dict(self.session)
        self.assertEqual(domain.from_dict(domain.Session, data), self.session)

    def test_expiry(self):
        """A session is expired once its end time has passed."""
        self.assertFalse(self.session.expired)
        self.assertGreater(self.session.expires, 3500)
        past = self.session._replace(
            end_time=datetime.now(tz=UTC) - timedelta(seconds=1)
        )
        self.assertTrue(past.expired)
        self.assertEqual(past.expires, 0)


class TestTokenExpiry(TestCase):
    """Tokens keep naive UTC timestamps."""

    def test_token(self):
        """Access and refresh lifetimes are tracked separately."""
        issued = domain.utcnow() - timedelta(hours=2)
        token = domain.Token(
            access_token='foo',
            client_id='client',
            user_id='user',
            scope='profile:read',
            issued=issued,
            expires=issued + timedelta(hours=1),
            refresh_token='bar',
            refresh_expires=issued + timedelta(days=30)
        )
        self.assertTrue(token.is_expired)
        self.assertFalse(token.is_refresh_expired)
        self.assertEqual(token.expires_in, 3600)
        self.assertTrue(token._replace(refresh_expires=None)
                        .is_refresh_expired)

    def test_auth_code(self):
        """An authorization code expires at its expiry time."""
        now = domain.utcnow()
        code = domain.AuthorizationCode(
            user_id='user', client_id='client', redirect_uri='https://x.y/',
            scope='profile:read', code='abc', created=now,
            expires=now + timedelta(seconds=600)
        )
        self.assertFalse(code.is_expired)
        self.assertTrue(code._replace(expires=now).is_expired)


class TestUser(TestCase):
    """Users have a role."""

    def test_is_admin(self):
        """Only the admin role makes a user an admin."""
        user = domain.User(username='foo', email='foo@bar.com')
        self.assertFalse(user.is_admin)
        self.assertTrue(user._replace(role='admin').is_admin)
