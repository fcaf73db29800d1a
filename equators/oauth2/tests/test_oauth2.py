"""Tests for :mod:`equators.oauth2`."""

from hashlib import sha256
from datetime import timedelta
from unittest import TestCase, mock

from flask import Flask

from ...domain import AuthorizationCode, Client, ClientCredential, \
    ClientAuthorization, ClientGrantType, Token, User, UserProfile, utcnow
from ...services import datastore
from ... import oauth2


def _client_data(**kwargs):
    client = Client(
        owner_id='252',
        client_id='fooclient',
        name='fooclient',
        url='http://asdf.com',
        description='a client',
        redirect_uris=['https://foo.com/bar', 'https://foo.com/baz'],
        **kwargs
    )
    secret = 'fooclientsecret'
    cred = ClientCredential(
        client_secret=sha256(secret.encode('utf-8')).hexdigest()
    )
    now = utcnow()
    auths = [
        ClientAuthorization(scope='profile:read',
                            requested=now - timedelta(seconds=30),
                            authorized=now),
        ClientAuthorization(scope='email:read',
                            requested=now - timedelta(seconds=30),
                            authorized=now)
    ]
    grant_types = [
        ClientGrantType(grant_type='authorization_code',
                        requested=now - timedelta(seconds=30),
                        authorized=now),
        ClientGrantType(grant_type='refresh_token',
                        requested=now - timedelta(seconds=30),
                        authorized=now)
    ]
    return secret, (client, cred, auths, grant_types)


class TestOAuth2Client(TestCase):
    """Tests for :class:`oauth2.OAuth2Client`."""

    def setUp(self):
        self.secret, data = _client_data()
        self.client = data[0]
        self.oa2client = oauth2.OAuth2Client(*data)

    def test_scopes(self):
        """Property :attr:`.scopes` is a sorted list of scopes."""
        self.assertEqual(self.oa2client.scopes, ['email:read', 'profile:read'])

    def test_check_client_secret(self):
        """Method :meth:`.check_client_secret` evaluates secret."""
        self.assertTrue(self.oa2client.check_client_secret(self.secret))
        self.assertFalse(self.oa2client.check_client_secret('nope'))

    def test_check_grant_type(self):
        """:meth:`.check_grant_type` evaluates authorized grant types."""
        self.assertTrue(self.oa2client.check_grant_type('authorization_code'))
        self.assertTrue(self.oa2client.check_grant_type('refresh_token'))
        self.assertFalse(self.oa2client.check_grant_type('password'))

    def test_inactive_client(self):
        """A client that is not active may not take part in any flow."""
        _, data = _client_data(status='suspended')
        oa2client = oauth2.OAuth2Client(*data)
        self.assertFalse(oa2client.check_grant_type('authorization_code'))
        self.assertFalse(oa2client.check_response_type('code'))

    def test_check_redirect_uri(self):
        """:meth:`.check_redirect_uri` only allows registered URIs."""
        self.assertTrue(
            self.oa2client.check_redirect_uri('https://foo.com/baz')
        )
        self.assertFalse(
            self.oa2client.check_redirect_uri('https://foo.com/bar/')
        )

    def test_check_response_type(self):
        """:meth:`.check_response_type` evaluates proposed response type."""
        self.assertTrue(self.oa2client.check_response_type('code'))
        self.assertFalse(self.oa2client.check_response_type('token'))

    def test_check_endpoint_auth_method(self):
        """Secrets may be posted or sent with basic auth."""
        for method in ('client_secret_post', 'client_secret_basic'):
            self.assertTrue(
                self.oa2client.check_endpoint_auth_method(method, 'token')
            )
        self.assertFalse(
            self.oa2client.check_endpoint_auth_method('none', 'token')
        )

    def test_pkce_client_may_omit_secret(self):
        """A client that must use PKCE may authenticate with no secret."""
        _, data = _client_data(require_pkce=True)
        oa2client = oauth2.OAuth2Client(*data)
        self.assertTrue(oa2client.check_endpoint_auth_method('none', 'token'))

    def test_get_default_redirect_uri(self):
        """:meth:`.get_default_redirect_uri` returns the first URI."""
        self.assertEqual(self.oa2client.get_default_redirect_uri(),
                         'https://foo.com/bar')

    def test_get_allowed_scope(self):
        """Requested scopes are limited to those the client may have."""
        self.assertEqual(
            self.oa2client.get_allowed_scope('email:read admin:read'),
            'email:read'
        )
        self.assertEqual(self.oa2client.get_allowed_scope('admin:read'),
                         'profile:read')
        self.assertEqual(self.oa2client.get_allowed_scope(''),
                         'profile:read')


class TestGetClient(TestCase):
    """Tests for :func:`oauth2.get_client`."""

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_get_client(self, mock_datastore):
        """:func:`.get_client` returns an :class:`OAuth2Client`."""
        secret, data = _client_data()
        mock_datastore.load_client.return_value = data
        oa2client = oauth2.get_client('fooclient')
        self.assertEqual(oa2client.client_id, 'fooclient')
        self.assertTrue(oa2client.check_client_secret(secret))

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_get_nonexistant_client(self, mock_datastore):
        """:func:`.get_client` returns None if client does not exist."""
        mock_datastore.NoSuchClient = datastore.NoSuchClient
        mock_datastore.load_client.side_effect = datastore.NoSuchClient

        self.assertIsNone(oauth2.get_client('252'))


class TestOAuth2Token(TestCase):
    """Tests for :class:`oauth2.OAuth2Token`."""

    def setUp(self):
        issued = utcnow()
        self.token = oauth2.OAuth2Token(Token(
            access_token='footoken',
            client_id='fooclient',
            user_id='1234',
            scope='profile:read',
            issued=issued,
            expires=issued + timedelta(seconds=3600)
        ))

    def test_token(self):
        """The wrapped token is described to Authlib."""
        self.assertEqual(self.token.get_scope(), 'profile:read')
        self.assertEqual(self.token.get_expires_in(), 3600)
        self.assertFalse(self.token.is_expired())
        self.assertFalse(self.token.is_revoked())

    def test_check_client(self):
        """The token belongs to the client it was issued to."""
        _, data = _client_data()
        self.assertTrue(self.token.check_client(oauth2.OAuth2Client(*data)))
        other = oauth2.OAuth2Client(data[0]._replace(client_id='other'),
                                    *data[1:])
        self.assertFalse(self.token.check_client(other))

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_get_user(self, mock_datastore):
        """The user is loaded, if they still exist."""
        mock_datastore.NoSuchUser = datastore.NoSuchUser
        mock_datastore.load_user.return_value = \
            User(user_id='1234', username='foo', email='foo@bar.com')
        self.assertEqual(self.token.get_user().get_user_id(), '1234')
        mock_datastore.load_user.side_effect = datastore.NoSuchUser
        self.assertIsNone(self.token.get_user())


class TestAuthorizationCodeGrant(TestCase):
    """Auth codes are consumed before a token is issued."""

    def setUp(self):
        now = utcnow()
        self.auth_code = oauth2.OAuth2AuthorizationCode(AuthorizationCode(
            code='thecode', client_id='fooclient', user_id='1234',
            redirect_uri='https://foo.com/bar', scope='profile:read',
            created=now, expires=now + timedelta(minutes=10)
        ))
        self.grant = oauth2.AuthorizationCodeGrant(mock.MagicMock(),
                                                   mock.MagicMock())

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_consume(self, mock_datastore):
        """The code is deleted, and the user is authenticated."""
        mock_datastore.delete_auth_code.return_value = True
        mock_datastore.load_user.return_value = \
            User(user_id='1234', username='foo', email='foo@bar.com')
        user = self.grant.authenticate_user(self.auth_code)
        self.assertEqual(user.get_user_id(), '1234')
        mock_datastore.delete_auth_code.assert_called_once_with(
            'thecode', 'fooclient'
        )

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_already_consumed(self, mock_datastore):
        """A code that another request exchanged yields no user."""
        mock_datastore.delete_auth_code.return_value = False
        self.assertIsNone(self.grant.authenticate_user(self.auth_code))
        mock_datastore.load_user.assert_not_called()


class TestSaveToken(TestCase):
    """Tests for :func:`oauth2.save_token`."""

    def setUp(self):
        self.app = Flask('test')
        self.app.config['REFRESH_TOKEN_LIFETIME'] = 86400

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_save_token(self, mock_datastore):
        """The issued token pair is stored with both expiry times."""
        oa2request = mock.MagicMock()
        oa2request.client.get_client_id.return_value = 'fooclient'
        oa2request.user.get_user_id.return_value = '1234'

        with self.app.test_request_context(
                environ_base={'REMOTE_ADDR': '127.0.0.1'},
                headers={'User-Agent': 'FooAgent/1.0'}):
            oauth2.save_token({'access_token': 'footoken',
                               'refresh_token': 'foorefresh',
                               'expires_in': 3600,
                               'scope': 'profile:read'}, oa2request)

        (token,), _ = mock_datastore.save_token.call_args
        self.assertEqual(token.access_token, 'footoken')
        self.assertEqual(token.refresh_token, 'foorefresh')
        self.assertEqual(token.client_id, 'fooclient')
        self.assertEqual(token.user_id, '1234')
        self.assertEqual(token.expires - token.issued,
                         timedelta(seconds=3600))
        self.assertEqual(token.refresh_expires - token.issued,
                         timedelta(seconds=86400))
        self.assertEqual(token.ip_address, '127.0.0.1')
        self.assertEqual(token.user_agent, 'FooAgent/1.0')

    @mock.patch(f'{oauth2.__name__}.datastore')
    def test_no_refresh_token(self, mock_datastore):
        """Without a refresh token there is no refresh expiry."""
        with self.app.test_request_context():
            oauth2.save_token({'access_token': 'footoken', 'expires_in': 60},
                              mock.MagicMock())
        (token,), _ = mock_datastore.save_token.call_args
        self.assertIsNone(token.refresh_expires)
        self.assertIsNone(token.user_agent)


class TestUserInfo(TestCase):
    """Tests for :func:`oauth2.userinfo_for`."""

    def setUp(self):
        self.user = User(
            user_id='1234', username='foouser', email='foo@bar.com',
            name='Foo User', email_verified=True, role='admin',
            created=utcnow(),
            profile=UserProfile(display_name='Foo', bio='Bar',
                                social={'github': 'foouser'})
        )

    def test_profile_only(self):
        """The basic profile scope gives name, username and avatar."""
        info = oauth2.userinfo_for(self.user, ['profile:read'])
        self.assertEqual(set(info),
                         {'sub', 'id', 'name', 'username', 'avatar'})
        self.assertEqual(info['name'], 'Foo')

    def test_email(self):
        """The e-mail scope adds the address and its status."""
        info = oauth2.userinfo_for(self.user, ['email:read'])
        self.assertEqual(info['email'], 'foo@bar.com')
        self.assertTrue(info['email_verified'])
        self.assertNotIn('username', info)

    def test_extended_and_admin(self):
        """Extended and admin scopes add the rest."""
        info = oauth2.userinfo_for(self.user,
                                   ['profile:extended', 'admin:read'])
        self.assertEqual(info['bio'], 'Bar')
        self.assertEqual(info['social'], {'github': 'foouser'})
        self.assertTrue(info['is_admin'])
        self.assertEqual(info['created_at'], self.user.created.isoformat())

    def test_name_fallback(self):
        """Without a display name, the full name or username is used."""
        user = self.user._replace(profile=None)
        self.assertEqual(
            oauth2.userinfo_for(user, ['profile:read'])['name'], 'Foo User'
        )
        user = user._replace(name=None)
        self.assertEqual(
            oauth2.userinfo_for(user, ['profile:read'])['name'], 'foouser'
        )


class TestCreateServer(TestCase):
    """Tests for :func:`oauth2.create_server`."""

    def test_create_server(self):
        """Instantiate an :class:`oauth2.AuthorizationServer`."""
        server = oauth2.create_server()
        self.assertIsInstance(server, oauth2.AuthorizationServer)


class TestInitApp(TestCase):
    """Tests for :func:`oauth2.init_app`."""

    @mock.patch(f'{oauth2.__name__}.AuthorizationServer')
    def test_init_app(self, mock_server_class):
        """Attach an :class:`oauth2.AuthorizationServer` to an app."""
        mock_server = mock.MagicMock()
        mock_server_class.return_value = mock_server
        app = mock.MagicMock()
        oauth2.init_app(app)
        self.assertEqual(app.server, mock_server)
        mock_server.init_app.assert_called_once_with(app)
