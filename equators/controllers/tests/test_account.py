"""Tests for the profile, settings, downloads and sessions controllers."""

from datetime import timedelta
from http import HTTPStatus

from werkzeug.exceptions import NotFound, BadRequest

from ... import domain
from ...auth.sessions import SessionStore
from ...services import datastore
from .. import profile, settings, downloads, sessions
from ..authentication import start_session
from .util import ControllerTestCase


class TestProfile(ControllerTestCase):
    """Tests for :mod:`.controllers.profile`."""

    def test_get_profile(self):
        """The profile includes stats and recent logins."""
        start_session(self.user, '10.0.0.1')
        for _ in range(profile.RECENT_LOGINS + 2):
            datastore.record_login(self.user_id, '10.0.0.1', 'FooAgent/1.0')
        datastore.record_download(self.user_id, 'p1', 'Product One')

        data, code, _ = profile.get_profile(self.user_id)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['user']['username'], 'foouser')
        self.assertNotIn('password_hash', data['user'])
        self.assertEqual(data['stats']['total_logins'],
                         profile.RECENT_LOGINS + 2)
        self.assertEqual(data['stats']['total_downloads'], 1)
        self.assertEqual(data['stats']['active_sessions'], 1)
        self.assertEqual(len(data['login_history']), profile.RECENT_LOGINS)

    def test_no_such_user(self):
        """Unknown users are not found."""
        with self.assertRaises(NotFound):
            profile.get_profile('nope')

    def test_update(self):
        """Profile fields, preferences and privacy flags are updated."""
        data, code, _ = profile.update_profile(self.user_id, {
            'display_name': '  Foo  ',
            'bio': 'About me',
            'preferences': {'theme': 'light', 'newsletter': True},
            'privacy': {'show_email': True,
                        'profile_visibility': 'private'}
        })
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['user']['profile']['display_name'], 'Foo')
        prefs = datastore.load_user(self.user_id).preferences
        self.assertEqual(prefs.theme, 'light')
        self.assertTrue(prefs.newsletter)
        self.assertTrue(prefs.show_email)
        self.assertEqual(prefs.profile_visibility, 'private')

    def test_update_invalid(self):
        """Nothing is saved if any field is invalid."""
        data, code, _ = profile.update_profile(self.user_id, {
            'display_name': 'x' * (profile.DISPLAY_NAME_MAX + 1),
            'bio': 'Fine',
            'preferences': {'theme': 'neon', 'newsletter': 'yes'},
            'privacy': {'profile_visibility': 'friends'}
        })
        self.assertEqual(code, HTTPStatus.BAD_REQUEST)
        fields = {error['field'] for error in data['errors']}
        self.assertEqual(fields, {'display_name', 'preferences.theme',
                                  'preferences.newsletter',
                                  'privacy.profile_visibility'})
        user = datastore.load_user(self.user_id)
        self.assertIsNone(user.profile.bio)
        self.assertEqual(user.preferences, domain.Preferences())

    def test_update_not_json(self):
        """The body must be a JSON object."""
        with self.assertRaises(BadRequest):
            profile.update_profile(self.user_id, ['nope'])

    def test_delete(self):
        """The account is deactivated and signed out everywhere."""
        start_session(self.user, '10.0.0.1')
        start_session(self.user, '10.0.0.2')
        client_id = datastore.save_client(domain.Client(
            owner_id=self.user_id, name='fooapp',
            redirect_uris=['https://foo.app/cb']
        ))
        issued = domain.utcnow()
        datastore.save_token(domain.Token(
            access_token='footoken', client_id=client_id,
            user_id=self.user_id, scope='profile:read', issued=issued,
            expires=issued + timedelta(hours=1)
        ))

        data, code, _ = profile.delete_profile(self.user_id)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['cookies']['auth_session_cookie'], ('', 0))
        self.assertFalse(datastore.load_user(self.user_id).is_active)
        self.assertEqual(
            SessionStore.current_session().list_for_user(self.user_id), []
        )
        token = datastore.load_token('footoken')
        self.assertTrue(token.revoked)
        self.assertEqual(token.revoked_reason, 'account_deleted')


class TestSettings(ControllerTestCase):
    """Tests for :mod:`.controllers.settings`."""

    def test_get(self):
        """Settings are grouped in sections."""
        data, code, _ = settings.get_settings(self.user_id)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(set(data['settings']), set(settings.SECTIONS))
        self.assertTrue(
            data['settings']['notifications']['email_notifications']
        )
        self.assertFalse(data['settings']['security']['two_factor_enabled'])

    def test_update(self):
        """Sections are updated independently."""
        datastore.update_profile(self.user_id, company='Acme')
        data, code, _ = settings.update_settings(self.user_id, {
            'profile': {'location': 'Quito', 'company': ''},
            'notifications': {'email_notifications': False},
            'security': {'login_alerts': False}
        })
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['settings']['profile']['location'], 'Quito')
        self.assertIsNone(data['settings']['profile']['company'])
        self.assertFalse(
            data['settings']['notifications']['email_notifications']
        )
        self.assertFalse(data['settings']['security']['login_alerts'])
        self.assertEqual(data['settings']['privacy']['profile_visibility'],
                         'public')
        self.assertFalse(datastore.load_user(self.user_id)
                         .preferences.notifications)

    def test_invalid(self):
        """Unknown sections and bad values are reported."""
        data, code, _ = settings.update_settings(self.user_id, {
            'billing': {},
            'profile': {'location': 'x' * 101},
            'security': {'two_factor_enabled': 'on'}
        })
        self.assertEqual(code, HTTPStatus.BAD_REQUEST)
        fields = {error['field'] for error in data['errors']}
        self.assertEqual(fields, {'billing', 'profile.location',
                                  'security.two_factor_enabled'})


class TestDownloads(ControllerTestCase):
    """Tests for :mod:`.controllers.downloads`."""

    def test_track(self):
        """A download is added to the history."""
        data, code, _ = downloads.track_download(self.user_id, {
            'product_id': 'p1', 'product_name': 'Product One',
            'file_size': 1024, 'version': '2.1'
        })
        self.assertEqual(code, HTTPStatus.CREATED)
        self.assertEqual(data['download']['version'], '2.1')

        data, code, _ = downloads.get_history(self.user_id)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(data['total'], 1)
        self.assertEqual(data['downloads'][0]['product_name'], 'Product One')

    def test_invalid(self):
        """Product ID and name are required; sizes are whole bytes."""
        data, code, _ = downloads.track_download(self.user_id, {
            'product_id': ' ', 'file_size': -1, 'version': 2
        })
        self.assertEqual(code, HTTPStatus.BAD_REQUEST)
        fields = {error['field'] for error in data['errors']}
        self.assertEqual(fields, {'product_id', 'product_name', 'file_size',
                                  'version'})

    def test_no_such_user(self):
        """Downloads are only tracked for real users."""
        with self.assertRaises(NotFound):
            downloads.track_download('nope', {'product_id': 'p1',
                                              'product_name': 'One'})


class TestSessions(ControllerTestCase):
    """Tests for :mod:`.controllers.sessions`."""

    def setUp(self):
        super(TestSessions, self).setUp()
        self.current, _ = start_session(self.user, '10.0.0.1')
        self.other, _ = start_session(self.user, '10.0.0.2')

    def test_list(self):
        """Sessions are listed by prefix, and the current one is marked."""
        data, code, _ = sessions.list_sessions(self.user_id,
                                               self.current.session_id)
        self.assertEqual(code, HTTPStatus.OK)
        self.assertEqual(len(data['sessions']), 2)
        for item in data['sessions']:
            self.assertEqual(len(item['id']), sessions.PREFIX_LENGTH)
        current = [s for s in data['sessions'] if s['current']]
        self.assertEqual(current[0]['ip_address'], '10.0.0.1')

    def test_terminate_by_prefix(self):
        """One session is ended by the prefix of its ID."""
        prefix = self.other.session_id[:sessions.PREFIX_LENGTH]
        data, _, _ = sessions.terminate_sessions(
            self.user_id, self.current.session_id, prefix=prefix
        )
        self.assertEqual(data['terminated'], 1)
        remaining = SessionStore.current_session().list_for_user(self.user_id)
        self.assertEqual([s.session_id for s in remaining],
                         [self.current.session_id])

    def test_terminate_others(self):
        """All sessions but the current one are ended."""
        start_session(self.user, '10.0.0.3')
        data, _, _ = sessions.terminate_sessions(
            self.user_id, self.current.session_id, all_others=True
        )
        self.assertEqual(data['terminated'], 2)

    def test_bad_requests(self):
        """Short or unknown prefixes are refused."""
        with self.assertRaises(BadRequest):
            sessions.terminate_sessions(self.user_id,
                                        self.current.session_id)
        with self.assertRaises(BadRequest):
            sessions.terminate_sessions(self.user_id,
                                        self.current.session_id,
                                        prefix=self.other.session_id[:4])
        with self.assertRaises(NotFound):
            sessions.terminate_sessions(self.user_id,
                                        self.current.session_id,
                                        prefix='zzzzzzzz')
