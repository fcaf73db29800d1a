"""Tests for :mod:`equators.auth.sessions.store`, using FakeRedis."""

import time
from unittest import TestCase, mock

import jwt
import redis

from .... import domain
from ... import scopes
from ...exceptions import InvalidToken, ExpiredToken, UnknownSession, \
    SessionCreationFailed, Unavailable
from .. import store


class TestSessionStore(TestCase):
    """A fresh FakeRedis-backed store for each test."""

    def setUp(self):
        self.secret = 'foosecret'
        fake_redis = store.fakeredis.FakeStrictRedis(
            server=store.fakeredis.FakeServer()
        )
        with mock.patch.object(store.fakeredis, 'FakeStrictRedis') as fake:
            fake.return_value = fake_redis
            self.store = store.SessionStore('localhost', 6379, 0,
                                            self.secret, duration=3600,
                                            fake=True)
        self.user = domain.User(user_id='u1', username='foouser',
                                email='foo@bar.com')
        self.auths = domain.Authorizations(scopes=scopes.GENERAL_USER)

    def _create(self, user=None):
        return self.store.create(self.auths, '10.0.0.1', 'foo.host',
                                 user=user or self.user,
                                 user_agent='Mozilla/5.0')

    def test_create_and_load(self):
        """A session is recovered from its cookie."""
        session = self._create()
        cookie = self.store.generate_cookie(session)
        loaded = self.store.load(cookie)
        self.assertEqual(loaded.session_id, session.session_id)
        self.assertEqual(loaded.user, self.user)
        self.assertEqual(loaded.user_agent, 'Mozilla/5.0')
        self.assertEqual(loaded.authorizations.scopes, scopes.GENERAL_USER)

    def test_nonce(self):
        """Each session gets its own unguessable nonce."""
        nonces = {self._create().nonce for _ in range(5)}
        self.assertEqual(len(nonces), 5)
        for nonce in nonces:
            self.assertGreaterEqual(len(nonce), 20)

    def test_cookie_payload(self):
        """The cookie holds only identifiers, a nonce and the expiry."""
        session = self._create()
        cookie = self.store.generate_cookie(session)
        data = jwt.decode(cookie, self.secret, algorithms=['HS256'])
        self.assertEqual(set(data),
                         {'user_id', 'session_id', 'nonce', 'expires'})

    def test_forged_cookie(self):
        """A cookie with the wrong nonce is rejected."""
        session = self._create()
        cookie = jwt.encode({
            'user_id': 'u1',
            'session_id': session.session_id,
            'nonce': 'not the nonce',
            'expires': session.end_time.isoformat()
        }, self.secret, algorithm='HS256')
        with self.assertRaises(InvalidToken):
            self.store.load(cookie)

    def test_bad_signature(self):
        """A cookie signed with another secret is rejected."""
        session = self._create()
        cookie = store.SessionStore('localhost', 6379, 0, 'other', fake=True) \
            .generate_cookie(session)
        with self.assertRaises(InvalidToken):
            self.store.load(cookie)

    def test_expired_cookie(self):
        """An expired cookie is rejected before the store is consulted."""
        session = self._create()
        cookie = jwt.encode({
            'user_id': 'u1',
            'session_id': session.session_id,
            'nonce': session.nonce,
            'expires': '2000-01-01T00:00:00+00:00'
        }, self.secret, algorithm='HS256')
        with self.assertRaises(ExpiredToken):
            self.store.load(cookie)

    def test_delete(self):
        """A deleted session can no longer be loaded."""
        session = self._create()
        cookie = self.store.generate_cookie(session)
        self.store.delete(cookie)
        with self.assertRaises(UnknownSession):
            self.store.load(cookie)
        self.assertEqual(self.store.list_for_user('u1'), [])

    def test_list_for_user(self):
        """Sessions of a user are listed, newest first."""
        first = self._create()
        time.sleep(0.01)
        second = self._create()
        self._create(domain.User(user_id='u2', username='other',
                                 email='other@bar.com'))
        sessions = self.store.list_for_user('u1')
        self.assertEqual([s.session_id for s in sessions],
                         [second.session_id, first.session_id])

    def test_list_prunes_missing(self):
        """Sessions that have lapsed out of the store are dropped."""
        session = self._create()
        self.store.r.delete(session.session_id)
        self.assertEqual(self.store.list_for_user('u1'), [])
        self.assertEqual(self.store.r.scard('user-sessions:u1'), 0)

    def test_delete_by_id(self):
        """A session can be removed by ID."""
        session = self._create()
        self.store.delete_by_id(session.session_id, user_id='u1')
        with self.assertRaises(UnknownSession):
            self.store.load_by_id(session.session_id)

    def test_connection_errors(self):
        """Connection failures are reported as service exceptions."""
        self.store.r = mock.MagicMock()
        self.store.r.set.side_effect = redis.exceptions.ConnectionError()
        self.store.r.get.side_effect = redis.exceptions.ConnectionError()
        self.store.r.ping.side_effect = redis.exceptions.ConnectionError()
        with self.assertRaises(SessionCreationFailed):
            self._create()
        with self.assertRaises(Unavailable):
            self.store.load_by_id('foo')
        self.assertFalse(self.store.is_available())

    def test_is_available(self):
        """FakeRedis answers pings."""
        self.assertTrue(self.store.is_available())
