"""
Internal service API for the distributed session store.

Used to create, delete, and verify user sessions.
"""

import uuid
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional, Union, List

import dateutil.parser
from pytz import UTC
from flask import Flask, current_app
import redis
import redis.cluster
import fakeredis

import jwt

from ... import domain
from ..exceptions import SessionCreationFailed, InvalidToken, \
    SessionDeletionFailed, UnknownSession, ExpiredToken, Unavailable

logger = logging.getLogger(__name__)


def _generate_nonce(nbytes: int = 16) -> str:
    return secrets.token_urlsafe(nbytes)


def _user_key(user_id: str) -> str:
    return f'user-sessions:{user_id}'


class SessionStore(object):
    """
    Manages a connection to Redis.

    In fact, the StrictRedis instance is thread safe and connections are
    attached at the time a command is executed. This class simply provides a
    container for configuration.
    """

    def __init__(self, host: str, port: int, db: int, secret: str,
                 duration: int = 7200, token: Optional[str] = None,
                 cluster: bool = True, fake: bool = False) -> None:
        """Open the connection to Redis."""
        self._secret = secret
        self._duration = duration
        if fake:
            logger.warning('Using FakeRedis for the session store')
            self.r = fakeredis.FakeStrictRedis()
        elif cluster:
            logger.debug('New Redis cluster connection at %s, port %s',
                         host, port)
            self.r = redis.cluster.RedisCluster(
                host=host, port=port, password=token,
                skip_full_coverage_check=True
            )
        else:
            logger.debug('New Redis connection at %s, port %s', host, port)
            self.r = redis.StrictRedis(host=host, port=port, db=db,
                                       password=token)

    @classmethod
    def init_app(cls, app: Flask) -> None:
        """Set default configuration parameters for an application instance."""
        config = app.config
        config.setdefault('REDIS_HOST', 'localhost')
        config.setdefault('REDIS_PORT', '6379')
        config.setdefault('REDIS_DATABASE', '0')
        config.setdefault('REDIS_TOKEN', None)
        config.setdefault('REDIS_CLUSTER', '0')
        config.setdefault('REDIS_FAKE', False)
        config.setdefault('JWT_SECRET', 'foosecret')
        config.setdefault('SESSION_DURATION', '36000')

    @classmethod
    def current_session(cls) -> 'SessionStore':
        """Get the :class:`.SessionStore` for the current application."""
        if 'equators.sessions' not in current_app.extensions:
            current_app.extensions['equators.sessions'] = \
                cls.get_redis_session(current_app)
        store: SessionStore = current_app.extensions['equators.sessions']
        return store

    @classmethod
    def get_redis_session(cls, app: Flask) -> 'SessionStore':
        """Build a new session store from application config."""
        config = app.config
        return cls(
            config.get('REDIS_HOST', 'localhost'),
            int(config.get('REDIS_PORT', '6379')),
            int(config.get('REDIS_DATABASE', '0')),
            config['JWT_SECRET'],
            int(config.get('SESSION_DURATION', '36000')),
            token=config.get('REDIS_TOKEN', None),
            cluster=str(config.get('REDIS_CLUSTER', '0')) == '1',
            fake=bool(config.get('REDIS_FAKE', False))
        )

    def create(self, authorizations: domain.Authorizations,
               ip_address: Optional[str], remote_host: Optional[str],
               user: Optional[domain.User] = None,
               session_id: Optional[str] = None,
               user_agent: Optional[str] = None) -> domain.Session:
        """
        Create a new session.

        Parameters
        ----------
        authorizations : :class:`domain.Authorizations`
        ip_address : str
        remote_host : str
        user : :class:`domain.User`
        session_id : str
            If not provided, a random UUID is used.
        user_agent : str

        Returns
        -------
        :class:`.Session`
        """
        if session_id is None:
            session_id = str(uuid.uuid4())
        start_time = datetime.now(tz=UTC)
        end_time = start_time + timedelta(seconds=self._duration)
        session = domain.Session(
            session_id=session_id,
            user=user,
            start_time=start_time,
            end_time=end_time,
            authorizations=authorizations,
            ip_address=ip_address,
            remote_host=remote_host,
            user_agent=user_agent,
            nonce=_generate_nonce()
        )

        try:
            self.r.set(session_id, self._encode(domain.to_dict(session)),
                       ex=self._duration)
            if user is not None and user.user_id is not None:
                self.r.sadd(_user_key(user.user_id), session_id)
        except redis.exceptions.ConnectionError as e:
            raise SessionCreationFailed(f'Connection failed: {e}') from e
        except Exception as e:
            raise SessionCreationFailed(f'Failed to create: {e}') from e

        return session

    def generate_cookie(self, session: domain.Session) -> str:
        """Generate a cookie from a :class:`domain.Session`."""
        if session.user is None or session.end_time is None:
            raise SessionCreationFailed('Cannot make a cookie for session')
        return self._pack_cookie({
            'user_id': session.user.user_id,
            'session_id': session.session_id,
            'nonce': session.nonce,
            'expires': session.end_time.isoformat()
        })

    def delete(self, cookie: str) -> None:
        """
        Delete a session.

        Parameters
        ----------
        cookie : str
        """
        cookie_data = self._unpack_cookie(cookie)
        if 'session_id' not in cookie_data:
            raise InvalidToken('Token payload malformed')
        self.delete_by_id(cookie_data['session_id'],
                          user_id=cookie_data.get('user_id'))

    def delete_by_id(self, session_id: str,
                     user_id: Optional[str] = None) -> None:
        """
        Delete a session in the key-value store by ID.

        Parameters
        ----------
        session_id : str
        user_id : str
            If provided, the session is also dropped from the user's index.
        """
        try:
            self.r.delete(session_id)
            if user_id is not None:
                self.r.srem(_user_key(user_id), session_id)
        except redis.exceptions.ConnectionError as e:
            raise SessionDeletionFailed(f'Connection failed: {e}') from e
        except Exception as e:
            raise SessionDeletionFailed(f'Failed to delete: {e}') from e

    def list_for_user(self, user_id: str) -> List[domain.Session]:
        """
        Get the live sessions of a user, most recent first.

        Session IDs whose data has expired out of the store are pruned from
        the user's index.
        """
        try:
            session_ids = [sid.decode('utf-8') if isinstance(sid, bytes)
                           else sid
                           for sid in self.r.smembers(_user_key(user_id))]
        except redis.exceptions.ConnectionError as e:
            raise Unavailable(f'Connection failed: {e}') from e
        sessions = []
        for session_id in session_ids:
            try:
                session = self.load_by_id(session_id)
            except UnknownSession:
                self.r.srem(_user_key(user_id), session_id)
                continue
            if not session.expired:
                sessions.append(session)
        return sorted(sessions, key=lambda s: s.start_time, reverse=True)

    def is_available(self) -> bool:
        """Check our connection to Redis."""
        try:
            self.r.ping()
        except redis.exceptions.RedisError as e:
            logger.error('Encountered an error talking to Redis: %s', e)
            return False
        return True

    def validate_session_against_cookie(self, session: domain.Session,
                                        cookie: str) -> None:
        """
        Validate session data against a cookie.

        Parameters
        ----------
        session : :class:`Session`
        cookie : str

        Raises
        ------
        :class:`InvalidToken`
            Raised if the data in the cookie does not match the session data.
        """
        cookie_data = self._unpack_cookie(cookie)
        if session.user is None \
                or cookie_data['nonce'] != session.nonce \
                or session.user.user_id != cookie_data['user_id']:
            raise InvalidToken('Invalid token; likely a forgery')

    def load(self, cookie: str) -> domain.Session:
        """Load a session using a session cookie."""
        try:
            cookie_data = self._unpack_cookie(cookie)
            expires = dateutil.parser.parse(cookie_data['expires'])
            session_id = cookie_data['session_id']
            cookie_data['nonce']
            cookie_data['user_id']
        except (KeyError, ValueError, TypeError) as e:
            raise InvalidToken('Token payload malformed') from e

        if expires <= datetime.now(tz=UTC):
            raise ExpiredToken('Session has expired')

        session = self.load_by_id(session_id)
        if session.expired:
            raise ExpiredToken('Session has expired')
        if session.user is None:
            raise InvalidToken('No user data is present')

        self.validate_session_against_cookie(session, cookie)
        return session

    def load_by_id(self, session_id: str) -> domain.Session:
        """Get session data by session ID."""
        try:
            session_jwt: Union[str, bytes] = self.r.get(session_id)
        except redis.exceptions.ConnectionError as e:
            raise Unavailable(f'Connection failed: {e}') from e
        if not session_jwt:
            logger.debug('No such session: %s', session_id)
            raise UnknownSession(f'Failed to find session {session_id}')
        return self._decode(session_jwt)

    def _encode(self, session_data: dict) -> str:
        return jwt.encode(session_data, self._secret, algorithm='HS256')

    def _decode(self, session_jwt: Union[str, bytes]) -> domain.Session:
        try:
            session: domain.Session = domain.from_dict(
                domain.Session,
                jwt.decode(session_jwt, self._secret, algorithms=['HS256'])
            )
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Invalid or corrupted session token') from e
        return session

    def _unpack_cookie(self, cookie: str) -> dict:
        try:
            data = dict(jwt.decode(cookie, self._secret,
                                   algorithms=['HS256']))
        except jwt.exceptions.InvalidTokenError as e:
            raise InvalidToken('Session cookie is malformed') from e
        return data

    def _pack_cookie(self, cookie_data: dict) -> str:
        return jwt.encode(cookie_data, self._secret, algorithm='HS256')
