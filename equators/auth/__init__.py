"""Provides tools for working with authenticated user sessions."""

import logging
from typing import Optional, Union

from flask import Flask, request, Response
from retry import retry

from . import decorators, middleware, scopes, tokens, exceptions
from .sessions import SessionStore
from .. import domain

logger = logging.getLogger(__name__)


class Auth(object):
    """
    Attaches session and authentication information to the request.

    Intended for use in a Flask application factory, for example:

    .. code-block:: python

       from flask import Flask
       from equators.auth import Auth
       from equators import routes


       def create_web_app() -> Flask:
          app = Flask('equators')
          app.config.from_pyfile('config.py')
          Auth(app)   # Registers the before_request auth check
          app.register_blueprint(routes.ui.blueprint)
       return app


    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        """
        Initialize ``app`` with `Auth`.

        Parameters
        ----------
        app : :class:`Flask`

        """
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        """
        Attach :meth:`.load_session` to the Flask app.

        Parameters
        ----------
        app : :class:`Flask`

        """
        self.app = app
        app.extensions['equators.auth'] = self
        SessionStore.init_app(app)
        self.app.before_request(self.load_session)
        self.app.config.setdefault('AUTH_SESSION_COOKIE_NAME',
                                   'EQUATORS_SESSION_ID')
        self.app.config.setdefault('DEFAULT_LOGOUT_REDIRECT_URL', '/')
        self.app.config.setdefault('DEFAULT_LOGIN_REDIRECT_URL', '/profile')

    @retry(exceptions.Unavailable, tries=3, delay=0.5, backoff=2)
    def _get_cookie_session(self, cookie_value: str) \
            -> Optional[domain.Session]:
        """
        Attempt to load a session from the session store.

        Returns
        -------
        :class:`domain.Session` or None

        """
        try:
            return SessionStore.current_session().load(cookie_value)
        except exceptions.UnknownSession as e:
            logger.debug('No session available: %s', e)
        except exceptions.InvalidToken as e:
            logger.debug('Invalid session cookie: %s', e)
        except exceptions.ExpiredToken as e:
            logger.debug('Session is expired: %s', e)
        return None

    def load_session(self) -> Optional[Response]:
        """
        Look for an active session, and attach it to the request.

        This is run before each Flask request. A session JWT unpacked from the
        ``Authorization`` header by :class:`.middleware.AuthMiddleware` takes
        precedence; otherwise the session cookie is checked against the
        session store.
        """
        # The middleware puts any unpacked auth information from the request
        # OR any exceptions that need to be raised within the request context
        # in the ``session`` key.
        session: Optional[Union[domain.Session, Exception]] = \
            request.environ.get('session')

        # Middleware may have passed an exception, which needs to be raised
        # within the app/execution context to be handled correctly.
        if isinstance(session, Exception):
            logger.debug('Middleware passed an exception: %s', session)
            raise session

        if session is not None and session.expired:
            logger.debug('Token session %s has expired', session.session_id)
            session = None
        elif session is None:
            cookie_name = self.app.config['AUTH_SESSION_COOKIE_NAME']
            cookie_value = request.cookies.get(cookie_name)
            if cookie_value:
                session = self._get_cookie_session(cookie_value)

        request.auth = session
        return None
