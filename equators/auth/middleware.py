"""Middleware for decoding session JWTs on API requests."""

import os
import logging
from typing import Callable, Iterable

from werkzeug.exceptions import Unauthorized, InternalServerError

from . import tokens
from .exceptions import InvalidToken, ConfigurationError

logger = logging.getLogger(__name__)


class AuthMiddleware(object):
    """
    Middleware to handle auth information on requests.

    Before the request is handled by the application, the ``Authorization``
    header is parsed for a signed session JWT. If successfully verified,
    information about the user and their authorization scope is attached
    to the request.

    This can be accessed in the application via
    ``flask.request.environ['session']``. If the Authorization header was not
    included, or carries an OAuth2 ``Bearer`` token (which is handled by the
    resource protector instead), then that value will be ``None``.
    """

    def __init__(self, wsgi_app: Callable, secret: str = None) -> None:
        """Wrap ``wsgi_app``."""
        self.wsgi_app = wsgi_app
        self.secret = secret

    def __call__(self, environ: dict, start_response: Callable) -> Iterable:
        """Decode the auth token, then hand off to the wrapped app."""
        environ, start_response = self.before(environ, start_response)
        return self.wsgi_app(environ, start_response)

    def before(self, environ: dict, start_response: Callable) -> tuple:
        """Decode and unpack the auth token on the request."""
        environ['session'] = None      # Create the session key, at a minimum.
        environ['token'] = None
        token = environ.get('HTTP_AUTHORIZATION')    # We may not have a token.
        if token is None:
            return environ, start_response
        if token.lower().startswith('bearer '):
            return environ, start_response

        secret = environ.get('JWT_SECRET',
                             self.secret or os.environ.get('JWT_SECRET'))
        if secret is None:
            raise ConfigurationError('Missing decryption token')

        try:
            environ['session'] = tokens.decode(token, secret)
            # Keep the token so that we can use it in subrequests.
            environ['token'] = token
        except InvalidToken:   # Let the application decide what to do.
            logger.error('Auth token not valid')
            environ['session'] = Unauthorized('Invalid auth token')
        except Exception as e:
            logger.error('Unhandled exception: %s', e)
            environ['session'] = InternalServerError(f'Unhandled: {e}')
        return environ, start_response
