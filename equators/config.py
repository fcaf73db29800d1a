"""Flask configuration."""

import os
import re
import secrets

#################### General config for app ####################
BASE_SERVER = os.environ.get('BASE_SERVER', 'equators.com')
"""Sets base server for use when doman name is needed.

The default configs for `DEFAULT_LOGIN_REDIRECT_URL` and
`DEFAULT_LOGOUT_REDIRECT_URL` and `AUTH_SESSION_COOKIE_DOMAIN` will use
this. They can be independently configured if needed.
"""

SECRET_KEY = os.environ.get('SECRET_KEY', secrets.token_urlsafe(16))
"""Sets the `Flask` secret key."""

DEFAULT_LOGIN_REDIRECT_URL = os.environ.get('DEFAULT_LOGIN_REDIRECT_URL',
                                            '/profile')
"""URL to redirect the user to on a successful login, if they have not provided
a `next_page` query param."""

DEFAULT_LOGOUT_REDIRECT_URL = os.environ.get('DEFAULT_LOGOUT_REDIRECT_URL',
                                             '/')
"""URL to redirect the user to on a logout."""

_relative_urls = r"(^\/(?:[^\/]+\/)*[^\/]*(\?.*)?$)"
_absolute_urls = rf"(^https?://([a-zA-Z0-9\-.])*{re.escape(BASE_SERVER)}(:\d+)?/.*$)"
LOGIN_REDIRECT_REGEX = os.environ.get('LOGIN_REDIRECT_REGEX',
                                      f"{_relative_urls}|{_absolute_urls}")
"""Regex to check next_page of /login.

Only next_page values that match this regex will be allowed. All others will
go to the DEFAULT_LOGIN_REDIRECT_URL. The default value allows relative URLs
and URLs to subdomains of the BASE_SERVER.
"""

ADMIN_EMAILS = [email.strip().lower() for email
                in os.environ.get('ADMIN_EMAILS', '').split(',')
                if email.strip()]
"""Users with these e-mail addresses are granted admin scopes at login."""

LOGLEVEL = int(os.environ.get('LOGLEVEL', 20))
LOGFILE = os.environ.get('LOGFILE')

#################### Session store ####################
REDIS_HOST = os.environ.get('REDIS_HOST', 'localhost')
REDIS_PORT = os.environ.get('REDIS_PORT', '6379')
REDIS_DATABASE = os.environ.get('REDIS_DATABASE', '0')
REDIS_TOKEN = os.environ.get('REDIS_TOKEN', None)
"""This is the token used in the AUTH procedure."""
REDIS_CLUSTER = os.environ.get('REDIS_CLUSTER', '0')
"""If 1, expects a redis cluster; otherwise expects a single redis node."""

REDIS_FAKE = bool(int(os.environ.get('REDIS_FAKE', '0')))
"""Use the FakeRedis library instead of a redis service.

Useful for testing, dev, beta."""

JWT_SECRET = os.environ.get('JWT_SECRET', secrets.token_urlsafe(16))
"""Used to sign session data and session cookies."""

SESSION_DURATION = os.environ.get('SESSION_DURATION', '36000')
"""Lifetime of a login session, in seconds."""

AUTH_SESSION_COOKIE_NAME = os.environ.get('AUTH_SESSION_COOKIE_NAME',
                                          'EQUATORS_SESSION_ID')
AUTH_SESSION_COOKIE_DOMAIN = os.environ.get('AUTH_SESSION_COOKIE_DOMAIN',
                                            None)
AUTH_SESSION_COOKIE_SECURE = \
    bool(int(os.environ.get('AUTH_SESSION_COOKIE_SECURE', '1')))

#################### Data store ####################
SQLALCHEMY_DATABASE_URI = os.environ.get('SQLALCHEMY_DATABASE_URI',
                                         'sqlite://')
SQLALCHEMY_TRACK_MODIFICATIONS = False
CREATE_DB = bool(int(os.environ.get('CREATE_DB', 0)))

UPLOAD_FOLDER = os.environ.get('UPLOAD_FOLDER',
                               os.path.join(os.getcwd(), 'uploads'))
"""Where uploaded project files are kept."""

MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH',
                                        100 * 1024 * 1024))

#################### OAuth2 ####################
AUTHORIZATION_CODE_LIFETIME = \
    int(os.environ.get('AUTHORIZATION_CODE_LIFETIME', '600'))
"""Authorization codes must be exchanged within this many seconds."""

ACCESS_TOKEN_LIFETIME = int(os.environ.get('ACCESS_TOKEN_LIFETIME', '3600'))

OAUTH2_TOKEN_EXPIRES_IN = {
    'authorization_code': ACCESS_TOKEN_LIFETIME,
    'refresh_token': ACCESS_TOKEN_LIFETIME,
}
"""Read by Authlib when generating bearer tokens."""

OAUTH2_REFRESH_TOKEN_GENERATOR = True
"""Tell Authlib to issue a refresh token alongside each access token."""

REFRESH_TOKEN_LIFETIME = int(os.environ.get('REFRESH_TOKEN_LIFETIME',
                                            str(30 * 24 * 3600)))

OAUTH2_SCOPES_SUPPORTED = ['profile:read', 'email:read', 'profile:extended',
                           'admin:read']
"""Scopes that may be requested by third-party apps."""
