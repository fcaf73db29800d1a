"""
Controllers for logging in to and out of the site.

When a user logs in, they are issued a session key that is stored as a cookie
in their browser. That session ID is registered in the distributed keystore,
along with claims about the user's identity and privileges on the site (based
on their role). In subsequent requests, :class:`equators.auth.Auth` uses that
session key to validate the authenticated session.
"""

import re
import logging
from http import HTTPStatus
from typing import Dict, Tuple, Any, Optional

from flask import current_app
from werkzeug.datastructures import MultiDict
from werkzeug.exceptions import InternalServerError

from wtforms import StringField, PasswordField, Form
from wtforms.validators import DataRequired

from .. import domain
from ..auth import scopes, passwords
from ..auth.exceptions import AuthenticationFailed, \
    PasswordAuthenticationFailed, SessionCreationFailed, \
    SessionDeletionFailed, InvalidToken
from ..auth.sessions import SessionStore
from ..services import datastore
from .util import ResponseData

logger = logging.getLogger(__name__)


def login(method: str, form_data: MultiDict, ip: Optional[str],
          next_page: str, user_agent: Optional[str] = None) -> ResponseData:
    """
    Provide the login form, and log the user in.

    Parameters
    ----------
    method : str
        ``GET`` or ``POST``.
    form_data : MultiDict
        Should include `username` and `password` data.
    ip : str
        IP or hostname of client.
    next_page : str
        Page to which the user should be redirected upon login.
    user_agent : str
        User agent of the client.

    Returns
    -------
    dict
        Additional data to add to the response.
    int
        Status code. This should be 303 (See Other) if all goes well.
    dict
        Headers to add to the response.

    """
    if method == 'GET':
        logger.debug('Request for login form')
        if not next_page or good_next_page(next_page):
            response_data = {'form': LoginForm(), 'next_page': next_page}
            return response_data, HTTPStatus.OK, {}
        response_data = {'form': LoginForm(), 'error': 'next_page is invalid'}
        return response_data, HTTPStatus.BAD_REQUEST, {}

    logger.debug('Login form submitted')
    form = LoginForm(form_data)
    data: Dict[str, Any] = {'form': form, 'next_page': next_page}
    if not form.validate():
        logger.debug('Form data is not valid')
        return data, HTTPStatus.BAD_REQUEST, {}

    try:    # Attempt to authenticate the user with the credentials provided.
        user = authenticate(form.username.data, form.password.data)
    except AuthenticationFailed as ex:
        logger.debug('Authentication failed for %s: %s',
                     form.username.data, ex)
        data.update({'error': 'Invalid username or password.'})
        return data, HTTPStatus.BAD_REQUEST, {}

    if not user.is_active:
        data.update({'error': 'This account has been deactivated.'})
        return data, HTTPStatus.BAD_REQUEST, {}

    session, cookie = start_session(user, ip, user_agent)
    datastore.record_login(str(user.user_id), ip, user_agent)

    # The UI route should use these to set cookies on the response.
    data.update({
        'cookies': {'auth_session_cookie': (cookie, session.expires)}
    })
    if not good_next_page(next_page):
        next_page = current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
    return data, HTTPStatus.SEE_OTHER, {'Location': next_page}


def logout(session_cookie: Optional[str], next_page: str) -> ResponseData:
    """
    Log the user out, and redirect.

    Parameters
    ----------
    session_cookie : str or None
        If not None, invalidates the session.
    next_page : str
        Page to which the user should be redirected upon logout.

    Returns
    -------
    dict
        Additional data to add to the response.
    int
        Status code. This should be 303 (See Other).
    dict
        Headers to add to the response.

    """
    logger.debug('Request to log out')
    if session_cookie:
        try:
            SessionStore.current_session().delete(session_cookie)
        except (SessionDeletionFailed, InvalidToken) as e:
            logger.debug('Logout failed: %s', e)

    data = {'cookies': {'auth_session_cookie': ('', 0)}}
    return data, HTTPStatus.SEE_OTHER, {'Location': next_page}


class LoginForm(Form):
    """Log in form."""

    username = StringField('Username or e-mail', validators=[DataRequired()])
    password = PasswordField('Password', validators=[DataRequired()])


def authenticate(username_or_email: str, password: str) -> domain.User:
    """
    Check the credentials of a user.

    Raises
    ------
    :class:`AuthenticationFailed`
        If the user does not exist or the password is wrong.

    """
    try:
        user = datastore.load_user_by_username_or_email(username_or_email)
        passwords.check_password(password,
                                 datastore.get_password_hash(user.user_id))
    except (datastore.NoSuchUser, PasswordAuthenticationFailed) as e:
        raise AuthenticationFailed('Invalid username or password') from e
    return user


def get_authorizations(user: domain.User) -> domain.Authorizations:
    """Get the scopes for a login session, based on the user's role."""
    admin_emails = current_app.config.get('ADMIN_EMAILS', [])
    if user.is_admin or user.email.lower() in admin_emails:
        return domain.Authorizations(scopes=scopes.ADMIN)
    return domain.Authorizations(scopes=scopes.GENERAL_USER)


def start_session(user: domain.User, ip: Optional[str],
                  user_agent: Optional[str] = None) \
        -> Tuple[domain.Session, str]:
    """Create a session in the distributed session store, and its cookie."""
    sessions = SessionStore.current_session()
    # Only identifying information goes into the session.
    session_user = domain.User(user_id=user.user_id, username=user.username,
                               email=user.email, name=user.name,
                               role=user.role)
    try:
        session = sessions.create(get_authorizations(user), ip, ip,
                                  user=session_user, user_agent=user_agent)
        cookie = sessions.generate_cookie(session)
        logger.debug('Created session: %s', session.session_id)
    except SessionCreationFailed as e:
        logger.info('Could not create session: %s', e)
        raise InternalServerError('Cannot log in') from e
    return session, cookie


def good_next_page(next_page: Optional[str]) -> bool:
    """True if next_page is a valid query parameter for the login page."""
    if not next_page:
        return False
    return next_page == current_app.config['DEFAULT_LOGIN_REDIRECT_URL'] \
        or bool(re.search(current_app.config['LOGIN_REDIRECT_REGEX'],
                          next_page))
