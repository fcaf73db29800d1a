"""
Controller for creating new accounts.

Users are able to create a new account with a username, e-mail address and
password. On success they are logged in straight away.
"""

import logging
from http import HTTPStatus
from typing import Dict, Any, Optional

from flask import current_app
from werkzeug.datastructures import MultiDict

from wtforms import StringField, PasswordField, Form
from wtforms.validators import DataRequired, Email, Length, EqualTo, \
    Regexp, Optional as OptionalValue

from .. import domain
from ..auth import passwords
from ..services import datastore
from .authentication import start_session, good_next_page
from .util import ResponseData

logger = logging.getLogger(__name__)


def register(method: str, form_data: MultiDict, ip: Optional[str],
             next_page: str, user_agent: Optional[str] = None) \
        -> ResponseData:
    """Handle requests for the registration view."""
    data: Dict[str, Any]
    if method == 'GET':
        return {'form': RegistrationForm(), 'next_page': next_page}, \
            HTTPStatus.OK, {}

    logger.debug('Registration form submitted')
    form = RegistrationForm(form_data)
    data = {'form': form, 'next_page': next_page}
    if not form.validate():
        logger.debug('Registration form not valid')
        return data, HTTPStatus.BAD_REQUEST, {}

    try:
        user = datastore.create_user(
            form.to_domain(),
            passwords.hash_password(form.password.data)
        )
    except datastore.UserExists:
        data.update({'error': 'That username or e-mail address is already'
                              ' registered.'})
        return data, HTTPStatus.CONFLICT, {}
    logger.info('Registered new user %s', user.user_id)

    session, cookie = start_session(user, ip, user_agent)
    datastore.record_login(str(user.user_id), ip, user_agent,
                           method='registration')
    data.update({
        'cookies': {'auth_session_cookie': (cookie, session.expires)},
        'user_id': user.user_id
    })
    if not good_next_page(next_page):
        next_page = current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
    return data, HTTPStatus.SEE_OTHER, {'Location': next_page}


class RegistrationForm(Form):
    """User registration form."""

    username = StringField(
        'Username',
        validators=[DataRequired(), Length(min=3, max=64),
                    Regexp(r'^[a-zA-Z0-9_.-]+$',
                           message='Only letters, numbers, "_", "." and "-"'
                                   ' are allowed')]
    )
    email = StringField('E-mail address',
                        validators=[DataRequired(), Email(), Length(max=255)])
    name = StringField('Full name',
                       validators=[OptionalValue(), Length(max=255)])
    password = PasswordField(
        'Password',
        validators=[DataRequired(), Length(min=passwords.MIN_LENGTH)]
    )
    password2 = PasswordField(
        'Confirm password',
        validators=[DataRequired(),
                    EqualTo('password', message='Passwords must match')]
    )

    def to_domain(self) -> domain.User:
        """Generate a :class:`.User` from this form's data."""
        return domain.User(
            username=self.username.data.strip(),
            email=self.email.data.strip(),
            name=(self.name.data or '').strip() or None,
        )
