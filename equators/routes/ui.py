"""Provides Flask integration for the login and registration pages."""

import logging
from datetime import timedelta
from functools import wraps
from http import HTTPStatus
from typing import Any, Callable

from flask import Blueprint, render_template, request, make_response, \
    redirect, current_app, Response

from ..controllers import authentication, registration

logger = logging.getLogger(__name__)
blueprint = Blueprint('ui', __name__, url_prefix='')


def anonymous_only(func: Callable) -> Callable:
    """Redirect logged-in users to their profile."""
    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        if request.auth:
            next_page = request.args.get(
                'next_page', current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
            )
            if not authentication.good_next_page(next_page):
                next_page = current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
            return make_response(redirect(next_page,
                                          code=HTTPStatus.SEE_OTHER))
        return func(*args, **kwargs)
    return wrapper


def set_cookies(response: Response, data: dict) -> None:
    """
    Update a :class:`.Response` with cookies in controller data.

    Contollers seeking to update cookies must include a 'cookies' key
    in their response data. An expiry of 0 removes the cookie.
    """
    cookies = data.pop('cookies', None)
    if cookies is None:
        return None
    for cookie_key, (cookie_value, expires) in cookies.items():
        cookie_name = current_app.config[f'{cookie_key.upper()}_NAME']
        logger.debug('Set cookie %s, max_age %s', cookie_name, expires)
        domain = current_app.config.get('AUTH_SESSION_COOKIE_DOMAIN')
        params = dict(httponly=True, domain=domain)
        if current_app.config.get('AUTH_SESSION_COOKIE_SECURE'):
            # Lax, to allow reasonable links to authenticated views.
            params.update({'secure': True, 'samesite': 'lax'})
        response.set_cookie(cookie_name, cookie_value,
                            max_age=timedelta(seconds=expires or 0),
                            **params)
    return None


@blueprint.after_request
def apply_response_headers(response: Response) -> Response:
    """Prevent UI redress attacks."""
    response.headers['Content-Security-Policy'] = "frame-ancestors 'none'"
    response.headers['X-Frame-Options'] = 'DENY'
    return response


@blueprint.route('/register', methods=['GET', 'POST'])
@anonymous_only
def register() -> Response:
    """Interface for creating new accounts."""
    default_next_page = current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
    next_page = request.args.get('next_page', default_next_page)
    data, code, headers = registration.register(
        request.method, request.form, request.remote_addr, next_page,
        user_agent=request.user_agent.string or None
    )
    # Flask puts cookie-setting methods on the response, so we do that here
    # instead of in the controller.
    if code == HTTPStatus.SEE_OTHER:
        response = make_response(redirect(headers['Location'], code=code))
        set_cookies(response, data)
        return response
    return make_response(render_template('equators/register.html', **data),
                         code, headers)


@blueprint.route('/login', methods=['GET', 'POST'])
@anonymous_only
def login() -> Response:
    """User can log in with username or e-mail, and password."""
    default_next_page = current_app.config['DEFAULT_LOGIN_REDIRECT_URL']
    next_page = request.args.get('next_page', default_next_page)
    logger.debug('Request to log in, then redirect to %s', next_page)
    data, code, headers = authentication.login(
        request.method, request.form, request.remote_addr, next_page,
        user_agent=request.user_agent.string or None
    )
    if code == HTTPStatus.SEE_OTHER:
        response = make_response(redirect(headers['Location'], code=code))
        set_cookies(response, data)
        return response

    # Form is invalid, or login failed.
    return make_response(render_template('equators/login.html', **data),
                         code, headers)


@blueprint.route('/logout', methods=['GET'])
def logout() -> Response:
    """Log out of the site."""
    session_cookie = request.cookies.get(
        current_app.config['AUTH_SESSION_COOKIE_NAME']
    )
    default_next_page = current_app.config['DEFAULT_LOGOUT_REDIRECT_URL']
    next_page = request.args.get('next_page', default_next_page)
    if not authentication.good_next_page(next_page):
        next_page = default_next_page
    logger.debug('Request to log out, then redirect to %s', next_page)
    data, code, headers = authentication.logout(session_cookie, next_page)
    response = make_response(redirect(headers['Location'], code=code))
    set_cookies(response, data)
    return response
