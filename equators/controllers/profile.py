"""
Controllers for the signed-in user's own profile.

The profile is a combination of the user record, the profile and preferences
stored with it, and a summary of account activity.
"""

import logging
from http import HTTPStatus
from typing import Dict, Any, Optional

from werkzeug.exceptions import NotFound

from .. import domain
from ..auth.sessions import SessionStore
from ..services import datastore
from .util import ResponseData, FieldErrors, require_json, clean_text, \
    check_bool, isoformat

logger = logging.getLogger(__name__)

DISPLAY_NAME_MAX = 100
BIO_MAX = 500

RECENT_LOGINS = 10
"""How many login events are included with the profile."""

PREFERENCE_FLAGS = ('newsletter', 'notifications', 'security_alerts',
                    'login_alerts', 'two_factor_enabled')


def get_profile(user_id: str) -> ResponseData:
    """Get the profile of a user, with account statistics."""
    user = _load_user(user_id)
    active_sessions = len(SessionStore.current_session()
                          .list_for_user(user_id))
    stats = datastore.get_user_stats(user_id, active_sessions=active_sessions)
    logins = datastore.get_login_history(user_id, limit=RECENT_LOGINS)
    data = {
        'user': user_data(user),
        'stats': stats._asdict(),
        'login_history': [{
            'timestamp': isoformat(event.timestamp),
            'ip_address': event.ip_address,
            'user_agent': event.user_agent,
            'method': event.method
        } for event in logins]
    }
    return data, HTTPStatus.OK, {}


def update_profile(user_id: str, payload: Any) -> ResponseData:
    """
    Update the display name, bio, preferences and privacy flags of a user.

    Parameters
    ----------
    user_id : str
    payload : dict
        May contain ``display_name``, ``bio``, ``preferences`` (``theme``
        and boolean flags) and ``privacy`` (``show_email``,
        ``show_activity``, ``profile_visibility``).

    Returns
    -------
    dict
        The updated user, or a list of field errors.
    int
        200, or 400 if any field is invalid.
    dict

    """
    payload = require_json(payload)
    _load_user(user_id)
    errors = FieldErrors()
    profile_fields: Dict[str, Optional[str]] = {}
    prefs: Dict[str, Any] = {}

    if 'display_name' in payload:
        profile_fields['display_name'] = clean_text(
            payload['display_name'], 'display_name', errors, DISPLAY_NAME_MAX
        )
    if 'bio' in payload:
        profile_fields['bio'] = clean_text(payload['bio'], 'bio', errors,
                                           BIO_MAX)

    preferences = payload.get('preferences')
    if preferences is not None:
        if not isinstance(preferences, dict):
            errors.add('preferences', 'Must be an object')
        else:
            prefs.update(_check_preferences(preferences, errors))

    privacy = payload.get('privacy')
    if privacy is not None:
        if not isinstance(privacy, dict):
            errors.add('privacy', 'Must be an object')
        else:
            prefs.update(check_privacy(privacy, errors))

    if errors:
        return errors.response()

    if profile_fields:
        datastore.update_profile(user_id, **profile_fields)
    if prefs:
        datastore.update_preferences(user_id, **prefs)
    logger.debug('Updated profile of user %s', user_id)
    return {'user': user_data(datastore.load_user(user_id))}, \
        HTTPStatus.OK, {}


def delete_profile(user_id: str) -> ResponseData:
    """
    Deactivate the account of a user, and sign them out everywhere.

    The user record is kept; its login sessions are deleted and every token
    issued on its behalf is revoked.
    """
    _load_user(user_id)
    datastore.deactivate_user(user_id)
    sessions = SessionStore.current_session()
    for session in sessions.list_for_user(user_id):
        sessions.delete_by_id(session.session_id, user_id=user_id)
    revoked = datastore.revoke_tokens_for_user(user_id,
                                               reason='account_deleted')
    logger.info('Deactivated account %s; revoked %i tokens', user_id, revoked)
    data = {
        'deleted': True,
        'cookies': {'auth_session_cookie': ('', 0)}
    }
    return data, HTTPStatus.OK, {}


def user_data(user: domain.User) -> Dict[str, Any]:
    """Render a user with profile and preferences for a JSON response."""
    profile = user.profile or domain.UserProfile()
    preferences = user.preferences or domain.Preferences()
    return {
        'id': user.user_id,
        'username': user.username,
        'email': user.email,
        'name': user.name,
        'role': user.role,
        'email_verified': user.email_verified,
        'is_active': user.is_active,
        'created_at': isoformat(user.created),
        'last_login': isoformat(user.last_login),
        'profile': profile._asdict(),
        'preferences': preferences._asdict()
    }


def check_privacy(privacy: dict, errors: FieldErrors) -> Dict[str, Any]:
    """Validate privacy settings, returning the preferences to update."""
    prefs: Dict[str, Any] = {}
    for flag in ('show_email', 'show_activity'):
        if flag in privacy and check_bool(privacy[flag], f'privacy.{flag}',
                                          errors):
            prefs[flag] = privacy[flag]
    if 'profile_visibility' in privacy:
        if privacy['profile_visibility'] in domain.Preferences.VISIBILITIES:
            prefs['profile_visibility'] = privacy['profile_visibility']
        else:
            errors.add('privacy.profile_visibility',
                       'Must be one of: '
                       + ', '.join(domain.Preferences.VISIBILITIES))
    return prefs


def _check_preferences(preferences: dict,
                       errors: FieldErrors) -> Dict[str, Any]:
    prefs: Dict[str, Any] = {}
    if 'theme' in preferences:
        if preferences['theme'] in domain.Preferences.THEMES:
            prefs['theme'] = preferences['theme']
        else:
            errors.add('preferences.theme',
                       'Must be one of: '
                       + ', '.join(domain.Preferences.THEMES))
    for flag in PREFERENCE_FLAGS:
        if flag in preferences and check_bool(preferences[flag],
                                              f'preferences.{flag}', errors):
            prefs[flag] = preferences[flag]
    return prefs


def _load_user(user_id: str) -> domain.User:
    try:
        return datastore.load_user(user_id)
    except datastore.NoSuchUser as e:
        raise NotFound('No such user') from e
