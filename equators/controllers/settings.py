"""Controllers for the account settings page."""

import logging
from http import HTTPStatus
from typing import Dict, Any

from werkzeug.exceptions import NotFound

from .. import domain
from ..services import datastore
from .profile import check_privacy, DISPLAY_NAME_MAX, BIO_MAX
from .util import ResponseData, FieldErrors, require_json, clean_text, \
    check_bool

logger = logging.getLogger(__name__)

PROFILE_LIMITS = {
    'display_name': DISPLAY_NAME_MAX,
    'bio': BIO_MAX,
    'company': 100,
    'location': 100,
}

NOTIFICATIONS = {
    'email_notifications': 'notifications',
    'security_alerts': 'security_alerts',
    'newsletter': 'newsletter',
}
"""Setting names in the notifications section, and the preference each
corresponds to."""

SECURITY = ('two_factor_enabled', 'login_alerts')

SECTIONS = ('profile', 'privacy', 'notifications', 'security')


def get_settings(user_id: str) -> ResponseData:
    """Get the settings of a user, grouped by section."""
    return {'settings': _settings(_load_user(user_id))}, HTTPStatus.OK, {}


def update_settings(user_id: str, payload: Any) -> ResponseData:
    """
    Update one or more sections of settings.

    A blank string clears an optional profile field. Sections that are not
    included are left as they are.
    """
    payload = require_json(payload)
    _load_user(user_id)
    errors = FieldErrors()
    for key in payload:
        if key not in SECTIONS:
            errors.add(key, 'Unknown settings section')
    sections = {}
    for name in SECTIONS:
        section = payload.get(name)
        if section is None:
            continue
        if not isinstance(section, dict):
            errors.add(name, 'Must be an object')
            continue
        sections[name] = section

    profile: Dict[str, Any] = {}
    for field, limit in PROFILE_LIMITS.items():
        if field in sections.get('profile', {}):
            profile[field] = clean_text(sections['profile'][field],
                                        f'profile.{field}', errors, limit)

    prefs = check_privacy(sections.get('privacy', {}), errors)
    for setting, pref in NOTIFICATIONS.items():
        value = sections.get('notifications', {}).get(setting)
        if value is not None and check_bool(value, f'notifications.{setting}',
                                            errors):
            prefs[pref] = value
    for setting in SECURITY:
        value = sections.get('security', {}).get(setting)
        if value is not None and check_bool(value, f'security.{setting}',
                                            errors):
            prefs[setting] = value

    if errors:
        return errors.response()
    if profile:
        datastore.update_profile(user_id, **profile)
    if prefs:
        datastore.update_preferences(user_id, **prefs)
    logger.debug('Updated settings of user %s: %s', user_id,
                 ', '.join(sections))
    return {'settings': _settings(datastore.load_user(user_id))}, \
        HTTPStatus.OK, {}


def _settings(user: domain.User) -> Dict[str, Dict[str, Any]]:
    profile = user.profile or domain.UserProfile()
    prefs = user.preferences or domain.Preferences()
    return {
        'profile': {field: getattr(profile, field)
                    for field in PROFILE_LIMITS},
        'privacy': {
            'profile_visibility': prefs.profile_visibility,
            'show_email': prefs.show_email,
            'show_activity': prefs.show_activity,
        },
        'notifications': {setting: getattr(prefs, pref)
                          for setting, pref in NOTIFICATIONS.items()},
        'security': {setting: getattr(prefs, setting)
                     for setting in SECURITY},
    }


def _load_user(user_id: str) -> domain.User:
    try:
        return datastore.load_user(user_id)
    except datastore.NoSuchUser as e:
        raise NotFound('No such user') from e
