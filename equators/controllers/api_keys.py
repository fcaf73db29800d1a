"""
Controllers for personal API keys.

A key is shown to its owner once, when it is created. Only a SHA-256 hash of
the key is stored.
"""

import hashlib
import logging
import secrets
from datetime import timedelta
from http import HTTPStatus
from typing import Any, Dict, List

from werkzeug.exceptions import NotFound

from .. import domain
from ..services import datastore
from .util import ResponseData, FieldErrors, require_json, clean_text, \
    isoformat

logger = logging.getLogger(__name__)

MAX_ACTIVE_KEYS = 10
NAME_MAX = 100
MAX_EXPIRY_DAYS = 365
DEFAULT_PERMISSIONS = ['read']


def generate_key() -> Dict[str, str]:
    """Generate a new key ID, and a key that starts with that ID."""
    key_id = f'ek_{secrets.token_hex(8)}'
    return {'key_id': key_id, 'key': f'{key_id}_{secrets.token_hex(32)}'}


def hash_key(key: str) -> str:
    """Hash an API key for storage."""
    return hashlib.sha256(key.encode('utf-8')).hexdigest()


def list_keys(user_id: str) -> ResponseData:
    """List the API keys of a user, without the keys themselves."""
    keys = datastore.list_api_keys(user_id)
    return {'api_keys': [key_data(key) for key in keys]}, HTTPStatus.OK, {}


def create_key(user_id: str, payload: Any) -> ResponseData:
    """
    Create a new API key.

    Parameters
    ----------
    user_id : str
    payload : dict
        ``name`` is required. ``permissions`` is a list, filtered to the
        known permissions (default ``['read']``). ``expires_in_days`` is
        optional, from 1 to 365.

    Returns
    -------
    dict
        Includes the new key, which is not available again.
    int
        201, or 400 if the request is invalid or the user has too many keys.
    dict

    """
    payload = require_json(payload)
    errors = FieldErrors()
    name = clean_text(payload.get('name'), 'name', errors, NAME_MAX)
    if name is None and not errors:
        errors.add('name', 'This field is required')

    permissions = _filter_permissions(payload.get('permissions'))
    expires_in_days = payload.get('expires_in_days')
    if expires_in_days is not None and (
            isinstance(expires_in_days, bool)
            or not isinstance(expires_in_days, int)
            or not 1 <= expires_in_days <= MAX_EXPIRY_DAYS):
        errors.add('expires_in_days',
                   f'Must be a whole number from 1 to {MAX_EXPIRY_DAYS}')
    if errors:
        return errors.response()

    if datastore.count_active_api_keys(user_id) >= MAX_ACTIVE_KEYS:
        errors.add('name', f'No more than {MAX_ACTIVE_KEYS} active keys are'
                           ' allowed')
        return errors.response()

    generated = generate_key()
    created = domain.utcnow()
    api_key = domain.APIKey(
        key_id=generated['key_id'],
        user_id=user_id,
        name=name,
        key_hash=hash_key(generated['key']),
        permissions=permissions,
        created=created,
        expires=created + timedelta(days=expires_in_days)
        if expires_in_days else None
    )
    datastore.save_api_key(api_key)
    logger.info('User %s created API key %s', user_id, api_key.key_id)
    data = {'api_key': key_data(api_key), 'key': generated['key']}
    return data, HTTPStatus.CREATED, {}


def deactivate_key(user_id: str, key_id: str) -> ResponseData:
    """Deactivate an API key."""
    try:
        datastore.deactivate_api_key(user_id, key_id)
    except datastore.NoSuchAPIKey as e:
        raise NotFound('No such API key') from e
    logger.info('User %s deactivated API key %s', user_id, key_id)
    return {'deactivated': key_id}, HTTPStatus.OK, {}


def key_data(api_key: domain.APIKey) -> Dict[str, Any]:
    """Render an API key for a JSON response. The hash is left out."""
    return {
        'id': api_key.key_id,
        'name': api_key.name,
        'permissions': api_key.permissions,
        'created_at': isoformat(api_key.created),
        'expires_at': isoformat(api_key.expires),
        'is_active': api_key.is_active
    }


def _filter_permissions(requested: Any) -> List[str]:
    if not isinstance(requested, list):
        return list(DEFAULT_PERMISSIONS)
    permissions = [p for p in domain.APIKey.PERMISSIONS if p in requested]
    return permissions or list(DEFAULT_PERMISSIONS)
