"""
Controllers for third-party apps registered by site users.

An app is an OAuth2 client. Its owner can register it, rotate its secret,
see how many tokens it holds, and delete it. Deleting an app revokes it
along with every token issued to it.

Apps registered by ordinary users are ``pending`` until an admin approves
them. Admins can also suspend an app, which revokes its tokens.
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, List
from urllib.parse import urlparse

from authlib.common.security import generate_token
from werkzeug.exceptions import NotFound

from .. import domain, oauth2
from ..auth import scopes
from ..services import datastore
from .util import ResponseData, FieldErrors, require_json, clean_text, \
    check_bool, isoformat

logger = logging.getLogger(__name__)

NAME_MAX = 100
DESCRIPTION_MAX = 500
MAX_REDIRECT_URIS = 10
ALLOWED_SCOPES = [str(scope) for scope in scopes.OAUTH_SCOPES]
GRANT_TYPES = [domain.ClientGrantType.AUTHORIZATION_CODE,
               domain.ClientGrantType.REFRESH_TOKEN]
MODERATION_STATUSES = ('active', 'suspended')
"""Statuses an admin may put an app in: approved, or suspended."""
RECENT_APPS = 5


def generate_secret() -> Dict[str, str]:
    """Generate a client secret, and the hash that is stored."""
    secret = generate_token(48)
    return {'secret': secret, 'hashed': oauth2.hash_secret(secret)}


def is_owner(user_id: str, client_id: str) -> bool:
    """Check whether a user registered an app."""
    try:
        client, _, _, _ = datastore.load_client(client_id)
    except datastore.NoSuchClient:
        return False
    return client.owner_id == user_id


def list_apps(owner_id: str) -> ResponseData:
    """List the apps registered by a user, leaving out deleted apps."""
    apps = []
    for client in datastore.list_clients_for_owner(owner_id):
        if client.status == 'revoked':
            continue
        _, _, auths, _ = datastore.load_client(str(client.client_id))
        apps.append(app_data(client, auths))
    return {'apps': apps}, HTTPStatus.OK, {}


def create_app(owner_id: str, payload: Any, can_auto_approve: bool = False,
               approved: bool = False) -> ResponseData:
    """
    Register a new app.

    Parameters
    ----------
    owner_id : str
    payload : dict
        ``name`` and ``redirect_uris`` are required. ``scopes`` defaults to
        ``profile:read``. ``description``, ``url`` and ``require_pkce`` are
        optional.
    can_auto_approve : bool
        Whether the owner may register an app that skips the consent screen.
    approved : bool
        Whether the app may be used straight away. Otherwise it is
        ``pending`` until an admin approves it.

    Returns
    -------
    dict
        The new app, including its secret. The secret is not available
        again.
    int
        201, or 400 if the request is invalid.
    dict

    """
    payload = require_json(payload)
    errors = FieldErrors()
    name = clean_text(payload.get('name'), 'name', errors, NAME_MAX)
    if name is None and not errors:
        errors.add('name', 'This field is required')
    description = clean_text(payload.get('description'), 'description',
                             errors, DESCRIPTION_MAX)
    url = clean_text(payload.get('url'), 'url', errors, 255)
    if url is not None and not is_http_url(url):
        errors.add('url', 'Must be an absolute http(s) URL')
    redirect_uris = _check_redirect_uris(payload.get('redirect_uris'), errors)
    requested_scopes = _check_scopes(payload.get('scopes'), errors)

    require_pkce = payload.get('require_pkce', False)
    check_bool(require_pkce, 'require_pkce', errors)
    auto_approve = payload.get('auto_approve', False)
    if check_bool(auto_approve, 'auto_approve', errors) and auto_approve \
            and not can_auto_approve:
        errors.add('auto_approve', 'Not allowed')
    if errors:
        return errors.response()

    now = domain.utcnow()
    secret = generate_secret()
    client_id = datastore.save_client(
        domain.Client(
            owner_id=owner_id,
            name=name,
            url=url,
            description=description,
            redirect_uris=redirect_uris,
            status='active' if approved else 'pending',
            auto_approve=auto_approve,
            require_pkce=require_pkce
        ),
        cred=domain.ClientCredential(client_secret=secret['hashed']),
        auths=[domain.ClientAuthorization(scope=scope, requested=now,
                                          authorized=now)
               for scope in requested_scopes],
        grant_types=[domain.ClientGrantType(grant_type=grant_type,
                                            requested=now, authorized=now)
                     for grant_type in GRANT_TYPES]
    )
    logger.info('User %s registered app %s', owner_id, client_id)
    client, _, auths, _ = datastore.load_client(client_id)
    data = {'app': app_data(client, auths), 'client_secret': secret['secret']}
    return data, HTTPStatus.CREATED, {}


def get_app(client_id: str) -> ResponseData:
    """Get an app with its token statistics."""
    client, _, auths, _ = _load_client(client_id)
    data = app_data(client, auths)
    data['stats'] = datastore.get_client_stats(client_id)._asdict()
    return {'app': data}, HTTPStatus.OK, {}


def delete_app(client_id: str) -> ResponseData:
    """Revoke an app, and every token that was issued to it."""
    _load_client(client_id)
    datastore.set_client_status(client_id, 'revoked')
    revoked = datastore.revoke_tokens_for_client(client_id,
                                                 reason='client_revoked')
    logger.info('Revoked app %s and %i tokens', client_id, revoked)
    return {'deleted': client_id, 'revoked_tokens': revoked}, \
        HTTPStatus.OK, {}


def rotate_secret(client_id: str) -> ResponseData:
    """Replace the secret of an app. The old secret stops working."""
    client, _, _, _ = _load_client(client_id)
    if client.status == 'revoked':
        raise NotFound('No such app')
    secret = generate_secret()
    datastore.set_credential(
        domain.ClientCredential(client_secret=secret['hashed']),
        client_id=client_id
    )
    logger.info('Rotated secret of app %s', client_id)
    return {'client_id': client_id, 'client_secret': secret['secret']}, \
        HTTPStatus.OK, {}


def set_status(client_id: str, payload: Any) -> ResponseData:
    """
    Approve or suspend an app. Only admins may do this.

    Suspending an app also revokes every token that was issued to it. Deleted
    apps stay deleted.

    Parameters
    ----------
    client_id : str
    payload : dict
        ``status`` is one of :data:`MODERATION_STATUSES`.

    Returns
    -------
    dict
        The app, and the number of tokens revoked.
    int
        200, or 400 if the status is not allowed.
    dict

    """
    payload = require_json(payload)
    status = payload.get('status')
    if status not in MODERATION_STATUSES:
        errors = FieldErrors()
        errors.add('status',
                   'Must be one of: ' + ', '.join(MODERATION_STATUSES))
        return errors.response()

    client, _, _, _ = _load_client(client_id)
    if client.status == 'revoked':
        raise NotFound('No such app')
    datastore.set_client_status(client_id, status)
    revoked = 0
    if status == 'suspended':
        revoked = datastore.revoke_tokens_for_client(
            client_id, reason='client_suspended'
        )
    logger.info('App %s is now %s; revoked %i tokens', client_id, status,
                revoked)
    client, _, auths, _ = datastore.load_client(client_id)
    return {'app': app_data(client, auths), 'revoked_tokens': revoked}, \
        HTTPStatus.OK, {}


def get_stats() -> ResponseData:
    """Count apps by status, and list the most recently registered ones."""
    by_status = datastore.count_clients_by_status()
    recent = [{
        'client_id': client.client_id,
        'name': client.name,
        'owner_id': client.owner_id,
        'status': client.status,
        'created_at': isoformat(client.created)
    } for client in datastore.list_recent_clients(limit=RECENT_APPS)]
    data = {
        'total_apps': sum(by_status.values()),
        'by_status': by_status,
        'recent_apps': recent
    }
    return data, HTTPStatus.OK, {}


def get_public_info(client_id: str) -> ResponseData:
    """Get what a user should know about an app before authorizing it."""
    client, _, auths, _ = _load_client(client_id)
    if client.status != 'active':
        raise NotFound('No such app')
    data = {
        'client_id': client.client_id,
        'name': client.name,
        'description': client.description,
        'url': client.url,
        'scopes': [{'scope': auth.scope,
                    'description': scopes.get_human_label(auth.scope)}
                   for auth in auths]
    }
    return {'app': data}, HTTPStatus.OK, {}


def app_data(client: domain.Client,
             auths: List[domain.ClientAuthorization]) -> Dict[str, Any]:
    """Render an app for a JSON response. Secrets are never included."""
    return {
        'client_id': client.client_id,
        'name': client.name,
        'description': client.description,
        'url': client.url,
        'redirect_uris': client.redirect_uris,
        'scopes': sorted(auth.scope for auth in auths),
        'status': client.status,
        'auto_approve': client.auto_approve,
        'require_pkce': client.require_pkce,
        'created_at': isoformat(client.created)
    }


def is_http_url(value: str) -> bool:
    """Check that a value is an absolute http or https URL."""
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def _check_redirect_uris(value: Any, errors: FieldErrors) -> List[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not value:
        errors.add('redirect_uris', 'At least one redirect URI is required')
        return []
    if len(value) > MAX_REDIRECT_URIS:
        errors.add('redirect_uris',
                   f'No more than {MAX_REDIRECT_URIS} are allowed')
    uris: List[str] = []
    for uri in value:
        if not isinstance(uri, str) or not is_http_url(uri.strip()):
            errors.add('redirect_uris', f'Not an absolute http(s) URL: {uri}')
        elif uri.strip() not in uris:
            uris.append(uri.strip())
    return uris


def _check_scopes(value: Any, errors: FieldErrors) -> List[str]:
    if value is None:
        return [str(scopes.DEFAULT_SCOPE)]
    if isinstance(value, str):
        value = value.split()
    if not isinstance(value, list):
        errors.add('scopes', 'Must be a list of scopes')
        return []
    unknown = [scope for scope in value if scope not in ALLOWED_SCOPES]
    if unknown:
        errors.add('scopes', 'Not allowed: ' + ', '.join(map(str, unknown)))
    return [scope for scope in ALLOWED_SCOPES if scope in value] \
        or [str(scopes.DEFAULT_SCOPE)]


def _load_client(client_id: str) -> tuple:
    try:
        return datastore.load_client(client_id)
    except datastore.NoSuchClient as e:
        raise NotFound('No such app') from e
