"""Controllers for the apps that a user has authorized."""

import logging
from http import HTTPStatus
from typing import Any, Dict, List

from werkzeug.exceptions import NotFound

from ..services import datastore
from .util import ResponseData, isoformat

logger = logging.getLogger(__name__)


def list_connections(user_id: str) -> ResponseData:
    """List the apps that hold usable tokens for a user."""
    connections: Dict[str, Dict[str, Any]] = {}
    for token in datastore.list_active_tokens_for_user(user_id):
        if token.client_id not in connections:
            try:
                client, _, _, _ = datastore.load_client(token.client_id)
            except datastore.NoSuchClient:
                logger.error('Token for missing client %s', token.client_id)
                continue
            connections[token.client_id] = {
                'client_id': client.client_id,
                'name': client.name,
                'url': client.url,
                'scopes': set(),
                'connected_at': token.issued,
                'last_used': token.last_used
            }
        conn = connections[token.client_id]
        conn['scopes'].update(token.scope.split())
        conn['connected_at'] = min(conn['connected_at'], token.issued)
        if token.last_used and (conn['last_used'] is None
                                or token.last_used > conn['last_used']):
            conn['last_used'] = token.last_used

    data: List[Dict[str, Any]] = [{
        **conn,
        'scopes': sorted(conn['scopes']),
        'connected_at': isoformat(conn['connected_at']),
        'last_used': isoformat(conn['last_used'])
    } for conn in connections.values()]
    return {'connections': data}, HTTPStatus.OK, {}


def revoke_connection(user_id: str, client_id: str) -> ResponseData:
    """Revoke all of the tokens that a user has granted to an app."""
    revoked = datastore.revoke_tokens_for_user(user_id, client_id=client_id,
                                               reason='user_revoked')
    if not revoked:
        raise NotFound('No such connection')
    logger.info('User %s disconnected app %s (%i tokens)',
                user_id, client_id, revoked)
    return {'revoked': client_id, 'revoked_tokens': revoked}, \
        HTTPStatus.OK, {}
