"""
Controllers for the login sessions of the signed-in user.

Session IDs grant access to an account, so they are never sent back to the
browser in full. Sessions are identified by a short prefix instead.
"""

import logging
from http import HTTPStatus
from typing import Any, Dict, Optional

from werkzeug.exceptions import NotFound, BadRequest

from .. import domain
from ..auth.sessions import SessionStore
from .util import ResponseData, isoformat

logger = logging.getLogger(__name__)

PREFIX_LENGTH = 8


def list_sessions(user_id: str, current_session_id: str) -> ResponseData:
    """List the live sessions of a user."""
    sessions = SessionStore.current_session().list_for_user(user_id)
    data = {
        'sessions': [session_data(session, current_session_id)
                     for session in sessions]
    }
    return data, HTTPStatus.OK, {}


def terminate_sessions(user_id: str, current_session_id: str,
                       prefix: Optional[str] = None,
                       all_others: bool = False) -> ResponseData:
    """
    End one session by its ID prefix, or all sessions but the current one.

    Parameters
    ----------
    user_id : str
    current_session_id : str
        The session making this request.
    prefix : str
        Leading characters of the ID of the session to end.
    all_others : bool
        If ``True``, end every session of the user except the current one.

    """
    store = SessionStore.current_session()
    sessions = store.list_for_user(user_id)
    if all_others:
        ended = [s for s in sessions if s.session_id != current_session_id]
    elif prefix and len(prefix) >= PREFIX_LENGTH:
        ended = [s for s in sessions if s.session_id.startswith(prefix)]
        if len(ended) != 1:
            raise NotFound('No such session')
    else:
        raise BadRequest('Provide a session ID, or all=true')

    for session in ended:
        store.delete_by_id(session.session_id, user_id=user_id)
    logger.debug('Ended %i sessions of user %s', len(ended), user_id)
    return {'terminated': len(ended)}, HTTPStatus.OK, {}


def session_data(session: domain.Session,
                 current_session_id: str) -> Dict[str, Any]:
    """Render a session for a JSON response."""
    return {
        'id': session.session_id[:PREFIX_LENGTH],
        'ip_address': session.ip_address,
        'user_agent': session.user_agent,
        'created_at': isoformat(session.start_time),
        'expires_at': isoformat(session.end_time),
        'current': session.session_id == current_session_id
    }
