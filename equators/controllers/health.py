"""Reports whether the service can reach its backing stores."""

import logging
from http import HTTPStatus

from ..auth.sessions import SessionStore
from ..services import datastore
from .util import ResponseData

logger = logging.getLogger(__name__)


def health_check() -> ResponseData:
    """Check the database and the session store."""
    checks = {
        'database': datastore.is_available(),
        'session_store': SessionStore.current_session().is_available()
    }
    healthy = all(checks.values())
    if not healthy:
        logger.error('Health check failed: %s', checks)
    data = {'status': 'ok' if healthy else 'degraded', **checks}
    return data, HTTPStatus.OK if healthy \
        else HTTPStatus.SERVICE_UNAVAILABLE, {}
