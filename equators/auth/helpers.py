"""Helpers for working with auth tokens in development and tests."""

import os
import uuid
from datetime import datetime, timedelta
from typing import Optional, List

from pytz import UTC

from . import tokens, scopes
from .. import domain


def generate_token(user_id: str, email: str, username: str,
                   name: Optional[str] = None, role: str = 'user',
                   scope: Optional[List[domain.Scope]] = None,
                   expires: int = 3600,
                   secret: Optional[str] = None) -> str:
    """
    Generate a session JWT for use in the ``Authorization`` header.

    The token is not backed by the session store; it is verified only by its
    signature (see :class:`.middleware.AuthMiddleware`).
    """
    if scope is None:
        scope = scopes.ADMIN if role == 'admin' else scopes.GENERAL_USER
    start = datetime.now(tz=UTC)
    session = domain.Session(
        session_id=str(uuid.uuid4()),
        start_time=start,
        end_time=start + timedelta(seconds=expires),
        user=domain.User(user_id=user_id, email=email, username=username,
                         name=name, role=role),
        authorizations=domain.Authorizations(scopes=scope)
    )
    if secret is None:
        secret = os.environ.get('JWT_SECRET', 'foosecret')
    return tokens.encode(session, secret)
