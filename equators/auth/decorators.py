"""
Scope-based authorization of user requests.

This module provides :func:`scoped`, a decorator factory used to protect Flask
routes for which authorization is required. This is done by specifying a
required authorization scope (see :mod:`equators.auth.scopes`) and/or by
providing a custom authorizer function.

The call signature of the authorizer function should be:
``(session: domain.Session, *args, **kwargs) -> bool``, where `*args` and
`**kwargs` are the positional and keyword arguments passed by Flask to the
decorated route function (e.g. the URL parameters).

.. code-block:: python

   from equators.auth.decorators import scoped
   from equators.auth import scopes
   from equators import domain


   def is_owner(session: domain.Session, client_id: str, **kwargs) -> bool:
       '''Check whether the authenticated user owns the app.'''
       return apps.is_owner(session.user.user_id, client_id)


   @blueprint.route('/apps/<client_id>', methods=['DELETE'])
   @scoped(scopes.MANAGE_APPS, authorizer=is_owner)
   def delete_app(client_id: str):
       ...


When the decorated route function is called...

- If no session is available, an :class:`Unauthorized` exception is raised,
  or ``unauthorized`` is called if provided.
- If a required scope was provided, the session is checked for the presence of
  that scope.
- If an authorization function was provided, the function is called.
- Finally, if no exceptions have been raised, the route is called with the
  original parameters.

"""

import logging
from typing import Optional, Callable, Any
from functools import wraps

from flask import request
from werkzeug.exceptions import Unauthorized, Forbidden

from .. import domain

logger = logging.getLogger(__name__)


def scoped(required: Optional[domain.Scope] = None,
           authorizer: Optional[Callable] = None,
           unauthorized: Optional[Callable] = None) -> Callable:
    """
    Generate a decorator to enforce authorization requirements.

    Parameters
    ----------
    required : :class:`.domain.Scope`
        The scope required on a user session in order use the decorated
        route. See :mod:`equators.auth.scopes`. If not provided, no scope
        will be enforced.
    authorizer : function
        In addition, an authorizer function may be passed to provide more
        specific authorization checks. Should have the signature:
        ``(session: domain.Session, *args, **kwargs) -> bool``. If the
        authorizer returns ``False``, a :class:`.Forbidden` exception is
        raised.
    unauthorized : function
        If provided, called with the route's parameters instead of raising
        :class:`.Unauthorized` when there is no session, e.g. to redirect to
        the login page.

    Returns
    -------
    function
        A decorator that enforces the required scope and calls the (optionally)
        provided authorizer.

    """
    def protector(func: Callable) -> Callable:
        """Decorator that provides scope enforcement."""
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            """
            Check the authorization token before executing the method.

            Raises
            ------
            :class:`.Unauthorized`
                Raised when session data is not available.
            :class:`.Forbidden`
                Raised when the session has insufficient auth scope, or the
                provided authorizer returns ``False``.

            """
            session = getattr(request, 'auth', None)
            # Use of the decorator implies that an auth session ought to be
            # present. So we'll complain here if it's not.
            if not session or not (session.user or session.client):
                logger.debug('No valid session; aborting')
                if unauthorized is not None:
                    return unauthorized(*args, **kwargs)
                raise Unauthorized('Not a valid session')

            if required and (session.authorizations is None
                             or required not in session.authorizations.scopes):
                logger.debug('Session is not authorized for %s', required)
                raise Forbidden('Access denied')

            if authorizer and not authorizer(session, *args, **kwargs):
                logger.debug('Authorizer retured negative result')
                raise Forbidden('Access denied')

            logger.debug('Request is authorized, proceeding')
            return func(*args, **kwargs)
        return wrapper
    return protector
