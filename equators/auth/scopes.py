"""
Authorization scopes for site users and registered apps.

The concept of authorization scope comes from OAuth 2.0 (`RFC 6749 §3.3
<https://tools.ietf.org/html/rfc6749#section-3.3>`_). The basic idea is that
the authorization associated with an access token can be limited, e.g. to
limit what a third-party app can learn about the user who authorized it.

Scopes are applied in two places. When a user logs in, the scopes in
:data:`GENERAL_USER` (and :data:`ADMIN`, for admins) are attached to their
login session and enforced by :func:`equators.auth.decorators.scoped`. When a
user authorizes a registered app, the app may be granted any of
:data:`OAUTH_SCOPES`; these filter what ``userinfo`` returns.

Rather than refer to scopes by writing new str objects, these constants should
be imported and used.
"""
from typing import Optional, Union
from ..domain import Scope


READ_PROFILE = Scope(Scope.domains.PROFILE, Scope.actions.READ)
"""Authorizes viewing the basic profile: name, username and avatar."""

EDIT_PROFILE = Scope(Scope.domains.PROFILE, Scope.actions.UPDATE)
"""Authorizes editing profile, preferences and settings."""

READ_EMAIL = Scope(Scope.domains.EMAIL, Scope.actions.READ)
"""Authorizes viewing the e-mail address and its verification status."""

READ_EXTENDED_PROFILE = Scope(Scope.domains.PROFILE, Scope.actions.EXTENDED)
"""Authorizes viewing bio, location, website and social links."""

READ_ADMIN = Scope(Scope.domains.ADMIN, Scope.actions.READ)
"""Authorizes viewing role and account creation date."""

MANAGE_APPS = Scope(Scope.domains.APPS, Scope.actions.MANAGE)
"""Authorizes registering and managing third-party apps."""

MANAGE_API_KEYS = Scope(Scope.domains.APIKEYS, Scope.actions.MANAGE)
"""Authorizes creating and revoking personal API keys. Admins only."""

CREATE_DOWNLOAD = Scope(Scope.domains.DOWNLOADS, Scope.actions.CREATE)
"""Authorizes recording downloads against the user's history."""

GENERAL_USER = [
    READ_PROFILE,
    EDIT_PROFILE,
    READ_EMAIL,
    MANAGE_APPS,
    CREATE_DOWNLOAD,
]

ADMIN = GENERAL_USER + [
    READ_ADMIN,
    MANAGE_API_KEYS,
]

OAUTH_SCOPES = [
    READ_PROFILE,
    READ_EMAIL,
    READ_EXTENDED_PROFILE,
    READ_ADMIN,
]
"""Scopes that a registered app may be granted."""

DEFAULT_SCOPE = READ_PROFILE
"""Granted when an app requests nothing it is allowed to have."""

_HUMAN_LABELS = {
    READ_PROFILE: "Grants access to your name, username and avatar.",
    READ_EMAIL: "Grants access to your e-mail address and whether it has"
                " been verified.",
    READ_EXTENDED_PROFILE: "Grants access to your bio, location, website"
                           " and social links.",
    READ_ADMIN: "Grants access to your account role and the date your"
                " account was created.",
    EDIT_PROFILE: "Grants authorization to change your profile and"
                  " settings.",
}


def get_human_label(scope: Union[str, Scope]) -> Optional[str]:
    """Get the human-readable label for a scope, for display to end users."""
    if isinstance(scope, str):
        scope = Scope.parse(scope)
    return _HUMAN_LABELS.get(scope)
