"""Exceptions related to sessions, authentication and authorization."""


class InvalidToken(ValueError):
    """Token in request is not valid."""


class ExpiredToken(RuntimeError):
    """The session or cookie has expired."""


class ConfigurationError(RuntimeError):
    """The application is not configured correctly."""


class SessionCreationFailed(RuntimeError):
    """Failed to create a session in the session store."""


class SessionDeletionFailed(RuntimeError):
    """Failed to delete a session in the session store."""


class UnknownSession(RuntimeError):
    """Failed to locate a session in the session store."""


class Unavailable(RuntimeError):
    """The session store is not reachable."""


class AuthenticationFailed(RuntimeError):
    """Could not authenticate user with provided credentials."""


class PasswordAuthenticationFailed(RuntimeError):
    """Password is not correct."""
