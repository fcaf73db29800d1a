"""Password hashing for local accounts."""

import logging

from werkzeug.security import generate_password_hash, check_password_hash

from .exceptions import PasswordAuthenticationFailed

logger = logging.getLogger(__name__)

MIN_LENGTH = 8


def hash_password(password: str) -> str:
    """Generate a salted hash of a password."""
    return generate_password_hash(password)


def check_password(password: str, encrypted: str) -> bool:
    """Check a password against a hash produced by :func:`hash_password`."""
    if not encrypted or not check_password_hash(encrypted, password):
        logger.debug('Password check failed')
        raise PasswordAuthenticationFailed('Incorrect password')
    return True
