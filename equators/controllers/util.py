"""Helpers for :mod:`equators.controllers`."""

from http import HTTPStatus
from typing import Dict, Tuple, Any, List, Optional

from werkzeug.exceptions import BadRequest

ResponseData = Tuple[dict, int, dict]


class FieldErrors(object):
    """Collects validation errors for a JSON request body."""

    def __init__(self) -> None:
        """Start with no errors."""
        self.errors: List[Dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        """Record an error for ``field``."""
        self.errors.append({'field': field, 'message': message})

    def __bool__(self) -> bool:
        """True if any errors were recorded."""
        return bool(self.errors)

    def response(self) -> ResponseData:
        """Build a 400 response listing the errors."""
        return {'errors': self.errors}, HTTPStatus.BAD_REQUEST, {}


def require_json(payload: Any) -> dict:
    """Make sure that the request body is a JSON object."""
    if not isinstance(payload, dict):
        raise BadRequest('Expected a JSON object')
    return payload


def clean_text(value: Any, field: str, errors: FieldErrors,
               max_length: Optional[int] = None) -> Optional[str]:
    """
    Trim a string field; blank strings become ``None``.

    Non-strings and over-long values are recorded in ``errors``.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        errors.add(field, 'Must be a string')
        return None
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        errors.add(field, f'Must be {max_length} characters or less')
    return value or None


def check_bool(value: Any, field: str, errors: FieldErrors) -> bool:
    """Record an error in ``errors`` if ``value`` is not a boolean."""
    if not isinstance(value, bool):
        errors.add(field, 'Must be true or false')
        return False
    return True


def isoformat(value: Any) -> Optional[str]:
    """Render a datetime for a JSON response."""
    return value.isoformat() if value is not None else None
