"""Jinja2 template filters."""

from markupsafe import Markup

from .auth import scopes


def scope_label(scope: str) -> Markup:
    """Get the description of an auth scope, for the consent page."""
    return Markup.escape(scopes.get_human_label(scope) or scope)
