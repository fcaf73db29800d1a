"""HTTP routes for the site service."""

from . import ui, oauth, api
