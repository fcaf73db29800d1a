"""Provides application for development purposes."""

import os

from equators.factory import create_web_app
from equators.services import datastore

# Authlib refuses plain-HTTP OAuth2 requests unless this is set.
os.environ.setdefault('AUTHLIB_INSECURE_TRANSPORT', '1')

app = create_web_app()
with app.app_context():
    datastore.create_all()
