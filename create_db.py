"""Create all tables in the site database."""

from equators.factory import create_web_app
from equators.services import datastore

app = create_web_app()
with app.app_context():
    datastore.create_all()
