"""Application factory for the site service."""

import logging

import click
from flask import Flask, Response, jsonify
from flask.cli import with_appcontext
from werkzeug.exceptions import HTTPException, Forbidden, Unauthorized, \
    BadRequest, MethodNotAllowed, InternalServerError, NotFound, Conflict, \
    ServiceUnavailable, RequestEntityTooLarge

from . import filters, oauth2
from .app_logging import setup_logger
from .auth import Auth
from .auth.exceptions import Unavailable
from .auth.middleware import AuthMiddleware
from .auth.sessions import SessionStore
from .routes import ui, oauth, api
from .services import datastore

logger = logging.getLogger(__name__)


def create_web_app() -> Flask:
    """Initialize and configure the site application."""
    app = Flask('equators')
    app.config.from_pyfile('config.py')
    setup_logger(app)

    datastore.init_app(app)
    SessionStore.init_app(app)
    Auth(app)   # Handles sessions and authn/z.
    oauth2.init_app(app)

    app.register_blueprint(ui.blueprint)
    app.register_blueprint(oauth.blueprint)
    app.register_blueprint(api.blueprint)

    app.wsgi_app = AuthMiddleware(app.wsgi_app,  # type: ignore
                                  secret=app.config['JWT_SECRET'])
    app.jinja_env.filters['scope_label'] = filters.scope_label
    app.cli.add_command(cleanup)

    if app.config['CREATE_DB']:
        with app.app_context():
            datastore.create_all()

    register_error_handlers(app)
    return app


def register_error_handlers(app: Flask) -> None:
    """Register error handlers for the Flask app."""
    app.errorhandler(Forbidden)(jsonify_exception)
    app.errorhandler(Unauthorized)(jsonify_exception)
    app.errorhandler(BadRequest)(jsonify_exception)
    app.errorhandler(Conflict)(jsonify_exception)
    app.errorhandler(InternalServerError)(jsonify_exception)
    app.errorhandler(NotFound)(jsonify_exception)
    app.errorhandler(MethodNotAllowed)(jsonify_exception)
    app.errorhandler(RequestEntityTooLarge)(jsonify_exception)
    app.errorhandler(ServiceUnavailable)(jsonify_exception)
    app.errorhandler(Unavailable)(handle_unavailable)


def jsonify_exception(error: HTTPException) -> Response:
    """Render exceptions as JSON."""
    exc_resp = error.get_response()
    response: Response = jsonify(reason=error.description)
    response.status_code = exc_resp.status_code
    return response


def handle_unavailable(error: Unavailable) -> Response:
    """The session store could not be reached."""
    logger.error('Session store is unavailable: %s', error)
    return jsonify_exception(ServiceUnavailable('Please try again later'))


@click.command('cleanup')
@with_appcontext
def cleanup() -> None:
    """Delete expired authorization codes and tokens."""
    codes, tokens = datastore.purge_expired()
    click.echo(f'Deleted {codes} expired codes and {tokens} expired tokens')
