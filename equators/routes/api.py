"""JSON API for the signed-in user's account, apps and the portfolio."""

import logging
from typing import Any

from flask import Blueprint, request, jsonify, make_response, Response, \
    send_from_directory

from .. import domain
from ..auth import scopes
from ..auth.decorators import scoped
from ..controllers import profile, settings, downloads, sessions, api_keys, \
    apps, connections, projects, health
from ..controllers.util import ResponseData
from .ui import set_cookies

logger = logging.getLogger(__name__)

blueprint = Blueprint('api', __name__, url_prefix='/api')


def _respond(result: ResponseData) -> Response:
    data, code, headers = result
    cookies = data.pop('cookies', None)
    response = make_response(jsonify(data), code, headers)
    if cookies is not None:
        set_cookies(response, {'cookies': cookies})
    return response


def _user_id() -> str:
    return str(request.auth.user.user_id)


def _has_scope(scope: domain.Scope) -> bool:
    auths = request.auth.authorizations if request.auth else None
    return auths is not None and scope in auths.scopes


def owns_app(session: domain.Session, client_id: str, **kwargs: Any) -> bool:
    """Check whether the authenticated user registered the app."""
    return session.user is not None \
        and apps.is_owner(str(session.user.user_id), client_id)


@blueprint.route('/profile', methods=['GET'])
@scoped(scopes.READ_PROFILE)
def get_profile() -> Response:
    """Get the profile of the signed-in user."""
    return _respond(profile.get_profile(_user_id()))


@blueprint.route('/profile', methods=['PATCH'])
@scoped(scopes.EDIT_PROFILE)
def update_profile() -> Response:
    """Update the profile of the signed-in user."""
    return _respond(profile.update_profile(_user_id(),
                                           request.get_json(silent=True)))


@blueprint.route('/profile', methods=['DELETE'])
@scoped(scopes.EDIT_PROFILE)
def delete_profile() -> Response:
    """Deactivate the account of the signed-in user."""
    return _respond(profile.delete_profile(_user_id()))


@blueprint.route('/settings', methods=['GET'])
@scoped(scopes.READ_PROFILE)
def get_settings() -> Response:
    """Get the settings of the signed-in user."""
    return _respond(settings.get_settings(_user_id()))


@blueprint.route('/settings', methods=['POST'])
@scoped(scopes.EDIT_PROFILE)
def update_settings() -> Response:
    """Update the settings of the signed-in user."""
    return _respond(settings.update_settings(_user_id(),
                                             request.get_json(silent=True)))


@blueprint.route('/downloads/track', methods=['POST'])
@scoped(scopes.CREATE_DOWNLOAD)
def track_download() -> Response:
    """Record a download by the signed-in user."""
    return _respond(downloads.track_download(_user_id(),
                                             request.get_json(silent=True)))


@blueprint.route('/downloads', methods=['GET'])
@scoped(scopes.READ_PROFILE)
def download_history() -> Response:
    """Get the download history of the signed-in user."""
    return _respond(downloads.get_history(_user_id()))


@blueprint.route('/sessions', methods=['GET'])
@scoped(scopes.READ_PROFILE)
def list_sessions() -> Response:
    """List the login sessions of the signed-in user."""
    return _respond(sessions.list_sessions(_user_id(),
                                           request.auth.session_id))


@blueprint.route('/sessions', methods=['DELETE'])
@scoped(scopes.EDIT_PROFILE)
def terminate_sessions() -> Response:
    """End one session of the signed-in user, or all of the others."""
    payload = request.get_json(silent=True) or {}
    prefix = request.args.get('id') or payload.get('session_id')
    all_others = request.args.get('all') == 'true' \
        or payload.get('all') is True
    return _respond(sessions.terminate_sessions(
        _user_id(), request.auth.session_id, prefix=prefix,
        all_others=all_others
    ))


@blueprint.route('/api-keys', methods=['GET'])
@scoped(scopes.MANAGE_API_KEYS)
def list_api_keys() -> Response:
    """List the API keys of the signed-in user."""
    return _respond(api_keys.list_keys(_user_id()))


@blueprint.route('/api-keys', methods=['POST'])
@scoped(scopes.MANAGE_API_KEYS)
def create_api_key() -> Response:
    """Create an API key for the signed-in user."""
    return _respond(api_keys.create_key(_user_id(),
                                        request.get_json(silent=True)))


@blueprint.route('/api-keys/<key_id>', methods=['DELETE'])
@scoped(scopes.MANAGE_API_KEYS)
def deactivate_api_key(key_id: str) -> Response:
    """Deactivate an API key of the signed-in user."""
    return _respond(api_keys.deactivate_key(_user_id(), key_id))


@blueprint.route('/connections', methods=['GET'])
@scoped(scopes.READ_PROFILE)
def list_connections() -> Response:
    """List the apps that the signed-in user has authorized."""
    return _respond(connections.list_connections(_user_id()))


@blueprint.route('/connections/<client_id>', methods=['DELETE'])
@scoped(scopes.EDIT_PROFILE)
def revoke_connection(client_id: str) -> Response:
    """Revoke the access of an app to the signed-in user's account."""
    return _respond(connections.revoke_connection(_user_id(), client_id))


@blueprint.route('/apps', methods=['GET'])
@scoped(scopes.MANAGE_APPS)
def list_apps() -> Response:
    """List the apps registered by the signed-in user."""
    return _respond(apps.list_apps(_user_id()))


@blueprint.route('/apps', methods=['POST'])
@scoped(scopes.MANAGE_APPS)
def create_app() -> Response:
    """Register a new app."""
    is_admin = _has_scope(scopes.READ_ADMIN)
    return _respond(apps.create_app(
        _user_id(), request.get_json(silent=True),
        can_auto_approve=is_admin, approved=is_admin
    ))


@blueprint.route('/apps/stats', methods=['GET'])
@scoped(scopes.READ_ADMIN)
def app_stats() -> Response:
    """Count registered apps by status, for moderators."""
    return _respond(apps.get_stats())


@blueprint.route('/apps/<client_id>', methods=['GET'])
@scoped(scopes.MANAGE_APPS, authorizer=owns_app)
def get_app(client_id: str) -> Response:
    """Get an app registered by the signed-in user."""
    return _respond(apps.get_app(client_id))


@blueprint.route('/apps/<client_id>', methods=['DELETE'])
@scoped(scopes.MANAGE_APPS, authorizer=owns_app)
def delete_app(client_id: str) -> Response:
    """Delete an app registered by the signed-in user."""
    return _respond(apps.delete_app(client_id))


@blueprint.route('/apps/<client_id>/secret', methods=['POST'])
@scoped(scopes.MANAGE_APPS, authorizer=owns_app)
def rotate_app_secret(client_id: str) -> Response:
    """Issue a new secret for an app registered by the signed-in user."""
    return _respond(apps.rotate_secret(client_id))


@blueprint.route('/apps/<client_id>/status', methods=['POST'])
@scoped(scopes.READ_ADMIN)
def moderate_app(client_id: str) -> Response:
    """Approve or suspend an app."""
    return _respond(apps.set_status(client_id,
                                    request.get_json(silent=True)))


@blueprint.route('/apps/<client_id>/public', methods=['GET'])
def app_public_info(client_id: str) -> Response:
    """Describe an app to users who are asked to authorize it."""
    return _respond(apps.get_public_info(client_id))


@blueprint.route('/projects', methods=['GET'])
def list_projects() -> Response:
    """List projects in the portfolio."""
    return _respond(projects.list_projects(request.args))


@blueprint.route('/projects', methods=['POST'])
@scoped(scopes.READ_ADMIN)
def create_project() -> Response:
    """Add a project to the portfolio. Admins only."""
    return _respond(projects.create_project(_user_id(), request.form,
                                            request.files.get('file')))


@blueprint.route('/projects/<project_id>', methods=['GET'])
def get_project(project_id: str) -> Response:
    """Get a project in the portfolio."""
    return _respond(projects.get_project(project_id))


@blueprint.route('/projects/<project_id>/download', methods=['GET'])
def download_project(project_id: str) -> Response:
    """Download the file of a project."""
    user_id = None
    if request.auth and request.auth.user:
        user_id = str(request.auth.user.user_id)
    data, _, _ = projects.download_project(project_id, user_id=user_id)
    return send_from_directory(data['directory'], data['filename'],
                               as_attachment=True,
                               download_name=data['download_name'])


@blueprint.route('/health', methods=['GET'])
def health_check() -> Response:
    """Report whether the backing stores are reachable."""
    return _respond(health.health_check())
