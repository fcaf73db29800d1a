"""OAuth2 endpoints: authorization, token issuance, revocation, userinfo."""

import hmac
import logging
from urllib.parse import urlencode

from authlib.integrations.flask_oauth2 import current_token
from authlib.oauth2.rfc6749.util import scope_to_list
from flask import Blueprint, render_template, url_for, request, redirect, \
    current_app, Response, jsonify
from werkzeug.exceptions import BadRequest, Unauthorized

from .. import oauth2
from ..auth.decorators import scoped
from ..services import datastore

logger = logging.getLogger(__name__)

blueprint = Blueprint('oauth', __name__, url_prefix='/oauth')


def redirect_to_login(*args, **kwargs) -> Response:
    """Send the user to log in, with a pointer back to the current URL."""
    return redirect(url_for('ui.login') + '?'
                    + urlencode({'next_page': request.full_path}))


@blueprint.route('/token', methods=['POST'])
def issue_token() -> Response:
    """Exchange an authorization code or refresh token for a token pair."""
    logger.debug('Request to issue token, grant type %s',
                 request.form.get('grant_type'))
    server = current_app.server
    return server.create_token_response()


@blueprint.route('/revoke', methods=['POST'])
def revoke_token() -> Response:
    """Revoke an access or refresh token."""
    server = current_app.server
    return server.create_endpoint_response(
        oauth2.RevocationEndpoint.ENDPOINT_NAME
    )


@blueprint.route('/authorize', methods=['GET', 'POST'])
@scoped(unauthorized=redirect_to_login)
def authorize() -> Response:
    """User-facing endpoint for authorization code (three-legged) workflow."""
    server = current_app.server
    grant_user = oauth2.OAuth2User(request.auth.user)
    try:
        grant = server.get_consent_grant(end_user=grant_user)
    except oauth2.OAuth2Error as ex:
        logger.debug('Got OAuth2Error: %s', ex)
        return server.handle_error_response(request, ex)

    client = grant.client
    if request.method == 'GET':
        if client.auto_approve:
            logger.debug('Client %s is approved automatically',
                         client.client_id)
            return server.create_authorization_response(
                grant_user=grant_user, grant=grant
            )
        requested = scope_to_list(client.get_allowed_scope(
            grant.request.payload.scope
        ))
        return render_template(
            'equators/authorize.html',
            grant=grant,
            client=client,
            scopes=requested,
            user=request.auth.user,
            nonce=request.auth.nonce
        )

    # Cookie sessions must post back the nonce of the login session, which
    # is embedded in the consent form. Header tokens are not sent by
    # browsers on their own.
    if request.environ.get('token') is None:
        nonce = request.auth.nonce
        if not nonce or not hmac.compare_digest(
                request.form.get('nonce', ''), nonce):
            raise BadRequest('Consent form is not valid for this session')
    if request.form.get('confirm') == 'ok':
        logger.debug('User authorizes client %s', client.client_id)
    else:
        logger.debug('User has not authorized client %s', client.client_id)
        grant_user = None
    return server.create_authorization_response(grant_user=grant_user,
                                                grant=grant)


@blueprint.route('/userinfo', methods=['GET'])
@oauth2.require_oauth()
def userinfo() -> Response:
    """Describe the user who authorized the token, within its scope."""
    try:
        user = datastore.load_user(current_token.user_id)
    except datastore.NoSuchUser as e:
        raise Unauthorized('User no longer exists') from e
    if not user.is_active:
        raise Unauthorized('User is deactivated')
    return jsonify(oauth2.userinfo_for(user,
                                       scope_to_list(current_token.get_scope())))
