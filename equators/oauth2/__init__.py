"""
OAuth2 (RFC6749) implementation, using :mod:`authlib`.

This module extends the :mod:`authlib.integrations.flask_oauth2`
implementation, leveraging client, code and token data stored in
:mod:`equators.services.datastore`.

The current implementation supports the ``authorization_code`` grant (with
PKCE, RFC7636) and the ``refresh_token`` grant, token revocation (RFC7009),
and bearer token (RFC6750) protection of the ``userinfo`` resource.
"""

import hashlib
import logging
from datetime import timedelta
from typing import List, Optional, Any, Dict, Iterable, Union

from flask import Flask, request, current_app
from authlib.integrations.flask_oauth2 import AuthorizationServer, \
    ResourceProtector
from authlib.oauth2 import OAuth2Error, OAuth2Request
from authlib.oauth2.rfc6749 import ClientMixin, TokenMixin, grants
from authlib.oauth2.rfc6749.errors import InvalidRequestError
from authlib.oauth2.rfc6749.util import list_to_scope, scope_to_list
from authlib.oauth2.rfc6750 import BearerTokenValidator as _BearerValidator
from authlib.oauth2.rfc7009 import RevocationEndpoint as _RevocationEndpoint
from authlib.oauth2.rfc7636 import CodeChallenge as _CodeChallenge

from ..auth import scopes
from ..services import datastore
from .. import domain

logger = logging.getLogger(__name__)


def hash_secret(client_secret: str) -> str:
    """Hash a client secret for storage."""
    return hashlib.sha256(client_secret.encode('utf-8')).hexdigest()


class OAuth2User(object):
    """
    Represents the resource owner in OAuth2 workflows.

    This is a thin wrapper around :class:`domain.User` to support Authlib
    integration.
    """

    def __init__(self, user: domain.User) -> None:
        """Initialize with a :class:`domain.User`."""
        self._user = user

    def get_user_id(self) -> str:
        """Get the ID of the user."""
        return str(self._user.user_id)


class OAuth2AuthorizationCode(object):
    """Wraps :class:`domain.AuthorizationCode` for use in OAuth2 workflows."""

    def __init__(self, auth_code: domain.AuthorizationCode) -> None:
        """Initialize with the wrapped :class:`domain.AuthorizationCode`."""
        self._code = auth_code

    def __getattr__(self, key: str) -> Any:
        """Get an attribute from the wrapped :class:`.AuthorizationCode`."""
        if key in domain.AuthorizationCode._fields:
            return getattr(self._code, key)
        raise AttributeError(f'No attribute {key}')

    def is_expired(self) -> bool:
        """Indicate whether the code is expired."""
        return self._code.is_expired

    def get_redirect_uri(self) -> str:
        """Get the authorization code's redirect URI."""
        return self._code.redirect_uri

    def get_scope(self) -> str:
        """Get the scope for the authorization code."""
        return self._code.scope


class OAuth2Client(ClientMixin):
    """
    Implementation of an OAuth2 client as described in RFC6749.

    This class essentially wraps an aggregate of domain objects for a
    particular registered app, and implements methods expected by the
    :class:`AuthorizationServer`.
    """

    def __init__(self, client: domain.Client,
                 credential: Optional[domain.ClientCredential],
                 authorizations: List[domain.ClientAuthorization],
                 grant_types: List[domain.ClientGrantType]) -> None:
        """Initialize with domain data about a client."""
        logger.debug('New OAuth2Client with client_id %s', client.client_id)
        self._client = client
        self._credential = credential
        self._scopes = set([str(auth.scope) for auth in authorizations])
        self._grant_types = [gtype.grant_type for gtype in grant_types]

    @property
    def name(self) -> Optional[str]:
        """Get the client name."""
        return self._client.name

    @property
    def description(self) -> Optional[str]:
        """Get the client description."""
        return self._client.description

    @property
    def url(self) -> Optional[str]:
        """Get the client URL."""
        return self._client.url

    @property
    def scopes(self) -> List[str]:
        """Return authorized scopes as a list."""
        return sorted(self._scopes)

    @property
    def client_id(self) -> str:
        """Get the client ID."""
        return str(self._client.client_id)

    @property
    def is_active(self) -> bool:
        """Only active clients may take part in any flow."""
        return self._client.status == 'active'

    @property
    def auto_approve(self) -> bool:
        """Users are not asked to consent to this client."""
        return self._client.auto_approve

    @property
    def require_pkce(self) -> bool:
        """This client must use PKCE."""
        return self._client.require_pkce

    def get_client_id(self) -> str:
        """Get the client ID."""
        return self.client_id

    def get_default_redirect_uri(self) -> Optional[str]:
        """Get the first registered redirect URI for the client."""
        if self._client.redirect_uris:
            return self._client.redirect_uris[0]
        return None

    def get_allowed_scope(self, scope: Union[str, Iterable[str]]) -> str:
        """
        Filter the requested scope down to those authorized for the client.

        If nothing remains, :data:`scopes.DEFAULT_SCOPE` is granted.
        """
        requested = scope_to_list(scope) or []
        allowed = [sc for sc in requested if sc in self._scopes]
        logger.debug('Allowed scope: %s of %s', allowed, requested)
        if not allowed:
            return str(scopes.DEFAULT_SCOPE)
        return list_to_scope(allowed)

    def check_client_secret(self, client_secret: str) -> bool:
        """Check that the provided client secret is correct."""
        if self._credential is None:
            return False
        return self._credential.client_secret == hash_secret(client_secret)

    def check_endpoint_auth_method(self, method: str, endpoint: str) -> bool:
        """
        Check the client authentication method.

        Secrets may be sent in the body or with HTTP Basic auth. Clients that
        require PKCE may omit their secret altogether.
        """
        logger.debug('Check %s auth method: %s', endpoint, method)
        if method == 'none':
            return self.require_pkce
        return method in ('client_secret_post', 'client_secret_basic') \
            and self._credential is not None

    def check_grant_type(self, grant_type: str) -> bool:
        """Check that the client is authorized for the proposed grant type."""
        logger.debug('Check grant type %s', grant_type)
        return self.is_active and grant_type in self._grant_types

    def check_redirect_uri(self, redirect_uri: str) -> bool:
        """Check that the provided redirect URI is registered."""
        logger.debug('Check redirect URI: %s, %s',
                     redirect_uri, self._client.redirect_uris)
        return redirect_uri in self._client.redirect_uris

    def check_response_type(self, response_type: str) -> bool:
        """Check the proposed response type."""
        logger.debug('Check response type: %s', response_type)
        return self.is_active and response_type == 'code'


class OAuth2Token(TokenMixin):
    """Wraps :class:`domain.Token` for use in OAuth2 workflows."""

    def __init__(self, token: domain.Token) -> None:
        """Initialize with the wrapped :class:`domain.Token`."""
        self._token = token

    @property
    def token(self) -> domain.Token:
        """Get the wrapped :class:`domain.Token`."""
        return self._token

    @property
    def access_token(self) -> str:
        """Get the access token."""
        return self._token.access_token

    @property
    def user_id(self) -> str:
        """Get the ID of the user who authorized the token."""
        return self._token.user_id

    def check_client(self, client: ClientMixin) -> bool:
        """Check that the token was issued to ``client``."""
        return bool(client.get_client_id() == self._token.client_id)

    def get_scope(self) -> str:
        """Get the scope granted to the token."""
        return self._token.scope

    def get_expires_in(self) -> int:
        """Get the lifetime of the access token, in seconds."""
        return self._token.expires_in

    def is_expired(self) -> bool:
        """Indicate whether the access token is expired."""
        return self._token.is_expired

    def is_revoked(self) -> bool:
        """Indicate whether the token pair is revoked."""
        return self._token.revoked

    def get_user(self) -> Optional[OAuth2User]:
        """Get the user who authorized the token."""
        try:
            return OAuth2User(datastore.load_user(self._token.user_id))
        except datastore.NoSuchUser:
            return None

    def get_client(self) -> Optional[OAuth2Client]:
        """Get the client to which the token was issued."""
        return get_client(self._token.client_id)


class CodeChallenge(_CodeChallenge):
    """PKCE, with ``S256`` assumed when no method is given."""

    DEFAULT_CODE_CHALLENGE_METHOD = 'S256'


class AuthorizationCodeGrant(grants.AuthorizationCodeGrant):
    """Authorization code grant for site users."""

    TOKEN_ENDPOINT_AUTH_METHODS = ['client_secret_post',
                                   'client_secret_basic', 'none']

    def validate_authorization_request(self) -> str:
        """Also require a code challenge from clients that must use PKCE."""
        redirect_uri = super(AuthorizationCodeGrant, self) \
            .validate_authorization_request()
        client = self.request.client
        if client.require_pkce \
                and not self.request.payload.data.get('code_challenge'):
            raise InvalidRequestError("Missing 'code_challenge'",
                                      state=self.request.payload.state,
                                      redirect_uri=redirect_uri)
        return redirect_uri

    def save_authorization_code(self, code: str,
                                request: OAuth2Request) -> None:
        """
        Store a new authorization code.

        Parameters
        ----------
        code : str
            Generated by :meth:`.generate_authorization_code`.
        request : :class:`OAuth2Request`
            The request wrapper containing request details. The user who
            granted authorization is on ``request.user``.

        """
        client = request.client
        data = request.payload.data
        challenge = data.get('code_challenge')
        method = data.get('code_challenge_method')
        if challenge and not method:
            method = CodeChallenge.DEFAULT_CODE_CHALLENGE_METHOD
        created = domain.utcnow()
        lifetime = int(current_app.config['AUTHORIZATION_CODE_LIFETIME'])
        datastore.save_auth_code(domain.AuthorizationCode(
            code=code,
            user_id=request.user.get_user_id(),
            client_id=client.get_client_id(),
            redirect_uri=request.payload.redirect_uri
            or client.get_default_redirect_uri(),
            scope=client.get_allowed_scope(request.payload.scope),
            code_challenge=challenge,
            code_challenge_method=method,
            created=created,
            expires=created + timedelta(seconds=lifetime)
        ))
        logger.debug('Saved auth code for client %s', client.client_id)

    def query_authorization_code(self, code: str, client: OAuth2Client) \
            -> Optional[OAuth2AuthorizationCode]:
        """Attempt to retrieve an unexpired auth code for an API client."""
        try:
            auth_code = OAuth2AuthorizationCode(
                datastore.load_auth_code(code, client.client_id)
            )
        except datastore.NoSuchAuthCode:
            logger.debug('No such auth code for client %s',
                         client.client_id)
            return None

        if auth_code.is_expired():
            logger.debug('Auth code for client %s is expired',
                         client.client_id)
            return None
        return auth_code

    def delete_authorization_code(self, auth_code: OAuth2AuthorizationCode) \
            -> None:
        """The code was already consumed when the user was authenticated."""

    def authenticate_user(self, auth_code: OAuth2AuthorizationCode) \
            -> Optional[OAuth2User]:
        """
        Consume the auth code, and authenticate the user implicated in it.

        The code is deleted before any token is minted. If another request
        got there first, there is no user and the grant is refused.
        """
        if not datastore.delete_auth_code(auth_code.code, auth_code.client_id):
            logger.debug('Auth code for client %s was already used',
                         auth_code.client_id)
            return None
        try:
            user = datastore.load_user(auth_code.user_id)
        except datastore.NoSuchUser:
            return None
        if not user.is_active:
            return None
        return OAuth2User(user)


class RefreshTokenGrant(grants.RefreshTokenGrant):
    """Exchange a refresh token for a new token pair."""

    TOKEN_ENDPOINT_AUTH_METHODS = ['client_secret_post',
                                   'client_secret_basic', 'none']
    INCLUDE_NEW_REFRESH_TOKEN = True

    def authenticate_refresh_token(self, refresh_token: str) \
            -> Optional[OAuth2Token]:
        """Load a usable token pair by its refresh token."""
        try:
            token = datastore.load_token_by_refresh(refresh_token)
        except datastore.NoSuchToken:
            logger.debug('No such refresh token')
            return None
        if token.revoked or token.is_refresh_expired:
            logger.debug('Refresh token is revoked or expired')
            return None
        return OAuth2Token(token)

    def authenticate_user(self, refresh_token: OAuth2Token) \
            -> Optional[OAuth2User]:
        """Authenticate the user who authorized the original token."""
        try:
            user = datastore.load_user(refresh_token.user_id)
        except datastore.NoSuchUser:
            return None
        if not user.is_active:
            return None
        return OAuth2User(user)

    def revoke_old_credential(self, refresh_token: OAuth2Token) -> None:
        """Revoke the token pair that was exchanged."""
        datastore.revoke_token(refresh_token.access_token, reason='refreshed')


class RevocationEndpoint(_RevocationEndpoint):
    """Revoke access or refresh tokens (RFC7009)."""

    CLIENT_AUTH_METHODS = ['client_secret_post', 'client_secret_basic',
                           'none']

    def query_token(self, token_string: str,
                    token_type_hint: Optional[str]) -> Optional[OAuth2Token]:
        """Find a token by access or refresh token, per the hint."""
        if token_type_hint == 'refresh_token':
            loaders = [datastore.load_token_by_refresh, datastore.load_token]
        else:
            loaders = [datastore.load_token, datastore.load_token_by_refresh]
        for loader in loaders:
            try:
                return OAuth2Token(loader(token_string))
            except datastore.NoSuchToken:
                continue
        return None

    def revoke_token(self, token: OAuth2Token,
                     request: OAuth2Request) -> None:
        """Revoke the token pair."""
        datastore.revoke_token(token.access_token, reason='revoked')
        logger.debug('Revoked token for client %s', token.token.client_id)


class BearerTokenValidator(_BearerValidator):
    """Validate bearer tokens against the datastore."""

    def authenticate_token(self, token_string: str) -> Optional[OAuth2Token]:
        """Load the token, if it exists."""
        try:
            return OAuth2Token(datastore.load_token(token_string))
        except datastore.NoSuchToken:
            return None

    def validate_token(self, token: Optional[OAuth2Token],
                       scopes: Optional[List[str]],
                       request: Any) -> None:
        """
        Check the token before it is used.

        A token found to be expired is marked as revoked. The use of a valid
        token is recorded.
        """
        if token is not None and token.is_expired() \
                and not token.is_revoked():
            datastore.revoke_token(token.access_token, reason='expired')
        super(BearerTokenValidator, self).validate_token(token, scopes,
                                                         request)
        datastore.touch_token(token.access_token)


def get_client(client_id: str) -> Optional[OAuth2Client]:
    """
    Load client data and generate a :class:`OAuth2Client`.

    Parameters
    ----------
    client_id : str

    Returns
    -------
    :class:`OAuth2Client` or None
        If the client is not found, returns `None`.

    """
    logger.debug('Get client with ID %s', client_id)
    try:
        client = OAuth2Client(*datastore.load_client(client_id))
    except datastore.NoSuchClient as e:
        logger.debug('No such client %s: %s', client_id, e)
        return None
    return client


def save_token(token: Dict[str, Any], oauth_request: OAuth2Request) -> None:
    """
    Persist a newly issued token pair as a :class:`domain.Token`.

    Parameters
    ----------
    token : dict
        Token data generated by the OAuth2 :class:`AuthorizationServer`.
        At this point the token has not been stored.
    oauth_request : :class:`OAuth2Request`
        Wrapper for OAuth2-related request data.

    """
    client = oauth_request.client
    issued = domain.utcnow()
    refresh_token = token.get('refresh_token')
    refresh_expires = None
    if refresh_token:
        lifetime = int(current_app.config['REFRESH_TOKEN_LIFETIME'])
        refresh_expires = issued + timedelta(seconds=lifetime)
    datastore.save_token(domain.Token(
        access_token=token['access_token'],
        refresh_token=refresh_token,
        client_id=client.get_client_id(),
        user_id=oauth_request.user.get_user_id(),
        scope=token.get('scope', ''),
        issued=issued,
        expires=issued + timedelta(seconds=int(token['expires_in'])),
        refresh_expires=refresh_expires,
        ip_address=request.remote_addr,
        user_agent=request.user_agent.string or None
    ))
    logger.debug('Saved token for client %s', client.get_client_id())


def userinfo_for(user: domain.User, granted: Iterable[str]) -> Dict[str, Any]:
    """
    Describe a user, limited to what the granted scopes allow.

    Parameters
    ----------
    user : :class:`domain.User`
    granted : iterable
        Scope strings granted to the token.

    Returns
    -------
    dict

    """
    granted = set(granted)
    profile = user.profile or domain.UserProfile()
    info: Dict[str, Any] = {'sub': user.user_id, 'id': user.user_id}
    if str(scopes.READ_PROFILE) in granted:
        info.update({
            'name': profile.display_name or user.name or user.username,
            'username': user.username,
            'avatar': profile.avatar,
        })
    if str(scopes.READ_EMAIL) in granted:
        info.update({
            'email': user.email,
            'email_verified': user.email_verified,
        })
    if str(scopes.READ_EXTENDED_PROFILE) in granted:
        info.update({
            'bio': profile.bio,
            'location': profile.location,
            'website': profile.website,
            'social': profile.social or {},
        })
    if str(scopes.READ_ADMIN) in granted:
        info.update({
            'role': user.role,
            'is_admin': user.is_admin,
            'created_at': user.created.isoformat() if user.created else None,
        })
    return info


require_oauth = ResourceProtector()
"""Decorates routes that require a bearer token."""
require_oauth.register_token_validator(BearerTokenValidator())


def create_server() -> AuthorizationServer:
    """Instantiate and configure an :class:`AuthorizationServer`."""
    server = AuthorizationServer(query_client=get_client,
                                 save_token=save_token)
    server.register_grant(AuthorizationCodeGrant,
                          [CodeChallenge(required=True)])
    server.register_grant(RefreshTokenGrant)
    server.register_endpoint(RevocationEndpoint)
    logger.debug('Created server %s', id(server))
    return server


def init_app(app: Flask) -> None:
    """Attach an :class:`AuthorizationServer` to a :class:`Flask` app."""
    app.config.setdefault('AUTHORIZATION_CODE_LIFETIME', 600)
    app.config.setdefault('REFRESH_TOKEN_LIFETIME', 30 * 24 * 3600)
    app.config.setdefault('OAUTH2_REFRESH_TOKEN_GENERATOR', True)
    app.config.setdefault('OAUTH2_TOKEN_EXPIRES_IN', {
        'authorization_code': 3600,
        'refresh_token': 3600,
    })
    server = create_server()
    server.init_app(app)
    app.server = server
