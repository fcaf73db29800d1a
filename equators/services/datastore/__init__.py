"""Database integration for persisting users, clients, tokens and projects."""

import logging
from typing import Dict, List, Tuple, Optional, Any

from sqlalchemy import or_, func, cast, String
from sqlalchemy.exc import IntegrityError

from . import util, models
from ... import domain

logger = logging.getLogger(__name__)

LOGIN_HISTORY_LIMIT = 50
"""Only the most recent login events are kept for each user."""

PROFILE_FIELDS = ('name', 'display_name', 'bio', 'company', 'location',
                  'website', 'avatar', 'social')


class NoSuchUser(RuntimeError):
    """A user was requested that does not exist."""


class UserExists(RuntimeError):
    """A user with the same username or e-mail address already exists."""


class NoSuchClient(RuntimeError):
    """A client was requested that does not exist."""


class NoSuchAuthorization(RuntimeError):
    """A non-existant :class:`domain.ClientAuthorization` was requested."""


class NoSuchGrantType(RuntimeError):
    """A non-existant :class:`domain.ClientGrantType` was requested."""


class NoSuchAuthCode(RuntimeError):
    """A non-existant :class:`domain.AuthorizationCode` was requested."""


class NoSuchToken(RuntimeError):
    """A non-existant :class:`domain.Token` was requested."""


class NoSuchAPIKey(RuntimeError):
    """A non-existant :class:`domain.APIKey` was requested."""


class NoSuchProject(RuntimeError):
    """A non-existant :class:`domain.Project` was requested."""


init_app = util.init_app
create_all = util.create_all
drop_all = util.drop_all
is_available = util.is_available


# Users.


def create_user(user: domain.User, password_hash: str) -> domain.User:
    """
    Persist a new :class:`domain.User`.

    Raises
    ------
    :class:`UserExists`
        If the username or e-mail address is already taken.

    """
    with util.transaction() as dbsession:
        existing = dbsession.query(models.DBUser) \
            .filter(or_(func.lower(models.DBUser.username)
                        == user.username.lower(),
                        func.lower(models.DBUser.email)
                        == user.email.lower())) \
            .first()
        if existing is not None:
            raise UserExists('Username or e-mail address already in use')
        user_id = models._new_id()
        profile = user.profile or domain.UserProfile()
        preferences = user.preferences or domain.Preferences()
        db_user = models.DBUser(
            user_id=user_id,
            username=user.username,
            email=user.email.lower(),
            name=user.name,
            password_hash=password_hash,
            role=user.role,
            email_verified=user.email_verified,
            is_active=True,
            created=domain.utcnow(),
            preferences=preferences._asdict(),
            **profile._asdict()
        )
        dbsession.add(db_user)
        try:
            dbsession.commit()
        except IntegrityError as e:
            dbsession.rollback()
            raise UserExists('Username or e-mail address already in use') \
                from e
    return load_user(user_id)


def load_user(user_id: str) -> domain.User:
    """Load a :class:`domain.User` with its profile and preferences."""
    with util.transaction() as dbsession:
        return _to_user(_load_dbuser(user_id, dbsession))


def load_user_by_email(email: str) -> domain.User:
    """Load a :class:`domain.User` by e-mail address (case-insensitive)."""
    with util.transaction() as dbsession:
        db_user = dbsession.query(models.DBUser) \
            .filter(func.lower(models.DBUser.email) == email.lower()) \
            .first()
        if db_user is None:
            raise NoSuchUser(f'No user with e-mail {email}')
        return _to_user(db_user)


def load_user_by_username_or_email(identifier: str) -> domain.User:
    """Load a :class:`domain.User` by username or e-mail address."""
    identifier = identifier.strip().lower()
    with util.transaction() as dbsession:
        db_user = dbsession.query(models.DBUser) \
            .filter(or_(func.lower(models.DBUser.username) == identifier,
                        func.lower(models.DBUser.email) == identifier)) \
            .first()
        if db_user is None:
            raise NoSuchUser(f'No user {identifier}')
        return _to_user(db_user)


def get_password_hash(user_id: str) -> str:
    """Get the stored password hash for a user."""
    with util.transaction() as dbsession:
        db_user = _load_dbuser(user_id, dbsession)
        return str(db_user.password_hash or '')


def update_profile(user_id: str, **fields: Any) -> domain.User:
    """
    Update the name and profile fields of a user.

    Only keys in :data:`PROFILE_FIELDS` are accepted; a value of ``None``
    clears the field.
    """
    unknown = set(fields) - set(PROFILE_FIELDS)
    if unknown:
        raise ValueError(f'Not profile fields: {", ".join(sorted(unknown))}')
    with util.transaction() as dbsession:
        db_user = _load_dbuser(user_id, dbsession)
        for key, value in fields.items():
            setattr(db_user, key, value)
        dbsession.add(db_user)
    return load_user(user_id)


def update_preferences(user_id: str, **prefs: Any) -> domain.Preferences:
    """Merge ``prefs`` into the stored preferences of a user."""
    unknown = set(prefs) - set(domain.Preferences._fields)
    if unknown:
        raise ValueError(f'Not preferences: {", ".join(sorted(unknown))}')
    with util.transaction() as dbsession:
        db_user = _load_dbuser(user_id, dbsession)
        current = _to_preferences(db_user.preferences)
        updated = current._replace(**prefs)
        # Reassign so that the JSON column is flagged as modified.
        db_user.preferences = updated._asdict()
        dbsession.add(db_user)
    return updated


def deactivate_user(user_id: str) -> None:
    """Soft-delete a user account."""
    with util.transaction() as dbsession:
        db_user = _load_dbuser(user_id, dbsession)
        db_user.is_active = False
        db_user.deactivated_at = domain.utcnow()
        dbsession.add(db_user)
    logger.info('Deactivated user %s', user_id)


def record_login(user_id: str, ip_address: Optional[str] = None,
                 user_agent: Optional[str] = None,
                 method: str = 'password') -> domain.LoginEvent:
    """Stamp the last login time and add an event to the login history."""
    now = domain.utcnow()
    with util.transaction() as dbsession:
        db_user = _load_dbuser(user_id, dbsession)
        db_user.last_login = now
        dbsession.add(db_user)
        dbsession.add(models.DBLoginEvent(
            user_id=user_id,
            timestamp=now,
            ip_address=ip_address,
            user_agent=user_agent,
            method=method
        ))
        dbsession.commit()

        stale = dbsession.query(models.DBLoginEvent) \
            .filter(models.DBLoginEvent.user_id == user_id) \
            .order_by(models.DBLoginEvent.timestamp.desc(),
                      models.DBLoginEvent.event_id.desc()) \
            .offset(LOGIN_HISTORY_LIMIT) \
            .all()
        for db_event in stale:
            dbsession.delete(db_event)
    return domain.LoginEvent(timestamp=now, ip_address=ip_address,
                             user_agent=user_agent, method=method)


def get_login_history(user_id: str,
                      limit: int = LOGIN_HISTORY_LIMIT) \
        -> List[domain.LoginEvent]:
    """Get the most recent logins of a user, newest first."""
    with util.transaction() as dbsession:
        db_events = dbsession.query(models.DBLoginEvent) \
            .filter(models.DBLoginEvent.user_id == user_id) \
            .order_by(models.DBLoginEvent.timestamp.desc(),
                      models.DBLoginEvent.event_id.desc()) \
            .limit(limit) \
            .all()
        return [domain.LoginEvent(timestamp=e.timestamp,
                                  ip_address=e.ip_address,
                                  user_agent=e.user_agent,
                                  method=e.method)
                for e in db_events]


def get_user_stats(user_id: str, active_sessions: int = 0) \
        -> domain.UserStats:
    """
    Summarize the activity of a user.

    Sessions live in the session store, so ``active_sessions`` is passed in
    by the caller.
    """
    with util.transaction() as dbsession:
        _load_dbuser(user_id, dbsession)
        total_logins = dbsession.query(models.DBLoginEvent) \
            .filter(models.DBLoginEvent.user_id == user_id) \
            .count()
    return domain.UserStats(
        total_logins=total_logins,
        total_downloads=count_downloads(user_id),
        active_sessions=active_sessions,
        api_keys=count_active_api_keys(user_id)
    )


# Downloads.


def record_download(user_id: str, product_id: str, product_name: str,
                    file_size: Optional[int] = None,
                    version: Optional[str] = None) -> domain.DownloadLog:
    """Add a download to the history of a user."""
    now = domain.utcnow()
    with util.transaction() as dbsession:
        _load_dbuser(user_id, dbsession)
        db_log = models.DBDownloadLog(
            user_id=user_id,
            product_id=product_id,
            product_name=product_name,
            file_size=file_size,
            version=version,
            downloaded_at=now
        )
        dbsession.add(db_log)
        dbsession.commit()
        return _to_download(db_log)


def get_downloads(user_id: str, limit: int = 50) -> List[domain.DownloadLog]:
    """Get the download history of a user, newest first."""
    with util.transaction() as dbsession:
        db_logs = dbsession.query(models.DBDownloadLog) \
            .filter(models.DBDownloadLog.user_id == user_id) \
            .order_by(models.DBDownloadLog.downloaded_at.desc(),
                      models.DBDownloadLog.log_id.desc()) \
            .limit(limit) \
            .all()
        return [_to_download(db_log) for db_log in db_logs]


def count_downloads(user_id: str) -> int:
    """Count the downloads of a user."""
    with util.transaction() as dbsession:
        return int(dbsession.query(models.DBDownloadLog)
                   .filter(models.DBDownloadLog.user_id == user_id)
                   .count())


# API keys.


def save_api_key(api_key: domain.APIKey) -> None:
    """Persist a new :class:`domain.APIKey`."""
    with util.transaction() as dbsession:
        dbsession.add(models.DBAPIKey(
            key_id=api_key.key_id,
            user_id=api_key.user_id,
            name=api_key.name,
            key_hash=api_key.key_hash,
            permissions=list(api_key.permissions),
            created=api_key.created,
            expires=api_key.expires,
            is_active=api_key.is_active
        ))


def list_api_keys(user_id: str) -> List[domain.APIKey]:
    """Get all of the API keys of a user, newest first."""
    with util.transaction() as dbsession:
        db_keys = dbsession.query(models.DBAPIKey) \
            .filter(models.DBAPIKey.user_id == user_id) \
            .order_by(models.DBAPIKey.created.desc()) \
            .all()
        return [_to_api_key(db_key) for db_key in db_keys]


def count_active_api_keys(user_id: str) -> int:
    """Count the API keys of a user that are active and unexpired."""
    now = domain.utcnow()
    with util.transaction() as dbsession:
        return int(dbsession.query(models.DBAPIKey)
                   .filter(models.DBAPIKey.user_id == user_id)
                   .filter(models.DBAPIKey.is_active.is_(True))
                   .filter(or_(models.DBAPIKey.expires.is_(None),
                               models.DBAPIKey.expires > now))
                   .count())


def deactivate_api_key(user_id: str, key_id: str) -> None:
    """Deactivate an API key belonging to a user."""
    with util.transaction() as dbsession:
        db_key = dbsession.query(models.DBAPIKey) \
            .filter(models.DBAPIKey.user_id == user_id) \
            .filter(models.DBAPIKey.key_id == key_id) \
            .first()
        if db_key is None:
            raise NoSuchAPIKey(f'No API key {key_id} for user {user_id}')
        db_key.is_active = False
        dbsession.add(db_key)


# Clients.


def save_client(
        client: domain.Client,
        cred: Optional[domain.ClientCredential] = None,
        auths: Optional[List[domain.ClientAuthorization]] = None,
        grant_types: Optional[List[domain.ClientGrantType]] = None) -> str:
    """
    Persist a :class:`domain.Client` and (optionally) related data.

    Parameters
    ----------
    client : :class:`domain.Client`
    cred : :class:`domain.ClientCredential` or None
    auths : list or None
        Items are :class:`domain.ClientAuthorization` instances.
    grant_types : list or None
        Items are :class:`domain.ClientGrantType` instances.

    Returns
    -------
    str
        The ID of the client.

    """
    with util.transaction() as dbsession:
        if client.client_id:
            db_client = _load_dbclient(client.client_id, dbsession)
            db_client.owner_id = client.owner_id
            db_client.name = client.name
            db_client.url = client.url
            db_client.description = client.description
            db_client.status = client.status
            db_client.auto_approve = client.auto_approve
            db_client.require_pkce = client.require_pkce
            db_client.redirect_uris = [
                models.DBClientRedirectURI(uri=uri)
                for uri in client.redirect_uris
            ]
        else:
            db_client = models.DBClient(
                client_id=models._new_client_id(),
                owner_id=client.owner_id,
                name=client.name,
                url=client.url,
                description=client.description,
                status=client.status,
                auto_approve=client.auto_approve,
                require_pkce=client.require_pkce,
                created=client.created or domain.utcnow(),
                redirect_uris=[models.DBClientRedirectURI(uri=uri)
                               for uri in client.redirect_uris]
            )
        client_id = str(db_client.client_id)
        dbsession.add(db_client)
        if cred:
            set_credential(cred, db_client=db_client)
        if auths is not None:
            update_authorizations(auths, db_client=db_client)
        if grant_types is not None:
            update_grant_types(grant_types, db_client=db_client)
    return client_id


def set_credential(cred: domain.ClientCredential,
                   client_id: Optional[str] = None,
                   db_client: Optional[models.DBClient] = None) -> None:
    """Set the (hashed) secret of a client, replacing any prior secret."""
    with util.transaction() as dbsession:
        if db_client is None:
            db_client = _load_dbclient(client_id, dbsession)
        if db_client.credential:
            db_client.credential.client_secret = cred.client_secret
            dbsession.add(db_client)
        else:
            dbsession.add(models.DBClientCredential(
                client=db_client,
                client_secret=cred.client_secret
            ))


def update_authorizations(auths: List[domain.ClientAuthorization],
                          client_id: Optional[str] = None,
                          db_client: Optional[models.DBClient] = None) \
        -> None:
    """Replace the scopes that a client may be granted."""
    with util.transaction() as dbsession:
        if db_client is None:
            db_client = _load_dbclient(client_id, dbsession)
        auths_to_keep = set([auth.authorization_id for auth in auths
                             if auth.authorization_id])
        extant_auths = {str(auth.authorization_id): auth
                        for auth in db_client.authorizations}
        # Remove auths from the datastore that are not included.
        for auth_id in set(extant_auths.keys()) - auths_to_keep:
            db_client.authorizations.remove(extant_auths[auth_id])

        # Add or update auths in the datastore.
        for auth in auths:
            if auth.authorization_id is None:
                db_client.authorizations.append(
                    models.DBClientAuthorization(
                        scope=auth.scope,
                        requested=auth.requested,
                        authorized=auth.authorized
                    )
                )
            elif auth.authorization_id in extant_auths:
                db_auth = extant_auths[auth.authorization_id]
                db_auth.scope = auth.scope
                db_auth.requested = auth.requested
                db_auth.authorized = auth.authorized
            else:
                raise NoSuchAuthorization(
                    f'No auth {auth.authorization_id} for client'
                )
        dbsession.add(db_client)


def update_grant_types(grant_types: List[domain.ClientGrantType],
                       client_id: Optional[str] = None,
                       db_client: Optional[models.DBClient] = None) -> None:
    """Replace the grant types that a client may use."""
    with util.transaction() as dbsession:
        if db_client is None:
            db_client = _load_dbclient(client_id, dbsession)
        gtypes_to_keep = set([g.grant_type_id for g in grant_types
                              if g.grant_type_id])
        extant_gtypes = {str(g.grant_type_id): g
                         for g in db_client.grant_types}
        for gtype_id in set(extant_gtypes.keys()) - gtypes_to_keep:
            db_client.grant_types.remove(extant_gtypes[gtype_id])

        for gtype in grant_types:
            if gtype.grant_type_id is None:
                db_client.grant_types.append(
                    models.DBClientGrantType(
                        grant_type=gtype.grant_type,
                        requested=gtype.requested,
                        authorized=gtype.authorized
                    )
                )
            elif gtype.grant_type_id in extant_gtypes:
                db_grant_type = extant_gtypes[gtype.grant_type_id]
                db_grant_type.grant_type = gtype.grant_type
                db_grant_type.requested = gtype.requested
                db_grant_type.authorized = gtype.authorized
            else:
                raise NoSuchGrantType(
                    f'No grant type {gtype.grant_type_id} for client'
                )
        dbsession.add(db_client)


def load_client(client_id: str) -> Tuple[domain.Client,
                                         Optional[domain.ClientCredential],
                                         List[domain.ClientAuthorization],
                                         List[domain.ClientGrantType]]:
    """Load a :class:`.Client` and its related data from the datastore."""
    with util.transaction() as dbsession:
        db_client = _load_dbclient(client_id, dbsession)
        client = _to_client(db_client)
        if db_client.credential:
            cred = domain.ClientCredential(
                client_id=str(db_client.client_id),
                client_secret=str(db_client.credential.client_secret)
            )
        else:
            cred = None
        auths = [domain.ClientAuthorization(
            authorization_id=str(auth.authorization_id),
            client_id=str(db_client.client_id),
            scope=str(auth.scope),
            requested=auth.requested,
            authorized=auth.authorized
        ) for auth in db_client.authorizations]
        grant_types = [domain.ClientGrantType(
            grant_type_id=str(grant_type.grant_type_id),
            client_id=str(db_client.client_id),
            grant_type=str(grant_type.grant_type),
            requested=grant_type.requested,
            authorized=grant_type.authorized
        ) for grant_type in db_client.grant_types]
        return client, cred, auths, grant_types


def list_clients_for_owner(owner_id: str) -> List[domain.Client]:
    """Get the clients registered by a user, newest first."""
    with util.transaction() as dbsession:
        db_clients = dbsession.query(models.DBClient) \
            .filter(models.DBClient.owner_id == owner_id) \
            .order_by(models.DBClient.created.desc()) \
            .all()
        return [_to_client(db_client) for db_client in db_clients]


def set_client_status(client_id: str, status: str) -> None:
    """Change the status of a client, e.g. to ``revoked``."""
    if status not in domain.Client.STATUSES:
        raise ValueError(f'Not a client status: {status}')
    with util.transaction() as dbsession:
        db_client = _load_dbclient(client_id, dbsession)
        db_client.status = status
        dbsession.add(db_client)


def get_client_stats(client_id: str) -> domain.ClientStats:
    """Count tokens issued to a client, and those still usable."""
    now = domain.utcnow()
    with util.transaction() as dbsession:
        query = dbsession.query(models.DBToken) \
            .filter(models.DBToken.client_id == client_id)
        total = query.count()
        active = query.filter(models.DBToken.revoked.is_(False)) \
            .filter(models.DBToken.expires > now) \
            .count()
    return domain.ClientStats(total_tokens_issued=total,
                              active_tokens=active)


def count_clients_by_status() -> Dict[str, int]:
    """Count clients in each status. Every status is present."""
    counts = dict.fromkeys(domain.Client.STATUSES, 0)
    with util.transaction() as dbsession:
        rows = dbsession.query(models.DBClient.status,
                               func.count(models.DBClient.client_id)) \
            .group_by(models.DBClient.status) \
            .all()
    counts.update({status: count for status, count in rows})
    return counts


def list_recent_clients(limit: int = 5) -> List[domain.Client]:
    """Get the most recently registered clients, in any status."""
    with util.transaction() as dbsession:
        db_clients = dbsession.query(models.DBClient) \
            .order_by(models.DBClient.created.desc()) \
            .limit(limit) \
            .all()
        return [_to_client(db_client) for db_client in db_clients]


# Authorization codes.


def save_auth_code(code: domain.AuthorizationCode) -> None:
    """Save a new authorization code."""
    with util.transaction() as dbsession:
        db_code = models.DBAuthorizationCode(
            code=code.code,
            user_id=code.user_id,
            client_id=code.client_id,
            redirect_uri=code.redirect_uri,
            scope=code.scope,
            code_challenge=code.code_challenge,
            code_challenge_method=code.code_challenge_method,
            created=code.created,
            expires=code.expires
        )
        dbsession.add(db_code)


def delete_auth_code(code: str, client_id: str) -> bool:
    """
    Delete an auth code from the database.

    Returns ``False`` if there was no such code, e.g. because a concurrent
    request already exchanged it.
    """
    with util.transaction() as dbsession:
        deleted = dbsession.query(models.DBAuthorizationCode) \
            .filter(models.DBAuthorizationCode.code == code) \
            .filter(models.DBAuthorizationCode.client_id == client_id) \
            .delete(synchronize_session=False)
        dbsession.commit()
    return deleted > 0


def load_auth_code(code: str, client_id: str) -> domain.AuthorizationCode:
    """Load an authorization code for an API client."""
    with util.transaction() as dbsession:
        db_code = _load_dbauthcode(code, client_id, dbsession)
        return domain.AuthorizationCode(
            code=code,
            user_id=db_code.user_id,
            client_id=db_code.client_id,
            redirect_uri=db_code.redirect_uri,
            scope=db_code.scope,
            code_challenge=db_code.code_challenge,
            code_challenge_method=db_code.code_challenge_method,
            created=db_code.created,
            expires=db_code.expires
        )


# Tokens.


def save_token(token: domain.Token) -> None:
    """Save a newly issued token."""
    with util.transaction() as dbsession:
        dbsession.add(models.DBToken(**token._asdict()))


def load_token(access_token: str) -> domain.Token:
    """Load a :class:`domain.Token` by its access token."""
    with util.transaction() as dbsession:
        db_token = dbsession.query(models.DBToken) \
            .filter(models.DBToken.access_token == access_token) \
            .first()
        if db_token is None:
            raise NoSuchToken('No such access token')
        return _to_token(db_token)


def load_token_by_refresh(refresh_token: str) -> domain.Token:
    """Load a :class:`domain.Token` by its refresh token."""
    with util.transaction() as dbsession:
        db_token = dbsession.query(models.DBToken) \
            .filter(models.DBToken.refresh_token == refresh_token) \
            .first()
        if db_token is None:
            raise NoSuchToken('No such refresh token')
        return _to_token(db_token)


def revoke_token(access_token: str, reason: str = 'revoked') -> None:
    """Revoke a token pair."""
    with util.transaction() as dbsession:
        db_token = dbsession.query(models.DBToken) \
            .filter(models.DBToken.access_token == access_token) \
            .first()
        if db_token is None:
            raise NoSuchToken('No such access token')
        if not db_token.revoked:
            _revoke(db_token, reason)
            dbsession.add(db_token)


def revoke_tokens_for_client(client_id: str,
                             reason: str = 'client_revoked') -> int:
    """Revoke every outstanding token of a client. Returns the count."""
    with util.transaction() as dbsession:
        db_tokens = dbsession.query(models.DBToken) \
            .filter(models.DBToken.client_id == client_id) \
            .filter(models.DBToken.revoked.is_(False)) \
            .all()
        for db_token in db_tokens:
            _revoke(db_token, reason)
            dbsession.add(db_token)
        return len(db_tokens)


def revoke_tokens_for_user(user_id: str, client_id: Optional[str] = None,
                           reason: str = 'user_revoked') -> int:
    """Revoke the outstanding tokens of a user, optionally for one client."""
    with util.transaction() as dbsession:
        query = dbsession.query(models.DBToken) \
            .filter(models.DBToken.user_id == user_id) \
            .filter(models.DBToken.revoked.is_(False))
        if client_id is not None:
            query = query.filter(models.DBToken.client_id == client_id)
        db_tokens = query.all()
        for db_token in db_tokens:
            _revoke(db_token, reason)
            dbsession.add(db_token)
        return len(db_tokens)


def touch_token(access_token: str) -> None:
    """Record that a token has just been used."""
    with util.transaction() as dbsession:
        db_token = dbsession.query(models.DBToken) \
            .filter(models.DBToken.access_token == access_token) \
            .first()
        if db_token is None:
            raise NoSuchToken('No such access token')
        db_token.last_used = domain.utcnow()
        dbsession.add(db_token)


def list_active_tokens_for_user(user_id: str) -> List[domain.Token]:
    """Get the unrevoked, unexpired tokens of a user, newest first."""
    now = domain.utcnow()
    with util.transaction() as dbsession:
        db_tokens = dbsession.query(models.DBToken) \
            .filter(models.DBToken.user_id == user_id) \
            .filter(models.DBToken.revoked.is_(False)) \
            .filter(or_(models.DBToken.expires > now,
                        models.DBToken.refresh_expires > now)) \
            .order_by(models.DBToken.issued.desc()) \
            .all()
        return [_to_token(db_token) for db_token in db_tokens]


def purge_expired() -> Tuple[int, int]:
    """
    Delete expired authorization codes and tokens.

    A token is only deleted once both its access and refresh lifetimes have
    lapsed.

    Returns
    -------
    tuple
        Number of codes and number of tokens deleted.

    """
    now = domain.utcnow()
    with util.transaction() as dbsession:
        codes = dbsession.query(models.DBAuthorizationCode) \
            .filter(models.DBAuthorizationCode.expires <= now) \
            .delete(synchronize_session=False)
        tokens = dbsession.query(models.DBToken) \
            .filter(models.DBToken.expires <= now) \
            .filter(or_(models.DBToken.refresh_expires.is_(None),
                        models.DBToken.refresh_expires <= now)) \
            .delete(synchronize_session=False)
        dbsession.commit()
    logger.info('Purged %i expired codes and %i expired tokens',
                codes, tokens)
    return codes, tokens


# Projects.


def save_project(project: domain.Project) -> str:
    """Persist a new :class:`domain.Project`. Returns its ID."""
    project_id = models._new_id()
    with util.transaction() as dbsession:
        dbsession.add(models.DBProject(
            project_id=project_id,
            owner_id=project.owner_id,
            title=project.title,
            description=project.description,
            category=project.category,
            tech_stack=list(project.tech_stack),
            filename=project.filename,
            original_name=project.original_name,
            file_size=project.file_size,
            version=project.version,
            downloads=project.downloads,
            status=project.status,
            created=project.created or domain.utcnow()
        ))
    return project_id


def load_project(project_id: str) -> domain.Project:
    """Load a :class:`domain.Project` by ID."""
    with util.transaction() as dbsession:
        db_project = dbsession.query(models.DBProject) \
            .filter(models.DBProject.project_id == project_id) \
            .first()
        if db_project is None:
            raise NoSuchProject(f'Project {project_id} does not exist')
        return _to_project(db_project)


def list_projects(category: Optional[str] = None,
                  search: Optional[str] = None,
                  owner_id: Optional[str] = None,
                  page: int = 1, limit: int = 12) \
        -> Tuple[List[domain.Project], int]:
    """
    Get a page of active projects, newest first.

    Parameters
    ----------
    category : str
        Only projects in this category.
    search : str
        Case-insensitive match against title, description and tech stack.
    owner_id : str
        Only projects added by this user.
    page : int
        1-based page number.
    limit : int
        Page size.

    Returns
    -------
    tuple
        The projects on the page, and the total number of matches.

    """
    with util.transaction() as dbsession:
        query = dbsession.query(models.DBProject) \
            .filter(models.DBProject.status == 'active')
        if category:
            query = query.filter(models.DBProject.category == category)
        if owner_id:
            query = query.filter(models.DBProject.owner_id == owner_id)
        if search:
            pattern = '%' + _escape_like(search) + '%'
            query = query.filter(or_(
                models.DBProject.title.ilike(pattern, escape='\\'),
                models.DBProject.description.ilike(pattern, escape='\\'),
                cast(models.DBProject.tech_stack, String)
                .ilike(pattern, escape='\\')
            ))
        total = query.count()
        db_projects = query.order_by(models.DBProject.created.desc()) \
            .offset((max(page, 1) - 1) * limit) \
            .limit(limit) \
            .all()
        return [_to_project(p) for p in db_projects], total


def increment_downloads(project_id: str) -> int:
    """Add one to the download counter of a project. Returns the new count."""
    with util.transaction() as dbsession:
        updated = dbsession.query(models.DBProject) \
            .filter(models.DBProject.project_id == project_id) \
            .update({models.DBProject.downloads:
                     models.DBProject.downloads + 1},
                    synchronize_session=False)
        if not updated:
            raise NoSuchProject(f'Project {project_id} does not exist')
        dbsession.commit()
    return load_project(project_id).downloads


# Helpers and private functions.


def _revoke(db_token: models.DBToken, reason: str) -> None:
    db_token.revoked = True
    db_token.revoked_at = domain.utcnow()
    db_token.revoked_reason = reason


def _to_preferences(data: Optional[dict]) -> domain.Preferences:
    data = data or {}
    return domain.Preferences(**{k: v for k, v in data.items()
                                 if k in domain.Preferences._fields})


def _to_user(db_user: models.DBUser) -> domain.User:
    return domain.User(
        user_id=str(db_user.user_id),
        username=db_user.username,
        email=db_user.email,
        name=db_user.name,
        role=db_user.role,
        email_verified=bool(db_user.email_verified),
        is_active=bool(db_user.is_active),
        created=db_user.created,
        last_login=db_user.last_login,
        profile=domain.UserProfile(
            display_name=db_user.display_name,
            bio=db_user.bio,
            company=db_user.company,
            location=db_user.location,
            website=db_user.website,
            avatar=db_user.avatar,
            social=db_user.social
        ),
        preferences=_to_preferences(db_user.preferences)
    )


def _to_download(db_log: models.DBDownloadLog) -> domain.DownloadLog:
    return domain.DownloadLog(
        log_id=str(db_log.log_id),
        user_id=db_log.user_id,
        product_id=db_log.product_id,
        product_name=db_log.product_name,
        file_size=db_log.file_size,
        version=db_log.version,
        downloaded_at=db_log.downloaded_at
    )


def _to_api_key(db_key: models.DBAPIKey) -> domain.APIKey:
    return domain.APIKey(
        key_id=db_key.key_id,
        user_id=db_key.user_id,
        name=db_key.name,
        key_hash=db_key.key_hash,
        permissions=list(db_key.permissions or []),
        created=db_key.created,
        expires=db_key.expires,
        is_active=bool(db_key.is_active)
    )


def _to_client(db_client: models.DBClient) -> domain.Client:
    return domain.Client(
        client_id=str(db_client.client_id),
        owner_id=str(db_client.owner_id),
        name=db_client.name,
        url=db_client.url,
        description=db_client.description,
        redirect_uris=[r.uri for r in db_client.redirect_uris],
        status=db_client.status,
        auto_approve=bool(db_client.auto_approve),
        require_pkce=bool(db_client.require_pkce),
        created=db_client.created
    )


def _to_token(db_token: models.DBToken) -> domain.Token:
    return domain.Token(**{field: getattr(db_token, field)
                           for field in domain.Token._fields})


def _to_project(db_project: models.DBProject) -> domain.Project:
    return domain.Project(
        project_id=str(db_project.project_id),
        owner_id=str(db_project.owner_id),
        title=db_project.title,
        description=db_project.description,
        category=db_project.category,
        tech_stack=list(db_project.tech_stack or []),
        filename=db_project.filename,
        original_name=db_project.original_name,
        file_size=db_project.file_size,
        version=db_project.version,
        downloads=int(db_project.downloads or 0),
        status=db_project.status,
        created=db_project.created
    )


def _escape_like(value: str) -> str:
    """Make ``%`` and ``_`` match themselves in a LIKE pattern."""
    return value.replace('\\', '\\\\').replace('%', '\\%') \
        .replace('_', '\\_')


def _load_dbuser(user_id: str, dbsession: util.Session) -> models.DBUser:
    db_user: Optional[models.DBUser] = dbsession.query(models.DBUser) \
        .filter(models.DBUser.user_id == user_id) \
        .first()
    if db_user is None:
        raise NoSuchUser(f'User {user_id} does not exist')
    return db_user


def _load_dbauthcode(code: str, client_id: str, dbsession: util.Session) \
        -> models.DBAuthorizationCode:
    db_code = dbsession.query(models.DBAuthorizationCode)\
        .filter(models.DBAuthorizationCode.code == code) \
        .filter(models.DBAuthorizationCode.client_id == client_id) \
        .first()
    if db_code is None:
        raise NoSuchAuthCode(f'Auth code {code} does not exist'
                             f' for client {client_id}')
    return db_code


def _load_dbclient(client_id: Optional[str],
                   dbsession: util.Session) -> models.DBClient:
    db_client: Optional[models.DBClient] = dbsession.query(models.DBClient) \
        .filter(models.DBClient.client_id == client_id) \
        .first()
    if db_client is None:
        raise NoSuchClient(f'Client {client_id} does not exist')
    return db_client
