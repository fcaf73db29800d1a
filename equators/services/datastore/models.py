"""SQLAlchemy models for database integration."""

import uuid

from authlib.common.security import generate_token
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, \
    Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ... import domain

db: SQLAlchemy = SQLAlchemy()


def _new_id() -> str:
    return uuid.uuid4().hex


def _new_client_id() -> str:
    return generate_token(24)


class DBUser(db.Model):
    """Persistence for :class:`domain.User` and its profile."""

    __tablename__ = 'user'

    user_id = Column(String(32), primary_key=True, default=_new_id)
    username = Column(String(64), unique=True, nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255))
    password_hash = Column(String(255))
    role = Column(Enum(*domain.User.ROLES), default='user')
    email_verified = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)
    created = Column(DateTime, default=domain.utcnow)
    last_login = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    display_name = Column(String(100))
    bio = Column(String(500))
    company = Column(String(255))
    location = Column(String(255))
    website = Column(String(255))
    avatar = Column(String(1024))
    social = Column(JSON, nullable=True)

    preferences = Column(JSON, nullable=True)
    """Stored as a dict with the fields of :class:`domain.Preferences`."""

    login_history = relationship('DBLoginEvent', back_populates='user',
                                 order_by='DBLoginEvent.timestamp.desc()',
                                 cascade='all, delete-orphan')


class DBLoginEvent(db.Model):
    """Persistence for :class:`domain.LoginEvent`."""

    __tablename__ = 'login_event'

    event_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('user.user_id'), index=True)
    timestamp = Column(DateTime, default=domain.utcnow)
    ip_address = Column(String(64))
    user_agent = Column(String(512))
    method = Column(String(32), default='password')

    user = relationship('DBUser', back_populates='login_history')


class DBDownloadLog(db.Model):
    """Persistence for :class:`domain.DownloadLog`."""

    __tablename__ = 'download_log'

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(ForeignKey('user.user_id'), index=True)
    product_id = Column(String(255), nullable=False)
    product_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    version = Column(String(64), nullable=True)
    downloaded_at = Column(DateTime, default=domain.utcnow)


class DBAPIKey(db.Model):
    """Persistence for :class:`domain.APIKey`."""

    __tablename__ = 'api_key'

    key_id = Column(String(32), primary_key=True)
    user_id = Column(ForeignKey('user.user_id'), index=True)
    name = Column(String(100), nullable=False)
    key_hash = Column(String(64), nullable=False)
    permissions = Column(JSON, nullable=False)
    created = Column(DateTime, default=domain.utcnow)
    expires = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)


class DBClient(db.Model):
    """Persistence for :class:`domain.Client`."""

    __tablename__ = 'client'

    client_id = Column(String(48), primary_key=True, default=_new_client_id)
    owner_id = Column(ForeignKey('user.user_id'), index=True)
    created = Column(DateTime, default=domain.utcnow)

    name = Column(String(255))
    url = Column(String(255))
    description = Column(Text)
    status = Column(Enum(*domain.Client.STATUSES), default='active')
    auto_approve = Column(Boolean, default=False)
    require_pkce = Column(Boolean, default=False)

    redirect_uris = relationship('DBClientRedirectURI',
                                 back_populates='client', lazy='joined',
                                 cascade='all, delete-orphan')
    authorizations = relationship('DBClientAuthorization',
                                  back_populates='client', lazy='joined',
                                  cascade='all, delete-orphan')
    credential = relationship('DBClientCredential', uselist=False,
                              back_populates='client', lazy='joined',
                              cascade='all, delete-orphan')
    grant_types = relationship('DBClientGrantType', back_populates='client',
                               lazy='joined', cascade='all, delete-orphan')
    authorization_codes = relationship('DBAuthorizationCode',
                                       back_populates='client',
                                       cascade='all, delete-orphan')


class DBClientRedirectURI(db.Model):
    """A redirect URI registered for a :class:`DBClient`."""

    __tablename__ = 'client_redirect_uri'

    redirect_uri_id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(ForeignKey('client.client_id'))
    uri = Column(String(2056), nullable=False)
    client = relationship('DBClient', back_populates='redirect_uris')


class DBClientCredential(db.Model):
    """Persistence for :class:`domain.ClientCredential`."""

    __tablename__ = 'client_credential'

    credential_id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(ForeignKey('client.client_id'))
    client_secret = Column(String(255))
    created = Column(DateTime, default=domain.utcnow)

    client = relationship('DBClient', back_populates='credential',
                          uselist=False)


class DBClientAuthorization(db.Model):
    """Persistence for :class:`domain.ClientAuthorization`."""

    __tablename__ = 'client_authorization'

    authorization_id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(ForeignKey('client.client_id'))
    requested = Column(DateTime, default=domain.utcnow)
    authorized = Column(DateTime, nullable=True)
    scope = Column(String(2056))
    client = relationship('DBClient', back_populates='authorizations')


class DBClientGrantType(db.Model):
    """Persistence for :class:`domain.ClientGrantType`."""

    __tablename__ = 'client_grant_type'

    grant_type_id = Column(Integer, primary_key=True, autoincrement=True)
    client_id = Column(ForeignKey('client.client_id'))
    requested = Column(DateTime, default=domain.utcnow)
    authorized = Column(DateTime, nullable=True)
    grant_type = Column(Enum(*domain.ClientGrantType.GRANT_TYPES))
    client = relationship('DBClient', back_populates='grant_types')


class DBAuthorizationCode(db.Model):
    """Persistence for :class:`domain.AuthorizationCode`."""

    __tablename__ = 'authorization_code'

    code = Column(String(48), primary_key=True)
    """The authorization code itself."""

    client_id = Column(ForeignKey('client.client_id'), index=True)
    """The unique identifier of the API client."""

    user_id = Column(String(32))
    """The unique identifier of the user granting the authorization."""

    redirect_uri = Column(String(2056))
    """The URI to which the user should be redirected."""

    scope = Column(String(2056))
    """The scope authorized by the user."""

    code_challenge = Column(String(128), nullable=True)
    code_challenge_method = Column(String(16), nullable=True)

    created = Column(DateTime, default=domain.utcnow)
    """The time when the auth code was generated."""

    expires = Column(DateTime, index=True)
    """The time when the auth code expires."""

    client = relationship('DBClient', back_populates='authorization_codes')


class DBToken(db.Model):
    """Persistence for :class:`domain.Token`."""

    __tablename__ = 'token'

    token_id = Column(Integer, primary_key=True, autoincrement=True)
    access_token = Column(String(255), unique=True, nullable=False)
    refresh_token = Column(String(255), unique=True, nullable=True)
    client_id = Column(ForeignKey('client.client_id'), index=True)
    user_id = Column(ForeignKey('user.user_id'), index=True)
    scope = Column(String(2056))
    issued = Column(DateTime, default=domain.utcnow)
    expires = Column(DateTime, index=True)
    refresh_expires = Column(DateTime, nullable=True)
    revoked = Column(Boolean, default=False)
    revoked_at = Column(DateTime, nullable=True)
    revoked_reason = Column(String(64), nullable=True)
    last_used = Column(DateTime, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)


class DBProject(db.Model):
    """Persistence for :class:`domain.Project`."""

    __tablename__ = 'project'

    project_id = Column(String(32), primary_key=True, default=_new_id)
    owner_id = Column(ForeignKey('user.user_id'), index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    category = Column(String(64), index=True)
    tech_stack = Column(JSON)
    filename = Column(String(255), nullable=True)
    original_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    version = Column(String(64), nullable=True)
    downloads = Column(Integer, default=0)
    status = Column(String(32), default='active')
    created = Column(DateTime, default=domain.utcnow)
