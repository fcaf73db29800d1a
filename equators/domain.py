"""Core domain classes for the site service."""

from typing import Any, Optional, NamedTuple, List, Dict, Callable, Union, \
    get_type_hints, get_origin, get_args
from datetime import datetime
from functools import partial
import dateutil.parser
from pytz import UTC


def utcnow() -> datetime:
    """Get the current UTC time as a naive datetime, for the data store."""
    return datetime.now(tz=UTC).replace(tzinfo=None)


class Scope(NamedTuple):
    """Represents an authorization policy."""

    domain: str
    """
    The domain to which the scope applies.

    This will generally refer to a resource family, e.g. ``profile``.
    """

    action: str
    """An action within ``domain``."""

    def __repr__(self) -> str:
        """Return this scope as a :-delimited string."""
        return f'{self.domain}:{self.action}'

    def __str__(self) -> str:
        """Return this scope as a :-delimited string."""
        return f'{self.domain}:{self.action}'

    @classmethod
    def parse(cls, scope: str) -> 'Scope':
        """Parse a :-delimited scope string."""
        domain, _, action = scope.partition(':')
        return cls(domain, action)

    class domains:
        """Known authorization domains."""

        PROFILE = 'profile'
        """Site user profile."""
        EMAIL = 'email'
        """The e-mail address of a user."""
        ADMIN = 'admin'
        """Administrative information."""
        APPS = 'apps'
        """Registered third-party applications."""
        APIKEYS = 'apikeys'
        """Personal API keys."""
        DOWNLOADS = 'downloads'
        """Download tracking."""

    class actions:
        """Known authorization actions."""

        READ = 'read'
        UPDATE = 'update'
        CREATE = 'create'
        MANAGE = 'manage'
        EXTENDED = 'extended'


class Authorizations(NamedTuple):
    """Authorization information, e.g. associated with a :class:`.Session`."""

    scopes: List[Scope] = []
    """Authorized :class:`.Scope`s. See also :mod:`equators.auth.scopes`."""

    @classmethod
    def before_init(cls, data: dict) -> None:
        """Make sure that scopes are :class:`.Scope` instances."""
        if 'scopes' in data:
            if type(data['scopes']) is str:
                data['scopes'] = [Scope.parse(scope) for scope
                                  in data['scopes'].split()]
            elif type(data['scopes']) is list:
                data['scopes'] = [
                    Scope(**scope) if type(scope) is dict
                    else Scope.parse(scope) if type(scope) is str
                    else Scope(*scope)
                    for scope in data['scopes']
                ]


class Preferences(NamedTuple):
    """Site preferences for a user."""

    THEMES = ('dark', 'light', 'system')
    VISIBILITIES = ('public', 'private')

    theme: str = 'dark'
    """Must be one of :attr:`Preferences.THEMES`."""

    newsletter: bool = False
    notifications: bool = True
    security_alerts: bool = True
    login_alerts: bool = True
    two_factor_enabled: bool = False

    profile_visibility: str = 'public'
    """Must be one of :attr:`Preferences.VISIBILITIES`."""

    show_email: bool = False
    show_activity: bool = True


class UserProfile(NamedTuple):
    """Public-facing profile data."""

    display_name: Optional[str] = None
    bio: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    avatar: Optional[str] = None
    """URL of the user's avatar image."""

    social: Optional[Dict[str, str]] = None
    """Social network handles or URLs, keyed by network name."""


class User(NamedTuple):
    """Represents a site user."""

    ROLES = ('user', 'admin')

    username: str
    """Slug-like username."""

    email: str
    """The user's primary e-mail address."""

    user_id: Optional[str] = None
    """Unique identifier for the user. If ``None``, the user does not exist."""

    name: Optional[str] = None
    """The user's full name (if available)."""

    role: str = 'user'
    """Must be one of :attr:`User.ROLES`."""

    email_verified: bool = False
    is_active: bool = True
    created: Optional[datetime] = None
    last_login: Optional[datetime] = None

    profile: Optional[UserProfile] = None
    """The user's profile (if loaded)."""

    preferences: Optional[Preferences] = None
    """The user's preferences (if loaded)."""

    @property
    def is_admin(self) -> bool:
        """Whether the user has the admin role."""
        return self.role == 'admin'


class UserStats(NamedTuple):
    """Summary of account activity."""

    total_logins: int = 0
    total_downloads: int = 0
    active_sessions: int = 0
    api_keys: int = 0


class LoginEvent(NamedTuple):
    """A successful login."""

    timestamp: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    method: str = 'password'


class DownloadLog(NamedTuple):
    """A download of a product or project file by a user."""

    product_id: str
    product_name: str
    downloaded_at: datetime
    file_size: Optional[int] = None
    version: Optional[str] = None
    user_id: Optional[str] = None
    log_id: Optional[str] = None


class APIKey(NamedTuple):
    """A personal API key. Only the hash of the key itself is kept."""

    PERMISSIONS = ('read', 'write', 'delete', 'admin')

    key_id: str
    name: str
    key_hash: str
    permissions: List[str]
    created: datetime
    expires: Optional[datetime] = None
    is_active: bool = True
    user_id: Optional[str] = None


class Client(NamedTuple):
    """A third-party application registered by a site user."""

    STATUSES = ('active', 'pending', 'revoked', 'suspended')

    owner_id: str
    """The site user responsible for the client."""

    client_id: Optional[str] = None
    """Unique identifier for a :class:`.Client`."""

    name: Optional[str] = None
    """Human-friendly name of the client."""

    url: Optional[str] = None
    """Homepage or other resource describing the client."""

    description: Optional[str] = None
    """Brief description of the client."""

    redirect_uris: List[str] = []
    """The authorized redirect URIs for the client."""

    status: str = 'active'
    """Must be one of :attr:`Client.STATUSES`."""

    auto_approve: bool = False
    """If ``True``, users are not asked to consent to authorization."""

    require_pkce: bool = False
    """If ``True``, the client must use PKCE and may omit its secret."""

    created: Optional[datetime] = None


class ClientCredential(NamedTuple):
    """Key-pair for API client authentication."""

    client_secret: str
    """Hashed secret key for API client authentication."""

    client_id: Optional[str] = None
    """Public identifier for the API client."""


class ClientAuthorization(NamedTuple):
    """A specific authorization for a :class:`Client`."""

    scope: str
    """The specific scope being granted."""

    requested: datetime
    """The date/time when the scope was requested."""

    authorization_id: Optional[str] = None
    """Unique identifier for the scope authorization."""

    client_id: Optional[str] = None
    """The client to which this authorization applies."""

    authorized: Optional[datetime] = None
    """The date/time when the scope was authorized."""


class ClientGrantType(NamedTuple):
    """A grant type for which a client is authorized."""

    AUTHORIZATION_CODE = 'authorization_code'
    REFRESH_TOKEN = 'refresh_token'
    GRANT_TYPES = (
        AUTHORIZATION_CODE,
        REFRESH_TOKEN,
    )

    grant_type: str
    """Must be one of :attr:`.GRANT_TYPES`."""

    requested: datetime
    """The date/time when the grant type was requested."""

    grant_type_id: Optional[str] = None
    """Unique identifier for grant type authorization."""

    client_id: Optional[str] = None
    """The client to which this authorization applies."""

    authorized: Optional[datetime] = None
    """The date/time when the grant type was authorized."""


class ClientStats(NamedTuple):
    """Token statistics for a :class:`Client`."""

    total_tokens_issued: int = 0
    active_tokens: int = 0


class AuthorizationCode(NamedTuple):
    """An authorization code granted by a user to an API client."""

    user_id: str
    """The unique identifier of the user granting the authorization."""

    client_id: str
    """The unique identifier of the API client."""

    redirect_uri: str
    """The URI to which the user should be redirected."""

    scope: str
    """The scope authorized by the user."""

    code: str
    """The authorization code itself."""

    created: datetime
    """The time when the auth code was generated."""

    expires: datetime
    """The time when the auth code expires."""

    code_challenge: Optional[str] = None
    """PKCE code challenge sent with the authorization request."""

    code_challenge_method: Optional[str] = None
    """PKCE code challenge method (``plain`` or ``S256``)."""

    @property
    def is_expired(self) -> bool:
        """Expired if the current time is later than :attr:`.expires`."""
        return self.expires <= utcnow()


class Token(NamedTuple):
    """An access/refresh token pair issued to an API client."""

    access_token: str
    client_id: str
    user_id: str
    scope: str
    issued: datetime
    expires: datetime
    refresh_token: Optional[str] = None
    refresh_expires: Optional[datetime] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[str] = None
    last_used: Optional[datetime] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_expired(self) -> bool:
        """The access token may no longer be used."""
        return self.expires <= utcnow()

    @property
    def is_refresh_expired(self) -> bool:
        """The refresh token may no longer be used."""
        if self.refresh_expires is None:
            return True
        return self.refresh_expires <= utcnow()

    @property
    def expires_in(self) -> int:
        """Lifetime of the access token in seconds, from issue time."""
        return int((self.expires - self.issued).total_seconds())


class Project(NamedTuple):
    """A downloadable project in the site portfolio."""

    title: str
    description: str
    category: str
    owner_id: str
    project_id: Optional[str] = None
    tech_stack: List[str] = []
    filename: Optional[str] = None
    """Name of the stored file in the upload folder."""

    original_name: Optional[str] = None
    """Name of the file as uploaded; used for the download."""

    file_size: Optional[int] = None
    version: Optional[str] = None
    downloads: int = 0
    status: str = 'active'
    created: Optional[datetime] = None


class Session(NamedTuple):
    """Represents an authenticated session on the site."""

    session_id: str
    """Unique identifier for the session."""

    start_time: datetime
    """The ISO-8601 datetime when the session was created."""

    user: Optional[User] = None
    """The user for which the session was created."""

    client: Optional[Client] = None
    """The client for which the session was created."""

    end_time: Optional[datetime] = None
    """The ISO-8601 datetime when the session ended."""

    authorizations: Optional[Authorizations] = None
    """Authorizations for the current session."""

    ip_address: Optional[str] = None
    """The IP address of the client for which the session was created."""

    remote_host: Optional[str] = None
    """The hostname of the client for which the session was created."""

    user_agent: Optional[str] = None
    """The user agent that opened the session."""

    nonce: Optional[str] = None
    """A random nonce generated when the session was created."""

    @property
    def expired(self) -> bool:
        """Expired if the current time is later than :attr:`.end_time`."""
        return bool(self.end_time is not None
                    and datetime.now(tz=UTC) >= self.end_time)

    @property
    def expires(self) -> Optional[int]:
        """
        Number of seconds until the session expires.

        If the session is already expired, returns 0.
        """
        if self.end_time is None:
            return None
        duration = (self.end_time - datetime.now(tz=UTC)).total_seconds()
        return int(max(duration, 0))


# Helpers and private functions.


def to_dict(obj: tuple) -> dict:
    """
    Generate a dict representation of a NamedTuple instance.

    This just uses the built-in ``_asdict`` method on the intance, but also
    calls this on any child NamedTuple instances (recursively) so that the
    entire tree is cast to ``dict``.

    Parameters
    ----------
    obj : tuple
        A NamedTuple instance.

    Returns
    -------
    dict

    """
    if not hasattr(obj, '_asdict'):  # NamedTuple-generated classes have this.
        return {}
    data = obj._asdict()  # type: ignore
    _data = {}

    def _cast(obj: Any) -> Any:
        if isinstance(obj, Scope):
            obj = str(obj)
        elif hasattr(obj, '_asdict'):
            obj = to_dict(obj)
        elif isinstance(obj, datetime):
            obj = obj.isoformat()
        elif isinstance(obj, list):
            obj = [_cast(o) for o in obj]
        return obj

    for key, value in data.items():
        _data[key] = _cast(value)
    return _data


def from_dict(cls: type, data: dict) -> Any:
    """
    Generate a NamedTuple instance from a dict, with recursion.

    This is the inverse of :func:`to_dict`.

    Parameters
    ----------
    cls: type
        Any NamedTuple class.

    data: dict
        Data with which to instantiate ``cls`` and its children.

    Returns
    -------
    NamedTuple
        An instance of ``cls``.
    """
    _data = {}
    for field, field_type in get_type_hints(cls).items():
        if field not in cls._fields:    # type: ignore
            continue
        if field not in data:
            continue
        value = data[field]
        target_type = _get_cast_type(field_type, value)
        if target_type:
            value = target_type(value)
        _data[field] = value
    if hasattr(cls, 'before_init'):
        cls.before_init(_data)
    return cls(**_data)


def _is_a_namedtuple(field_type: Any) -> bool:
    """Determine whether or not a field type is a NamedTuple class."""
    return isinstance(field_type, type) and hasattr(field_type, '_fields')


def _candidate_types(field_type: Any) -> tuple:
    """Unpack ``Optional[X]``/``Union[X, Y]`` into its member types."""
    if get_origin(field_type) is Union:
        return get_args(field_type)
    return (field_type,)


def _get_cast_type(field_type: Any, value: Any) -> Optional[Callable]:
    """Get a casting callable for a field type/value."""
    candidates = _candidate_types(field_type)
    if type(value) is dict:
        for s_type in candidates:
            if _is_a_namedtuple(s_type):
                return partial(from_dict, s_type)
    if type(value) is str and datetime in candidates:
        return dateutil.parser.parse
    return None
