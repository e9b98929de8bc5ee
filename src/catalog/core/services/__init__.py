"""Core services exports."""

from src.catalog.core.storage.session_storage import (
    InMemorySessionStorage,
    RedisSessionStorage,
)

from .auth_gate import AuthGate, Credentials
from .credential_provider import (
    CredentialProvider,
    CredentialProviderRegistry,
    LoginRedirect,
    ProviderSettings,
)
from .database.db_manage import DbManageService
from .database.db_session import DbSessionService
from .identity.identity_resolver import IdentityResolver
from .session.auth_session import AuthSessionService
from .session.session_codec import SessionCodec
from .session.user_session import UserSessionService

__all__ = [
    # Authentication
    "AuthGate",
    "Credentials",
    "CredentialProvider",
    "CredentialProviderRegistry",
    "LoginRedirect",
    "ProviderSettings",
    # Identity
    "IdentityResolver",
    # Session Services
    "AuthSessionService",
    "SessionCodec",
    "UserSessionService",
    # Session Storage
    "InMemorySessionStorage",
    "RedisSessionStorage",
    # Database
    "DbManageService",
    "DbSessionService",
]
