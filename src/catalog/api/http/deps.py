"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from fastapi import Depends, Request
from loguru import logger
from sqlmodel import Session

from src.catalog.api.http.app_data import ApplicationDependencies
from src.catalog.core.errors import StorageUnavailable
from src.catalog.core.models.identity import CurrentUser
from src.catalog.core.services.auth_gate import AuthGate, Credentials
from src.catalog.core.services.credential_provider import CredentialProviderRegistry
from src.catalog.core.services.identity.identity_resolver import IdentityResolver
from src.catalog.core.services.session.auth_session import AuthSessionService
from src.catalog.core.services.session.session_codec import SessionCodec
from src.catalog.core.services.session.user_session import UserSessionService
from src.catalog.entities.identity import IdentityRepository
from src.catalog.runtime.config.config_data import ConfigData


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_app_config(request: Request) -> ConfigData:
    """Get the configuration the application was started with."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.config


def get_db_session(request: Request) -> Iterator[Session]:
    """Get a database session scoped to the request."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    session = app_deps.database_service.get_session()
    try:
        yield session
    finally:
        session.close()


def get_user_session_service(request: Request) -> UserSessionService:
    """Get the User Session service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.user_session_service


def get_auth_session_service(request: Request) -> AuthSessionService:
    """Get the Auth Session service instance."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.auth_session_service


def get_provider_registry(request: Request) -> CredentialProviderRegistry:
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    return app_deps.provider_registry


def get_identity_resolver(db: Session = Depends(get_db_session)) -> IdentityResolver:
    return IdentityResolver.for_session(db)


def get_session_codec(
    db: Session = Depends(get_db_session),
    config: ConfigData = Depends(get_app_config),
) -> SessionCodec:
    return SessionCodec(IdentityRepository(db), config.auth.degraded_session_decode)


def login_url(config: ConfigData) -> str:
    return f"/auth/{config.auth.default_provider}"


def get_auth_gate(
    config: ConfigData = Depends(get_app_config),
    user_session_service: UserSessionService = Depends(get_user_session_service),
    codec: SessionCodec = Depends(get_session_codec),
) -> AuthGate:
    return AuthGate(
        user_session_service,
        codec,
        bypass_token=config.auth.bypass_token,
        login_url=login_url(config),
    )


def read_credentials(
    request: Request, config: ConfigData = Depends(get_app_config)
) -> Credentials:
    """Collect the bypass token (header, then query) and the session cookie."""
    bypass_token = request.headers.get(config.auth.bypass_header)
    if bypass_token is None:
        bypass_token = request.query_params.get(config.auth.bypass_query_param)
    return Credentials(
        bypass_token=bypass_token,
        session_id=request.cookies.get(config.app.session_cookie_name),
    )


async def get_optional_user(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
    credentials: Credentials = Depends(read_credentials),
) -> CurrentUser | None:
    """Identify the caller without requiring authentication."""
    user = await gate.identify(credentials)
    request.state.current_user = user
    return user


@dataclass(frozen=True)
class CallerStatus:
    """Caller identity for endpoints that report state instead of enforcing it."""

    user: CurrentUser | None
    degraded: bool = False


async def get_caller_status(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
    credentials: Credentials = Depends(read_credentials),
) -> CallerStatus:
    """Identify the caller; a storage outage reads as anonymous and degraded."""
    try:
        user = await gate.identify(credentials)
    except StorageUnavailable as e:
        logger.warning("Caller identification skipped: {}", e.message)
        request.state.current_user = None
        return CallerStatus(user=None, degraded=True)

    request.state.current_user = user
    return CallerStatus(user=user)


async def require_auth(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
    credentials: Credentials = Depends(read_credentials),
) -> CurrentUser:
    """Guard for protected routes.

    Raises:
        Unauthenticated: rendered as 401 with a login URL
    """
    user = await gate.require(credentials)
    request.state.current_user = user
    return user
