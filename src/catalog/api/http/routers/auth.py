"""Browser login endpoints: provider redirect, callback, session status, logout."""

from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool

from src.catalog.api.http.deps import (
    CallerStatus,
    get_app_config,
    get_auth_session_service,
    get_caller_status,
    get_identity_resolver,
    get_optional_user,
    get_provider_registry,
    get_user_session_service,
    require_auth,
)
from src.catalog.core.errors import AssertionInvalid, ConflictingLink, ProviderUnavailable
from src.catalog.core.models.identity import CurrentUser
from src.catalog.core.services.credential_provider import (
    CredentialProvider,
    CredentialProviderRegistry,
)
from src.catalog.core.services.identity.identity_resolver import IdentityResolver
from src.catalog.core.services.session.auth_session import AuthSessionService
from src.catalog.core.services.session.user_session import UserSessionService
from src.catalog.runtime.config.config_data import ConfigData

router = APIRouter(prefix="/auth", tags=["auth"])

AUTH_SESSION_COOKIE = "auth_session_id"

FAILURE_MESSAGES = {
    "assertion_invalid": "The identity provider did not confirm your login",
    "conflicting_link": "This login is linked to a different account",
    "invalid_state": "Login attempt expired or was not started here",
    "login_failed": "Authentication failed",
    "provider_misconfigured": "Login is misconfigured on this server",
    "provider_unavailable": "The identity provider is unavailable",
    "unauthenticated": "No active session",
}

FAILURE_STATUS = {
    "conflicting_link": status.HTTP_409_CONFLICT,
    "provider_misconfigured": status.HTTP_503_SERVICE_UNAVAILABLE,
    "provider_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _get_secure_cookie_settings(config: ConfigData) -> dict[str, Any]:
    """Cookie flags for session cookies.

    SameSite=Lax still allows the top-level GET navigation of the provider
    callback.
    """
    return {
        "httponly": True,
        "secure": config.app.environment == "production",
        "samesite": "lax",
        "path": "/",
    }


def _failure_redirect(config: ConfigData, reason: str) -> RedirectResponse:
    url = f"{config.auth.failure_path}?{urlencode({'reason': reason})}"
    response = RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    return response


def _get_provider(
    registry: CredentialProviderRegistry, provider: str
) -> CredentialProvider:
    credential_provider = registry.get(provider)
    if credential_provider is None:
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")
    return credential_provider


# Fixed paths are registered before "/{provider}" so they are not taken for
# provider names.


@router.get("/status")
async def auth_status(
    caller: CallerStatus = Depends(get_caller_status),
    registry: CredentialProviderRegistry = Depends(get_provider_registry),
    config: ConfigData = Depends(get_app_config),
) -> dict[str, Any]:
    """Report whether the caller is logged in."""
    user = caller.user
    return {
        "success": True,
        "authenticated": user is not None,
        "degraded": caller.degraded,
        "user": user.public_view() if user else None,
        "oauthConfigured": registry.oauth_configured,
        "environment": config.app.environment,
    }


@router.get("/success", response_model=None)
async def login_success(
    user: CurrentUser | None = Depends(get_optional_user),
    config: ConfigData = Depends(get_app_config),
) -> dict[str, Any] | RedirectResponse:
    if user is None:
        return _failure_redirect(config, "unauthenticated")

    return {
        "success": True,
        "message": "Authentication successful",
        "user": user.public_view(),
        "authenticated": True,
        "endpoints": {
            "Check Auth Status": "/auth/status",
            "Logout": "/auth/logout",
        },
    }


@router.get("/failure")
async def login_failure(reason: str = "login_failed") -> JSONResponse:
    if reason not in FAILURE_MESSAGES:
        reason = "login_failed"
    return JSONResponse(
        status_code=FAILURE_STATUS.get(reason, status.HTTP_401_UNAUTHORIZED),
        content={
            "success": False,
            "message": FAILURE_MESSAGES[reason],
            "reason": reason,
        },
    )


@router.api_route("/logout", methods=["GET", "POST"])
async def logout(
    request: Request,
    response: Response,
    user_session_service: UserSessionService = Depends(get_user_session_service),
    config: ConfigData = Depends(get_app_config),
) -> dict[str, Any]:
    """Destroy the current session. Succeeds even without one."""
    session_id = request.cookies.get(config.app.session_cookie_name)
    response.delete_cookie(config.app.session_cookie_name, path="/")

    if not session_id:
        return {"success": True, "message": "No active session to logout from"}

    await user_session_service.destroy(session_id)
    logger.info("Session {}... logged out", session_id[:8])
    return {
        "success": True,
        "message": "Successfully logged out",
        "authenticated": False,
    }


@router.get("/me")
async def current_user(user: CurrentUser = Depends(require_auth)) -> dict[str, Any]:
    return {
        "success": True,
        "user": user.public_view(),
        "authMethod": user.auth_method,
    }


@router.get("/{provider}")
async def begin_login(
    provider: str,
    registry: CredentialProviderRegistry = Depends(get_provider_registry),
    auth_session_service: AuthSessionService = Depends(get_auth_session_service),
    config: ConfigData = Depends(get_app_config),
) -> RedirectResponse:
    """Send the browser to the identity provider.

    Raises ProviderUnavailable (503) when the provider is not configured.
    """
    credential_provider = _get_provider(registry, provider)
    login_redirect = await credential_provider.begin_login()

    auth_session_id = await auth_session_service.create_auth_session(
        provider=provider,
        state=login_redirect.state,
        code_verifier=login_redirect.code_verifier,
    )

    response = RedirectResponse(url=login_redirect.url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        key=AUTH_SESSION_COOKIE,
        value=auth_session_id,
        max_age=config.auth.auth_session_ttl_seconds,
        **_get_secure_cookie_settings(config),
    )
    return response


@router.get("/{provider}/callback")
async def handle_callback(
    request: Request,
    provider: str,
    registry: CredentialProviderRegistry = Depends(get_provider_registry),
    auth_session_service: AuthSessionService = Depends(get_auth_session_service),
    user_session_service: UserSessionService = Depends(get_user_session_service),
    resolver: IdentityResolver = Depends(get_identity_resolver),
    config: ConfigData = Depends(get_app_config),
) -> RedirectResponse:
    """Finish the provider handshake and start a session.

    Login failures redirect to the failure endpoint with a short reason.
    """
    credential_provider = _get_provider(registry, provider)

    # Avoid logging state/code values
    logger.debug("Callback received for {} login", provider)

    auth_session = await auth_session_service.consume_auth_session(
        request.cookies.get(AUTH_SESSION_COOKIE),
        provider,
        request.query_params.get("state"),
    )
    if auth_session is None:
        return _failure_redirect(config, "invalid_state")

    try:
        assertion = await credential_provider.complete_login(
            dict(request.query_params), auth_session.code_verifier
        )
        identity = await run_in_threadpool(resolver.resolve, assertion)
    except (AssertionInvalid, ConflictingLink, ProviderUnavailable) as e:
        logger.bind(reason=e.code).warning("Login with {} failed: {}", provider, e.message)
        return _failure_redirect(config, e.code)

    session_id = await user_session_service.establish(
        identity, request.cookies.get(config.app.session_cookie_name)
    )
    logger.info("Identity {} logged in via {}", identity.id, provider)

    response = RedirectResponse(
        url=config.auth.success_path, status_code=status.HTTP_302_FOUND
    )
    response.set_cookie(
        key=config.app.session_cookie_name,
        value=session_id,
        max_age=config.app.session_max_age,
        **_get_secure_cookie_settings(config),
    )
    response.delete_cookie(AUTH_SESSION_COOKIE, path="/")
    return response


