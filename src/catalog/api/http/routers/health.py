"""Health check endpoints for monitoring service availability."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends
from starlette.responses import JSONResponse

from src.catalog.api.http.app_data import ApplicationDependencies
from src.catalog.api.http.deps import (
    CallerStatus,
    get_app_dependencies,
    get_caller_status,
)
from src.catalog.core.storage.session_storage import RedisSessionStorage

router = APIRouter(prefix="/health", tags=["health"])


def _session_store_type(app_deps: ApplicationDependencies) -> str:
    if isinstance(app_deps.session_storage, RedisSessionStorage):
        return "redis"
    return "in-memory"


@router.get("")
async def health(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
    caller: CallerStatus = Depends(get_caller_status),
) -> dict[str, Any]:
    """Liveness check; reports dependency state but always answers 200."""
    db_healthy = app_deps.database_service.health_check()
    return {
        "status": "OK",
        "timestamp": datetime.now(UTC).isoformat(),
        "database": "Connected" if db_healthy else "Disconnected",
        "sessionStore": _session_store_type(app_deps),
        "authenticated": caller.user is not None,
        "degraded": caller.degraded,
        "oauthConfigured": app_deps.provider_registry.oauth_configured,
        "environment": app_deps.config.app.environment,
    }


@router.get("/ready", response_model=None)
async def readiness(
    app_deps: ApplicationDependencies = Depends(get_app_dependencies),
) -> dict[str, Any] | JSONResponse:
    """Readiness check: 503 when the identity store is unreachable.

    A session store outage is not fatal for readiness; it is reported as
    degraded.
    """
    checks: dict[str, Any] = {}

    db_healthy = app_deps.database_service.health_check()
    checks["database"] = {"status": "healthy" if db_healthy else "unhealthy"}

    storage = app_deps.session_storage
    if isinstance(storage, RedisSessionStorage):
        store_healthy = await storage.ping()
    else:
        store_healthy = storage.is_available()
    checks["session_store"] = {
        "status": "healthy" if store_healthy else "degraded",
        "type": _session_store_type(app_deps),
    }

    checks["providers"] = {
        name: {"status": "enabled" if provider.enabled else "disabled"}
        for name in app_deps.provider_registry.names()
        if (provider := app_deps.provider_registry.get(name)) is not None
    }

    response = {
        "status": "ready" if db_healthy else "not_ready",
        "environment": app_deps.config.app.environment,
        "checks": checks,
    }
    if not db_healthy:
        return JSONResponse(status_code=503, content=response)
    return response
