"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.catalog.api.http.app_data import ApplicationDependencies, build_dependencies
from src.catalog.api.http.deps import (
    CallerStatus,
    get_app_config,
    get_caller_status,
    login_url,
)
from src.catalog.api.http.routers.auth import router as auth_router
from src.catalog.api.http.routers.health import router as health_router
from src.catalog.api.utils.app_startup import configure_logging
from src.catalog.core.errors import (
    CatalogAuthError,
    ConflictingLink,
    Unauthenticated,
)
from src.catalog.core.services.database.db_manage import DbManageService
from src.catalog.core.services.database.db_session import DbSessionService
from src.catalog.core.storage.session_storage import (
    RedisSessionStorage,
    create_session_storage,
)
from src.catalog.runtime.config.config_data import ConfigData
from src.catalog.runtime.context import get_config


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, environment: str):
        super().__init__(app)
        self._environment = environment

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        # HSTS only in prod
        if self._environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


# --- Request logging middleware ---
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    xff = request.headers.get("x-forwarded-for")
    client_ip = (
        xff.split(",")[0].strip()
        if xff
        else request.client.host
        if request.client
        else "unknown"
    )

    # Query strings may carry the bypass token; they are never logged.
    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    start = time.perf_counter()

    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "message": "Internal Server Error",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )


# --- Error rendering ---
async def catalog_auth_error_handler(
    request: Request, exc: CatalogAuthError
) -> JSONResponse:
    """Render subsystem errors as ``{success: false, ...}`` with their status."""
    if isinstance(exc, Unauthenticated):
        logger.debug("Rejected unauthenticated request to {}", request.url.path)
    elif isinstance(exc, ConflictingLink):
        logger.warning("Conflicting link surfaced: {}", exc.message)
    else:
        logger.bind(code=exc.code).error("{}: {}", type(exc).__name__, exc.message)

    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


# --- Lifecycle hooks ---
async def startup(app: FastAPI) -> None:
    config: ConfigData = app.state.config
    logger.info("Starting up application in {} environment", config.app.environment)

    if getattr(app.state, "app_dependencies", None) is not None:
        logger.info("Application dependencies provided externally")
        return

    session_storage = await create_session_storage(config.redis)
    database_service = DbSessionService(config)
    DbManageService(database_service.engine).create_all()

    deps = build_dependencies(config, session_storage, database_service)
    app.state.app_dependencies = deps

    for name in deps.provider_registry.names():
        provider = deps.provider_registry.get(name)
        if provider is not None and provider.enabled:
            logger.info("OAuth provider '{}' enabled", name)


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    app_dependencies: ApplicationDependencies | None = getattr(
        app.state, "app_dependencies", None
    )
    if app_dependencies is None:
        return

    await app_dependencies.user_session_service.purge_expired()
    if isinstance(app_dependencies.session_storage, RedisSessionStorage):
        await app_dependencies.session_storage.close()
    app_dependencies.database_service.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


def create_app(config: ConfigData | None = None) -> FastAPI:
    """Build the application for ``config`` (the current context by default)."""
    config = config or get_config()
    production = config.app.environment == "production"

    app = FastAPI(
        title="Catalog API",
        lifespan=lifespan,
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
    )
    app.state.config = config

    if production and "*" in config.app.cors.origins:
        raise RuntimeError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    app.add_middleware(SecurityHeadersMiddleware, environment=config.app.environment)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    app.middleware("http")(log_requests)

    app.add_exception_handler(CatalogAuthError, catalog_auth_error_handler)

    app.include_router(auth_router)
    app.include_router(health_router)

    @app.get("/")
    async def index(
        caller: CallerStatus = Depends(get_caller_status),
        app_config: ConfigData = Depends(get_app_config),
    ) -> dict[str, Any]:
        """Service overview."""
        user = caller.user
        return {
            "message": "Catalog API",
            "environment": app_config.app.environment,
            "authenticated": user is not None,
            "degraded": caller.degraded,
            "user": user.public_view() if user else None,
            "endpoints": {
                "Health check": "/health",
                "Authentication Status": "/auth/status",
                "Login": login_url(app_config),
                "Logout": "/auth/logout",
            },
        }

    return app


configure_logging()
app = create_app()

__all__ = ["app", "create_app", "startup", "shutdown"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # Access logging happens in log_requests
    )
