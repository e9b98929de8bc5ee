from dataclasses import dataclass

import httpx

from src.catalog.core.services.credential_provider import CredentialProviderRegistry
from src.catalog.core.services.database.db_session import DbSessionService
from src.catalog.core.services.session.auth_session import AuthSessionService
from src.catalog.core.services.session.user_session import UserSessionService
from src.catalog.core.storage.session_storage import (
    InMemorySessionStorage,
    SessionStorage,
)
from src.catalog.runtime.config.config_data import ConfigData


@dataclass
class ApplicationDependencies:
    config: ConfigData
    database_service: DbSessionService
    session_storage: SessionStorage
    user_session_service: UserSessionService
    auth_session_service: AuthSessionService
    provider_registry: CredentialProviderRegistry


def build_dependencies(
    config: ConfigData,
    session_storage: SessionStorage | None = None,
    database_service: DbSessionService | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ApplicationDependencies:
    """Wire application services from configuration.

    ``transport`` is handed to every provider's HTTP client; tests use it to
    stand in for the identity provider.
    """
    storage = session_storage or InMemorySessionStorage()
    return ApplicationDependencies(
        config=config,
        database_service=database_service or DbSessionService(config),
        session_storage=storage,
        user_session_service=UserSessionService(storage, config.app.session_max_age),
        auth_session_service=AuthSessionService(
            storage, config.auth.auth_session_ttl_seconds
        ),
        provider_registry=CredentialProviderRegistry.from_config(config, transport),
    )
