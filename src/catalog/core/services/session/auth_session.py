from loguru import logger

from src.catalog.core.models.session import AuthSession
from src.catalog.core.security import generate_session_id, tokens_match
from src.catalog.core.storage.session_storage import SessionStorage


def auth_session_key(session_id: str) -> str:
    return f"auth:{session_id}"


class AuthSessionService:
    """Stores the state and PKCE verifier of in-flight login attempts."""

    def __init__(self, session_storage: SessionStorage, ttl_seconds: int = 600) -> None:
        self._storage = session_storage
        self._ttl_seconds = ttl_seconds

    async def create_auth_session(
        self, provider: str, state: str, code_verifier: str
    ) -> str:
        """Create auth session for one authorization attempt.

        Returns:
            Session ID
        """
        auth_session = AuthSession.create(
            session_id=generate_session_id(),
            provider=provider,
            state=state,
            code_verifier=code_verifier,
            ttl_seconds=self._ttl_seconds,
        )
        await self._storage.set(
            auth_session_key(auth_session.id), auth_session, self._ttl_seconds
        )
        return auth_session.id

    async def consume_auth_session(
        self, session_id: str | None, provider: str, state: str | None
    ) -> AuthSession | None:
        """Validate and remove an auth session.

        The record is deleted whether or not validation succeeds, so each
        authorization attempt can be completed at most once.

        Returns:
            The auth session, or None if missing, expired, issued for another
            provider, or the state does not match
        """
        if not session_id:
            return None

        auth_session = await self._storage.get(auth_session_key(session_id), AuthSession)
        await self._storage.delete(auth_session_key(session_id))

        if auth_session is None or auth_session.is_expired():
            return None

        if auth_session.provider != provider:
            logger.warning("Auth session was issued for provider {}", auth_session.provider)
            return None

        if not tokens_match(state, auth_session.state):
            logger.warning("State mismatch on {} callback", provider)
            return None

        return auth_session
