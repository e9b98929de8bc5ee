from src.catalog.core.models.session import SessionPayload
from src.catalog.core.security import generate_session_id
from src.catalog.core.services.session.session_codec import SessionCodec
from src.catalog.core.storage.session_storage import SessionStorage
from src.catalog.entities.identity import Identity


def session_key(session_id: str) -> str:
    return f"session:{session_id}"


class UserSessionService:
    """Service for managing logged-in user sessions."""

    def __init__(self, session_storage: SessionStorage, session_max_age: int) -> None:
        self._storage = session_storage
        self._session_max_age = session_max_age

    async def establish(
        self, identity: Identity, previous_session_id: str | None = None
    ) -> str:
        """Start a session for ``identity`` under a fresh session id.

        Any session the client held before login is destroyed so a session id
        planted before authentication can never become an authenticated one.

        Returns:
            New session ID
        """
        session_id = generate_session_id()
        await self._storage.set(
            session_key(session_id),
            SessionCodec.encode(identity),
            self._session_max_age,
        )
        if previous_session_id:
            await self.destroy(previous_session_id)
        return session_id

    async def read(self, session_id: str | None) -> SessionPayload | None:
        """Get the payload stored for a session, or None if absent/expired."""
        if not session_id:
            return None
        return await self._storage.get(session_key(session_id), SessionPayload)

    async def destroy(self, session_id: str | None) -> None:
        """Delete a session. Unknown or missing ids are ignored."""
        if not session_id:
            return
        await self._storage.delete(session_key(session_id))

    async def purge_expired(self) -> int:
        return await self._storage.cleanup_expired()
