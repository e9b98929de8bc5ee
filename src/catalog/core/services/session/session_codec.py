from loguru import logger

from src.catalog.core.errors import StorageUnavailable
from src.catalog.core.models.identity import CurrentUser
from src.catalog.core.models.session import SessionPayload
from src.catalog.entities.identity import Identity, IdentityRepository


class SessionCodec:
    """Collapses an identity into a session payload and expands it back.

    Only the identity id is ever written to the session store, so profile
    changes made after login are picked up on the next request.
    """

    def __init__(
        self, repository: IdentityRepository, degraded_decode: bool = True
    ) -> None:
        self._repository = repository
        self._degraded_decode = degraded_decode

    @staticmethod
    def encode(identity: Identity) -> SessionPayload:
        return SessionPayload(identity_id=identity.id)

    def decode(self, payload: SessionPayload) -> CurrentUser | None:
        """Re-fetch the identity a session points at.

        Returns:
            The current user, or None when the identity no longer exists. A
            stale session is not an error.

        Raises:
            StorageUnavailable: the identity store is down and degraded
                decoding is disabled
        """
        try:
            identity = self._repository.get(payload.identity_id)
        except StorageUnavailable:
            if not self._degraded_decode:
                raise
            logger.warning(
                "Identity storage unavailable; using degraded session for {}",
                payload.identity_id,
            )
            return CurrentUser(id=payload.identity_id, degraded=True)

        if identity is None:
            logger.debug("Session points at missing identity {}", payload.identity_id)
            return None

        return CurrentUser(
            id=identity.id,
            display_name=identity.display_name,
            email=identity.email,
        )
