from dataclasses import dataclass

from loguru import logger
from starlette.concurrency import run_in_threadpool

from src.catalog.core.errors import Unauthenticated
from src.catalog.core.models.identity import CurrentUser, bypass_user
from src.catalog.core.security import tokens_match
from src.catalog.core.services.session.session_codec import SessionCodec
from src.catalog.core.services.session.user_session import UserSessionService


@dataclass(frozen=True)
class Credentials:
    """What a request presented: a bypass token and/or a session id."""

    bypass_token: str | None = None
    session_id: str | None = None


class AuthGate:
    """Decides who is calling a protected operation.

    The bypass token is checked first, then the session. The gate only reads:
    it never refreshes, extends, or rewrites a session.
    """

    def __init__(
        self,
        user_session_service: UserSessionService,
        codec: SessionCodec,
        bypass_token: str | None,
        login_url: str,
    ) -> None:
        self._sessions = user_session_service
        self._codec = codec
        self._bypass_token = bypass_token
        self._login_url = login_url

    async def identify(self, credentials: Credentials) -> CurrentUser | None:
        """Resolve the caller, or None if nothing presented is valid."""
        if credentials.bypass_token is not None:
            if tokens_match(credentials.bypass_token, self._bypass_token):
                logger.debug("Request authenticated via bypass token")
                return bypass_user()
            logger.debug("Ignoring invalid bypass token")

        payload = await self._sessions.read(credentials.session_id)
        if payload is None:
            return None

        user = await run_in_threadpool(self._codec.decode, payload)
        if user is not None:
            logger.debug(
                "Request authenticated via session {}...", credentials.session_id[:8]
            )
        return user

    async def require(self, credentials: Credentials) -> CurrentUser:
        """Like ``identify`` but rejects anonymous callers.

        Raises:
            Unauthenticated: with a login URL hint
        """
        user = await self.identify(credentials)
        if user is None:
            raise Unauthenticated(login_url=self._login_url)
        return user
