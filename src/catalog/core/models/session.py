"""Session models kept in the session store."""

import time

from pydantic import BaseModel, ConfigDict, Field


class SessionPayload(BaseModel):
    """Minimal record persisted per active login.

    Only the identity id is stored: no profile data, no provider tokens.
    Records carrying anything else are rejected on read.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    identity_id: str = Field(min_length=1, description="Id of the logged-in identity")


class AuthSession(BaseModel):
    """Temporary record for one OAuth authorization attempt."""

    id: str = Field(description="Session identifier")
    provider: str = Field(description="Provider name")
    state: str = Field(description="CSRF state parameter")
    code_verifier: str = Field(description="PKCE code verifier")
    created_at: int = Field(description="Creation timestamp")
    expires_at: int = Field(description="Expiration timestamp")

    @classmethod
    def create(
        cls,
        session_id: str,
        provider: str,
        state: str,
        code_verifier: str,
        ttl_seconds: int = 600,
    ) -> "AuthSession":
        """Create a new auth session with timestamps."""
        now = int(time.time())
        return cls(
            id=session_id,
            provider=provider,
            state=state,
            code_verifier=code_verifier,
            created_at=now,
            expires_at=now + ttl_seconds,
        )

    def is_expired(self) -> bool:
        """Check if session is expired."""
        return time.time() > self.expires_at
