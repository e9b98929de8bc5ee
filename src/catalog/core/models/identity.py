"""Identity-facing value objects: provider assertions and the request user."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

AuthMethod = Literal["session", "bypass_token"]


class Assertion(BaseModel):
    """A provider's normalized claim about who is logging in.

    Valid only for the login attempt that produced it; never persisted as-is.
    """

    model_config = ConfigDict(frozen=True)

    provider: str = Field(description="Provider that issued the assertion")
    external_id: str = Field(min_length=1, description="Provider subject id")
    email: str = Field(min_length=3, description="Email reported by the provider")
    display_name: str | None = Field(default=None, description="Provider display name")
    avatar_url: str | None = Field(default=None, description="Provider avatar URL")


class CurrentUser(BaseModel):
    """The authenticated caller as seen by protected handlers."""

    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str | None = None
    email: str | None = None
    auth_method: AuthMethod = "session"
    synthetic: bool = False
    degraded: bool = False

    def public_view(self) -> dict[str, Any]:
        """JSON shape exposed to clients."""
        return {"id": self.id, "displayName": self.display_name, "email": self.email}


def bypass_user() -> CurrentUser:
    """Fixed, non-persisted identity used by the bypass-token channel."""
    return CurrentUser(
        id="test-user-123",
        display_name="API Test User",
        email="test@example.com",
        auth_method="bypass_token",
        synthetic=True,
    )
