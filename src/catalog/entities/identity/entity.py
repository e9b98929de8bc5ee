"""Identity domain entity."""

from typing import Any

from pydantic import Field

from src.catalog.entities._base import Entity


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()


def username_from_email(email: str) -> str:
    return normalize_email(email).split("@", 1)[0]


class Identity(Entity):
    """The canonical local account.

    ``external_id`` links the account to an identity provider subject. Once
    set it is never cleared or reassigned. ``username`` is derived from the
    email local-part when the account is created and never changes afterward.
    """

    external_id: str | None = Field(
        default=None, description="Subject id issued by the identity provider"
    )
    email: str = Field(description="Case-normalized email address")
    username: str = Field(description="Email local-part captured at creation")
    display_name: str | None = Field(default=None, description="Presentation name")
    avatar_url: str | None = Field(default=None, description="Presentation avatar")

    def __eq__(self, other: Any) -> bool:
        """Compare identities by business attributes, ignoring timestamps."""
        if not isinstance(other, Identity):
            return False

        return (
            self.id == other.id
            and self.external_id == other.external_id
            and self.email == other.email
            and self.username == other.username
            and self.display_name == other.display_name
            and self.avatar_url == other.avatar_url
        )

    def __hash__(self) -> int:
        return hash((self.id, self.external_id, self.email, self.username))
