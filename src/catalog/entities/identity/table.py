"""Identity database table model."""

from sqlalchemy import Column, String
from sqlmodel import Field

from src.catalog.entities._base import EntityTable


class IdentityTable(EntityTable, table=True):
    """Database persistence model for identities.

    The unique constraints on ``email`` and ``external_id`` are the only
    concurrency control for account creation and linking.
    """

    __tablename__ = "identity"

    external_id: str | None = Field(
        default=None,
        sa_column=Column(String(255), nullable=True, unique=True, index=True),
    )
    email: str = Field(
        sa_column=Column(String(320), nullable=False, unique=True, index=True)
    )
    username: str = Field(sa_column=Column(String(320), nullable=False))
    display_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = Field(default=None, max_length=2048)
