"""Identity data access layer."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from loguru import logger
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, col, select

from src.catalog.core.errors import DuplicateIdentityError, StorageUnavailable
from src.catalog.entities._base import utc_now
from src.catalog.entities.identity.entity import Identity, normalize_email
from src.catalog.entities.identity.table import IdentityTable

# Fields a login may refresh on an existing identity.
MUTABLE_FIELDS = frozenset({"display_name", "avatar_url"})


class IdentityRepository:
    """Data-access layer for identities.

    Every write commits its own transaction. Uniqueness violations surface as
    ``DuplicateIdentityError`` and connectivity failures as
    ``StorageUnavailable``; the session is rolled back in both cases so it can
    be reused for a re-read.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @contextmanager
    def _storage_errors(self) -> Iterator[None]:
        try:
            yield
        except IntegrityError as e:
            self._session.rollback()
            raise DuplicateIdentityError(str(e.orig)) from e
        except OperationalError as e:
            self._session.rollback()
            logger.bind(error_type=type(e.orig).__name__).error(
                "Identity storage error: {}", e.orig
            )
            raise StorageUnavailable("Identity storage unavailable") from e

    def _first(self, statement) -> Identity | None:
        with self._storage_errors():
            row = self._session.exec(
                statement.execution_options(populate_existing=True)
            ).first()
        if row is None:
            return None
        return Identity.model_validate(row, from_attributes=True)

    def get(self, identity_id: str) -> Identity | None:
        return self._first(select(IdentityTable).where(IdentityTable.id == identity_id))

    def find_by_external_id(self, external_id: str) -> Identity | None:
        return self._first(
            select(IdentityTable).where(IdentityTable.external_id == external_id)
        )

    def find_by_email(self, email: str) -> Identity | None:
        return self._first(
            select(IdentityTable).where(IdentityTable.email == normalize_email(email))
        )

    def insert(self, identity: Identity) -> Identity:
        """Persist a new identity.

        Raises:
            DuplicateIdentityError: email or external id already taken
        """
        row = IdentityTable.model_validate(
            identity.model_dump() | {"email": normalize_email(identity.email)}
        )
        with self._storage_errors():
            self._session.add(row)
            self._session.commit()
            self._session.refresh(row)
        return Identity.model_validate(row, from_attributes=True)

    def update_fields(self, identity_id: str, **fields: Any) -> Identity | None:
        """Update presentation fields of an existing identity."""
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        statement = (
            update(IdentityTable)
            .where(col(IdentityTable.id) == identity_id)
            .values(**fields, updated_at=utc_now())
        )
        with self._storage_errors():
            self._session.connection().execute(statement)
            self._session.commit()
        return self.get(identity_id)

    def link_external_id(
        self, identity_id: str, external_id: str, **fields: Any
    ) -> bool:
        """Attach ``external_id`` to an identity that has none yet.

        The update is conditional on the identity still being unlinked, so a
        concurrent link wins at most once.

        Returns:
            True if this call performed the link, False if the identity was
            linked (or removed) by someone else in the meantime.

        Raises:
            DuplicateIdentityError: ``external_id`` is already linked elsewhere
        """
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        statement = (
            update(IdentityTable)
            .where(col(IdentityTable.id) == identity_id)
            .where(col(IdentityTable.external_id).is_(None))
            .values(external_id=external_id, updated_at=utc_now(), **fields)
        )
        with self._storage_errors():
            result = self._session.connection().execute(statement)
            self._session.commit()
        return result.rowcount == 1
