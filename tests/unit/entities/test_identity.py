"""Tests for the identity entity and its repository."""

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from src.catalog.core.errors import DuplicateIdentityError, StorageUnavailable
from src.catalog.entities.identity import (
    Identity,
    IdentityRepository,
    IdentityTable,
    normalize_email,
    username_from_email,
)


def _identity(email: str = "a@x.com", external_id: str | None = None, **kwargs) -> Identity:
    return Identity(
        email=email,
        external_id=external_id,
        username=username_from_email(email),
        **kwargs,
    )


class TestIdentityEntity:
    def test_email_normalization(self):
        assert normalize_email("  Ann.K@Example.COM ") == "ann.k@example.com"

    def test_username_is_email_local_part(self):
        assert username_from_email("Ann.K@Example.com") == "ann.k"

    def test_equality_ignores_timestamps(self):
        first = _identity(display_name="Ann")
        second = first.model_copy(update={"updated_at": first.updated_at.replace(year=2000)})

        assert first == second
        assert hash(first) == hash(second)


class TestIdentityRepository:
    def test_insert_and_lookups(self, identity_repository: IdentityRepository):
        created = identity_repository.insert(_identity("Ann@X.com", external_id="g1"))

        assert created.email == "ann@x.com"
        assert identity_repository.get(created.id) == created
        assert identity_repository.find_by_external_id("g1") == created
        assert identity_repository.find_by_email(" ANN@x.com") == created

    def test_missing_lookups_return_none(self, identity_repository: IdentityRepository):
        assert identity_repository.get("missing") is None
        assert identity_repository.find_by_external_id("missing") is None
        assert identity_repository.find_by_email("missing@x.com") is None

    def test_duplicate_email_is_rejected(self, identity_repository: IdentityRepository):
        identity_repository.insert(_identity("a@x.com"))

        with pytest.raises(DuplicateIdentityError):
            identity_repository.insert(_identity("A@X.com"))

        # The session stays usable after the rollback
        assert identity_repository.find_by_email("a@x.com") is not None

    def test_duplicate_external_id_is_rejected(self, identity_repository: IdentityRepository):
        identity_repository.insert(_identity("a@x.com", external_id="g1"))

        with pytest.raises(DuplicateIdentityError):
            identity_repository.insert(_identity("b@x.com", external_id="g1"))

    def test_many_identities_without_external_id(
        self, identity_repository: IdentityRepository, session: Session
    ):
        identity_repository.insert(_identity("a@x.com"))
        identity_repository.insert(_identity("b@x.com"))

        assert len(session.exec(select(IdentityTable)).all()) == 2

    def test_update_fields(self, identity_repository: IdentityRepository):
        created = identity_repository.insert(_identity(display_name="Ann"))

        updated = identity_repository.update_fields(
            created.id, display_name="Ann K.", avatar_url="https://img/ann.png"
        )

        assert updated is not None
        assert updated.display_name == "Ann K."
        assert updated.avatar_url == "https://img/ann.png"
        assert updated.email == created.email

    def test_update_fields_rejects_identity_keys(self, identity_repository: IdentityRepository):
        created = identity_repository.insert(_identity())

        with pytest.raises(ValueError):
            identity_repository.update_fields(created.id, email="other@x.com")
        with pytest.raises(ValueError):
            identity_repository.update_fields(created.id, username="other")

    def test_link_external_id_once(self, identity_repository: IdentityRepository):
        created = identity_repository.insert(_identity())

        assert identity_repository.link_external_id(created.id, "g2") is True
        assert identity_repository.link_external_id(created.id, "g3") is False
        assert identity_repository.get(created.id).external_id == "g2"

    def test_link_external_id_taken_elsewhere(self, identity_repository: IdentityRepository):
        identity_repository.insert(_identity("a@x.com", external_id="g1"))
        unlinked = identity_repository.insert(_identity("b@x.com"))

        with pytest.raises(DuplicateIdentityError):
            identity_repository.link_external_id(unlinked.id, "g1")
        assert identity_repository.get(unlinked.id).external_id is None

    def test_operational_error_maps_to_storage_unavailable(self, monkeypatch, session: Session):
        repository = IdentityRepository(session)

        def _fail(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "exec", _fail)

        with pytest.raises(StorageUnavailable):
            repository.get("any")

    def test_storage_error_message_hides_driver_details(self, monkeypatch, session: Session):
        repository = IdentityRepository(session)

        def _fail(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "exec", _fail)

        with pytest.raises(StorageUnavailable) as exc_info:
            repository.find_by_email("a@x.com")

        assert exc_info.value.message == "Identity storage unavailable"
        assert "locked" not in exc_info.value.message
