from loguru import logger
from sqlmodel import Session

from src.catalog.core.errors import (
    ConflictingLink,
    DuplicateIdentityError,
    StorageUnavailable,
)
from src.catalog.core.models.identity import Assertion
from src.catalog.entities.identity import (
    Identity,
    IdentityRepository,
    normalize_email,
    username_from_email,
)

DEFAULT_MAX_ATTEMPTS = 3


class IdentityResolver:
    """Maps a verified provider assertion onto exactly one local identity.

    Resolution order is fixed:

    1. match by ``external_id`` (returning users)
    2. match by normalized ``email`` and link the provider id once
    3. create a new identity

    Steps 2 and 3 race with concurrent logins. The unique constraints on
    ``email`` and ``external_id`` decide the winner; the loser re-reads and
    returns the winner's record instead of failing.
    """

    def __init__(
        self,
        repository: IdentityRepository,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._repository = repository
        self._max_attempts = max_attempts

    @classmethod
    def for_session(cls, db_session: Session) -> "IdentityResolver":
        return cls(IdentityRepository(db_session))

    @property
    def repository(self) -> IdentityRepository:
        return self._repository

    def resolve(self, assertion: Assertion) -> Identity:
        """Find, link, or create the identity for ``assertion``.

        Raises:
            ConflictingLink: the provider id and the email belong to
                different identities
            StorageUnavailable: the identity store cannot be reached
        """
        email = normalize_email(assertion.email)

        for attempt in range(1, self._max_attempts + 1):
            try:
                identity = self._find_or_link(assertion, email)
                if identity is None:
                    identity = self._create(assertion, email)
                return identity
            except DuplicateIdentityError as e:
                logger.info(
                    "Concurrent identity write for {} (attempt {}/{}): {}",
                    email,
                    attempt,
                    self._max_attempts,
                    e,
                )

        logger.error(
            "Identity resolution for {} did not settle after {} attempts",
            email,
            self._max_attempts,
        )
        raise StorageUnavailable("Identity storage unavailable")

    def _find_or_link(self, assertion: Assertion, email: str) -> Identity | None:
        identity = self._repository.find_by_external_id(assertion.external_id)
        if identity is not None:
            if identity.email != email:
                self._conflict(
                    assertion,
                    email,
                    identity,
                    f"Provider id is linked to a different email ({identity.email})",
                )
            return self._refresh(identity, assertion)

        identity = self._repository.find_by_email(email)
        if identity is None:
            return None

        if identity.external_id == assertion.external_id:
            # Linked or created by a concurrent login after the first lookup.
            return self._refresh(identity, assertion)

        if identity.external_id is not None:
            self._conflict(
                assertion,
                email,
                identity,
                "Email is already linked to a different provider id",
            )

        return self._link(identity, assertion)

    def _refresh(self, identity: Identity, assertion: Assertion) -> Identity:
        changes = self._presentation_changes(identity, assertion)
        if not changes:
            return identity

        updated = self._repository.update_fields(identity.id, **changes)
        if updated is None:
            # Removed out-of-band between read and write; let the caller retry.
            raise DuplicateIdentityError("Identity disappeared during refresh")
        return updated

    def _link(self, identity: Identity, assertion: Assertion) -> Identity:
        changes = self._presentation_changes(identity, assertion)
        linked = self._repository.link_external_id(
            identity.id, assertion.external_id, **changes
        )
        if not linked:
            raise DuplicateIdentityError("Identity was linked concurrently")

        logger.info(
            "Linked {} identity {} to provider id", assertion.provider, identity.id
        )
        refreshed = self._repository.get(identity.id)
        if refreshed is None:
            raise DuplicateIdentityError("Identity disappeared after linking")
        return refreshed

    def _create(self, assertion: Assertion, email: str) -> Identity:
        identity = self._repository.insert(
            Identity(
                external_id=assertion.external_id,
                email=email,
                username=username_from_email(email),
                display_name=assertion.display_name,
                avatar_url=assertion.avatar_url,
            )
        )
        logger.info("Created identity {} for {}", identity.id, email)
        return identity

    @staticmethod
    def _presentation_changes(identity: Identity, assertion: Assertion) -> dict:
        changes = {}
        if assertion.display_name and assertion.display_name != identity.display_name:
            changes["display_name"] = assertion.display_name
        if assertion.avatar_url and assertion.avatar_url != identity.avatar_url:
            changes["avatar_url"] = assertion.avatar_url
        return changes

    @staticmethod
    def _conflict(
        assertion: Assertion, email: str, identity: Identity, reason: str
    ) -> None:
        logger.warning(
            "Conflicting identity link: {} (provider={}, identity={})",
            reason,
            assertion.provider,
            identity.id,
        )
        raise ConflictingLink(
            reason,
            external_id=assertion.external_id,
            email=email,
            identity_id=identity.id,
        )
