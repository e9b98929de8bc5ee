"""Error taxonomy for identity resolution and session authentication.

Every error that may reach the HTTP boundary derives from ``CatalogAuthError``
and carries a stable machine-readable ``code`` plus the HTTP status it maps to.
"""

from typing import Any


class CatalogAuthError(Exception):
    """Base class for all authentication subsystem errors."""

    status_code: int = 500
    default_code: str = "auth_error"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_response(self) -> dict[str, Any]:
        """Structured ``success: false`` body rendered at the HTTP boundary."""
        return {"success": False, "message": self.message, "code": self.code}


class ProviderUnavailable(CatalogAuthError):
    """The identity provider is disabled, unreachable, or timed out."""

    status_code = 503
    default_code = "provider_unavailable"


class ProviderMisconfigured(ProviderUnavailable):
    """The provider configuration is inconsistent (e.g. callback URL mismatch)."""

    default_code = "provider_misconfigured"


class AssertionInvalid(CatalogAuthError):
    """The provider returned an error or an incomplete profile."""

    status_code = 401
    default_code = "assertion_invalid"


class ConflictingLink(CatalogAuthError):
    """An external id and an email point at different identities."""

    status_code = 409
    default_code = "conflicting_link"

    def __init__(
        self,
        message: str,
        *,
        external_id: str,
        email: str,
        identity_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.external_id = external_id
        self.email = email
        self.identity_id = identity_id


class StorageUnavailable(CatalogAuthError):
    """The identity store cannot be reached."""

    status_code = 503
    default_code = "storage_unavailable"


class Unauthenticated(CatalogAuthError):
    """No valid session and no valid bypass token were presented."""

    status_code = 401
    default_code = "unauthenticated"

    def __init__(
        self,
        message: str = "Unauthorized: Please log in to access this resource",
        *,
        login_url: str,
    ) -> None:
        super().__init__(message)
        self.login_url = login_url

    def to_response(self) -> dict[str, Any]:
        body = super().to_response()
        body["loginUrl"] = self.login_url
        body["authenticated"] = False
        return body


class DuplicateIdentityError(Exception):
    """Insert or link rejected by a uniqueness constraint.

    Internal signal between the identity repository and the resolver; it never
    crosses the HTTP boundary.
    """

    def __init__(self, message: str = "Identity uniqueness constraint violated") -> None:
        super().__init__(message)
