"""Session and identity value models."""

from .identity import Assertion, CurrentUser, bypass_user
from .session import AuthSession, SessionPayload

__all__ = ["Assertion", "AuthSession", "CurrentUser", "SessionPayload", "bypass_user"]
