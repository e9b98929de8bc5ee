"""Identity entity module.

- Identity: canonical local account
- IdentityTable: database persistence model
- IdentityRepository: data access layer
"""

from .entity import Identity, normalize_email, username_from_email
from .repository import IdentityRepository
from .table import IdentityTable

__all__ = [
    "Identity",
    "IdentityRepository",
    "IdentityTable",
    "normalize_email",
    "username_from_email",
]
