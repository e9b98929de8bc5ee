"""Entities organized by business concept.

Each entity package holds its domain model (entity.py), its persistence model
(table.py) and its data access layer (repository.py).
"""

from .identity import Identity, IdentityRepository, IdentityTable

__all__ = ["Identity", "IdentityRepository", "IdentityTable"]
