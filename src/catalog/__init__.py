"""Identity resolution and session authentication for the catalog API."""

__version__ = "0.1.0"
