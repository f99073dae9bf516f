"""Exception taxonomy for the career graph.

Plain lookups return ``None`` or an empty list; these are raised only where a
failure has to reach the caller.
"""

from __future__ import annotations


class CareerGraphError(Exception):
    """Base class for every error raised by this package."""


class ValidationError(CareerGraphError):
    """Unknown entity/relation type, empty required field or malformed payload."""


class NotFoundError(CareerGraphError):
    """A referenced node, edge or feedback record does not exist."""


class StorageError(CareerGraphError):
    """The underlying SQLite database failed."""


class ConflictError(CareerGraphError):
    """An upsert carried a stale ``expected_version``."""


class QueryTimeoutError(CareerGraphError):
    """A scan ran past its deadline."""
