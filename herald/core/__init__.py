"""
Core domain package.

This package contains the persistence engine and the ingestion pipeline. It is
independent of any UI layer (web, CLI, etc.); those layers only talk to
`LibraryDb` and `MediaLibrary`.

Consumers should usually import from the specific module they need (e.g.
`herald.core.library_db`). The error taxonomy lives here so that every layer
can catch it without importing the DB stack.
"""

from __future__ import annotations

from typing import Any

__all__: list[str] = [
    "CoreError",
    "NotPresentError",
    "AlreadyExistsError",
    "NonUniqueError",
    "InvalidTableError",
    "InvalidTagError",
    "NotAbsError",
    "TypeMismatchError",
    "NoDurationError",
    "ProbeError",
    "MetadataError",
]


class CoreError(Exception):
    """Base class for core-layer exceptions."""


class NotPresentError(CoreError):
    """Raised when a unique lookup (by identity) matched no row."""


class AlreadyExistsError(CoreError):
    """Raised by `create(..., exist_ok=False)` when exactly one row already matches."""


class NonUniqueError(CoreError):
    """
    Raised when a query meant to identify at most one row matched several.

    The offending query value is kept on `query` for diagnostics.
    """

    def __init__(self, query: Any) -> None:
        super().__init__(f"information given for query was non-unique: {query!r}")
        self.query = query


class InvalidTableError(CoreError):
    """Raised for an unregistered table name or entity type."""


class InvalidTagError(CoreError):
    """Raised for an unknown column or external field name."""


class NotAbsError(CoreError):
    """Raised when a filesystem path must be absolute but is not."""


class TypeMismatchError(CoreError):
    """Raised when two entities of different types are combined (e.g. in `update`)."""


class NoDurationError(CoreError):
    """Raised when the duration probe produced no parsable duration."""


class ProbeError(CoreError):
    """Raised when the duration probe process fails."""


class MetadataError(CoreError):
    """Raised when the tags of a media file cannot be read."""
