"""
Internal DB subpackage for Herald.

This package holds the pure building blocks of the persistence engine:
null-safe values, entity descriptors, the table registry, tag conversion, the
query builder and the schema. `LibraryDb` (in `herald.core.library_db`) is the
single public interface that runs them against a connection.

Re-exports here are primarily for convenience inside the `core` package.
"""

from __future__ import annotations

# Models
from .models import (
    Album,
    Artist,
    Column,
    Entity,
    Genre,
    Image,
    ImageInAlbum,
    Library,
    Song,
    SongInLibrary,
)

# Registry / query building
from .query import Statement
from .registry import Registry, music_registry

# Schema
from .schema import SCHEMA_VERSION, ensure_schema

# Tags
from .tags import convert_tags, external_names, tag_converter

# Values
from .values import NullBool, NullFloat, NullInt, NullString, NullValue

__all__ = [
    # models
    "Entity",
    "Column",
    "Library",
    "Artist",
    "Genre",
    "Album",
    "Song",
    "Image",
    "SongInLibrary",
    "ImageInAlbum",
    # registry / query
    "Registry",
    "music_registry",
    "Statement",
    # schema
    "SCHEMA_VERSION",
    "ensure_schema",
    # tags
    "tag_converter",
    "convert_tags",
    "external_names",
    # values
    "NullValue",
    "NullInt",
    "NullFloat",
    "NullString",
    "NullBool",
]
