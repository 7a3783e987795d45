"""
Bidirectional entity type <-> table name registry.

A `Registry` is an immutable value. Build it once at startup (usually via
`music_registry()`) and hand it to `LibraryDb`; there is no module-level
mutable registry.

Both lookups are plain dict lookups. Unknown types/tables raise
`InvalidTableError`; it is never fatal for the process.
"""

from __future__ import annotations

from collections.abc import Iterable
from types import MappingProxyType

from herald.core import InvalidTableError
from herald.core.db.models import (
    Album,
    Artist,
    Entity,
    Genre,
    Image,
    ImageInAlbum,
    Library,
    Song,
    SongInLibrary,
)


class Registry:
    """Immutable map between entity types and physical table names."""

    __slots__ = ("_by_type", "_by_table")

    def __init__(self, entries: Iterable[tuple[type[Entity], str]] = ()) -> None:
        by_type: dict[type[Entity], str] = {}
        by_table: dict[str, type[Entity]] = {}
        for entity_type, table in entries:
            if entity_type in by_type:
                raise ValueError(f"{entity_type.__name__} is already registered")
            if table in by_table:
                raise ValueError(f"table {table!r} is already registered")
            by_type[entity_type] = table
            by_table[table] = entity_type
        self._by_type = MappingProxyType(by_type)
        self._by_table = MappingProxyType(by_table)

    def register(self, entity_type: type[Entity], table: str) -> Registry:
        """Return a new registry that also maps `entity_type` <-> `table`."""
        return Registry([*self._by_type.items(), (entity_type, table)])

    def lookup(self, entity: type[Entity] | Entity) -> str:
        """Table name for an entity type (or instance)."""
        entity_type = entity if isinstance(entity, type) else type(entity)
        try:
            return self._by_type[entity_type]
        except KeyError:
            raise InvalidTableError(f"no table registered for {entity_type.__name__}") from None

    def lookup_table(self, table: str) -> Entity:
        """A fresh zero-valued entity of the type stored in `table`."""
        try:
            return self._by_table[table]()
        except KeyError:
            raise InvalidTableError(f"invalid table: {table!r}") from None

    def has_table(self, table: str) -> bool:
        return table in self._by_table

    @property
    def tables(self) -> tuple[str, ...]:
        return tuple(self._by_table)

    def __len__(self) -> int:
        return len(self._by_type)


def music_registry() -> Registry:
    """Registry for the media namespace."""
    return Registry(
        [
            (Library, "libraries"),
            (Artist, "artists"),
            (Genre, "genres"),
            (Image, "images"),
            (Album, "albums"),
            (Song, "songs"),
            (SongInLibrary, "songs_in_library"),
            (ImageInAlbum, "images_in_album"),
        ]
    )
