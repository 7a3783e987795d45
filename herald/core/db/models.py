"""
Entity records and their column descriptors.

This module is intentionally lightweight:
- No DB connection knowledge
- No SQL
- Plain record classes described by an explicit, ordered `COLUMNS` table

Every entity declares `COLUMNS`, a tuple of `Column` descriptors in table
order. The query builder and the persistence engine only ever look at these
descriptors; nothing inspects class attributes at runtime.

Every field is a null-safe wrapper (`herald.core.db.values`). Keyword
arguments given to an entity constructor are wrapped automatically, so
`Song(path="/music/a.mp3")` and `Song(path=NullString("/music/a.mp3"))` are
the same record. Fields that are not given are NULL, i.e. *absent* for
filtering purposes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Self

from herald.core.db.values import NullFloat, NullInt, NullString, NullValue


@dataclass(frozen=True, slots=True)
class Column:
    """
    Describes one persisted field.

    - `attr`: attribute name on the Python record
    - `column`: SQL column name
    - `json` / `edn`: external names used by the REST layer
    - `kind`: the null-safe wrapper type of the field
    """

    attr: str
    column: str
    json: str
    edn: str
    kind: type[NullValue[Any]]


def col(attr: str, column: str, kind: type[NullValue[Any]], json: str | None = None) -> Column:
    """Shorthand: the EDN name is the JSON name as a keyword."""
    external = json if json is not None else attr.replace("_", "-")
    return Column(attr=attr, column=column, json=external, edn=":" + external, kind=kind)


class Entity:
    """
    Base class for persisted records.

    Subclasses set `COLUMNS` and, when the table has a primary key, `IDENTITY`
    (the attribute name of the identity column). Junction records have none.
    """

    __slots__ = ()

    COLUMNS: ClassVar[tuple[Column, ...]] = ()
    IDENTITY: ClassVar[str | None] = "id"

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        attrs = [c.attr for c in cls.COLUMNS]
        if len(set(attrs)) != len(attrs):
            raise TypeError(f"{cls.__name__} declares duplicate columns")
        if cls.IDENTITY is not None and cls.IDENTITY not in attrs:
            raise TypeError(f"{cls.__name__}: identity {cls.IDENTITY!r} is not a column")

    def __init__(self, **values: Any) -> None:
        for c in self.COLUMNS:
            setattr(self, c.attr, c.kind(values.pop(c.attr, None)))
        if values:
            raise TypeError(f"{type(self).__name__} has no field(s) {', '.join(sorted(values))}")

    # ---- Queryable capability ----

    def get_identity(self) -> int | None:
        if self.IDENTITY is None:
            raise TypeError(f"{type(self).__name__} has no identity")
        return getattr(self, self.IDENTITY).get()

    def set_identity(self, identity: int) -> None:
        if self.IDENTITY is None:
            raise TypeError(f"{type(self).__name__} has no identity")
        setattr(self, self.IDENTITY, NullInt(int(identity)))

    @classmethod
    def with_identity(cls, identity: int) -> Self:
        """A fresh zero-valued record with only the identity populated."""
        record = cls()
        record.set_identity(identity)
        return record

    # ---- helpers used by the engine ----

    def values(self) -> list[NullValue[Any]]:
        """Field wrappers in column order."""
        return [getattr(self, c.attr) for c in self.COLUMNS]

    def present(self) -> list[tuple[Column, NullValue[Any]]]:
        """(column, value) pairs for every non-NULL field, in column order."""
        out: list[tuple[Column, NullValue[Any]]] = []
        for c in self.COLUMNS:
            v = getattr(self, c.attr)
            if v.valid:
                out.append((c, v))
        return out

    def merge_missing(self, other: Entity) -> None:
        """Copy every field that is NULL here but set on `other`."""
        if type(other) is not type(self):
            raise TypeError(f"cannot merge {type(other).__name__} into {type(self).__name__}")
        for c in self.COLUMNS:
            mine = getattr(self, c.attr)
            theirs = getattr(other, c.attr)
            if not mine.valid and theirs.valid:
                setattr(self, c.attr, theirs)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.values() == other.values()  # type: ignore[attr-defined]

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        fields = ", ".join(f"{c.attr}={getattr(self, c.attr)!r}" for c in self.COLUMNS)
        return f"{type(self).__name__}({fields})"


class Library(Entity):
    """A scan root: a name and an absolute filesystem path."""

    __slots__ = ("id", "name", "path")

    COLUMNS = (
        col("id", "id", NullInt),
        col("name", "name", NullString),
        col("path", "fs_path", NullString),
    )


class Artist(Entity):
    """An artist; `path` is the artist directory under a library root."""

    __slots__ = ("id", "name", "path")

    COLUMNS = (
        col("id", "id", NullInt),
        col("name", "name", NullString),
        col("path", "fs_path", NullString),
    )


class Genre(Entity):
    __slots__ = ("id", "name")

    COLUMNS = (
        col("id", "id", NullInt),
        col("name", "name", NullString),
    )


class Album(Entity):
    """An album; `artist` is a nullable FK to artists, `duration` is in seconds."""

    __slots__ = ("id", "artist", "year", "num_tracks", "num_disks", "title", "path", "duration")

    COLUMNS = (
        col("id", "id", NullInt),
        col("artist", "artist", NullInt),
        col("year", "release_year", NullInt),
        col("num_tracks", "n_tracks", NullInt),
        col("num_disks", "n_disks", NullInt),
        col("title", "title", NullString),
        col("path", "fs_path", NullString),
        col("duration", "duration", NullFloat),
    )


class Song(Entity):
    """
    A music file.

    - `path` is the stable unique identifier of the file
    - `album` / `genre` are nullable FKs
    - `size` is in bytes, `duration` in seconds (fractional)
    - `artist` is the denormalized track artist name
    """

    __slots__ = (
        "id",
        "album",
        "genre",
        "path",
        "title",
        "track",
        "num_tracks",
        "disk",
        "num_disks",
        "size",
        "duration",
        "artist",
    )

    COLUMNS = (
        col("id", "id", NullInt),
        col("album", "album", NullInt),
        col("genre", "genre", NullInt),
        col("path", "fs_path", NullString),
        col("title", "title", NullString),
        col("track", "track", NullInt),
        col("num_tracks", "num_tracks", NullInt),
        col("disk", "disk", NullInt),
        col("num_disks", "num_disks", NullInt),
        col("size", "song_size", NullInt),
        col("duration", "duration", NullFloat),
        col("artist", "artist", NullString),
    )


class Image(Entity):
    __slots__ = ("id", "path")

    COLUMNS = (
        col("id", "id", NullInt),
        col("path", "fs_path", NullString),
    )


class SongInLibrary(Entity):
    """Junction: a song is part of a library."""

    __slots__ = ("song", "library")

    IDENTITY = None
    COLUMNS = (
        col("song", "song_id", NullInt),
        col("library", "library_id", NullInt),
    )


class ImageInAlbum(Entity):
    """Junction: an image (cover, scan, ...) belongs to an album."""

    __slots__ = ("image", "album")

    IDENTITY = None
    COLUMNS = (
        col("image", "image_id", NullInt),
        col("album", "album_id", NullInt),
    )


__all__ = [
    "Column",
    "Entity",
    "Library",
    "Artist",
    "Genre",
    "Album",
    "Song",
    "Image",
    "SongInLibrary",
    "ImageInAlbum",
    "NullFloat",
    "NullInt",
    "NullString",
    "col",
]
