"""
Music catalogue database access layer (the persistence engine).

Goals:
- One generic code path for every entity: statements come from
  `herald.core.db.query`, tables from the `Registry`, no per-entity SQL.
- SQLite + aiosqlite, async/await friendly.
- Driver errors (`sqlite3.IntegrityError`, ...) are never masked or retried.

This module is intentionally independent of the web layer.

Note:
- Records and descriptors live in `herald.core.db.models`
- SQL generation lives in `herald.core.db.query`
- Schema lives in `herald.core.db.schema`
- `LibraryDb` is the public facade used by the rest of the codebase
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from herald.core import (
    AlreadyExistsError,
    InvalidTableError,
    NonUniqueError,
    NotAbsError,
    NotPresentError,
    TypeMismatchError,
)
from herald.core.db import query as q
from herald.core.db.models import Entity, Library, Song, SongInLibrary
from herald.core.db.registry import Registry, music_registry
from herald.core.db.schema import ensure_schema as ensure_schema_sql

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class LibraryDb:
    """
    Async access layer for the catalogue DB.

    Usage:
        db = LibraryDb("herald.db")
        await db.open()
        await db.ensure_schema()
        ... create/read/update ...
        await db.commit()
        await db.close()

    Notes:
    - Writes are not committed implicitly (except `add_library`); callers
      decide the transaction boundaries with `commit()` / `rollback()`.
    - Connections are not pooled; we keep a single connection.
    """

    def __init__(self, db_path: str | Path, *, registry: Registry | None = None) -> None:
        self._db_path = str(db_path)
        self._registry = registry if registry is not None else music_registry()
        self._conn: aiosqlite.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def registry(self) -> Registry:
        return self._registry

    async def open(self) -> None:
        if self._conn is not None:
            return
        self._conn = await aiosqlite.connect(self._db_path)

        await self._conn.execute("PRAGMA foreign_keys = ON;")
        await self._conn.execute("PRAGMA journal_mode = WAL;")
        await self._conn.execute("PRAGMA synchronous = NORMAL;")

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError("LibraryDb is not open. Call await db.open() first.")
        return self._conn

    async def ensure_schema(self) -> None:
        """Create the schema (or check its version)."""
        await ensure_schema_sql(self._require_conn())

    async def execute(self, sql: str, params: Sequence[Any] | Mapping[str, Any] = ()) -> None:
        await self._require_conn().execute(sql, params)

    async def commit(self) -> None:
        await self._require_conn().commit()

    async def rollback(self) -> None:
        await self._require_conn().rollback()

    async def _fetchall(self, stmt: q.Statement) -> list[Any]:
        logger.debug("%s %r", stmt.sql, stmt.params)
        cursor = await self._require_conn().execute(stmt.sql, stmt.params)
        try:
            return list(await cursor.fetchall())
        finally:
            await cursor.close()

    @staticmethod
    def _materialize(entity_type: type[E], row: Sequence[Any]) -> E:
        """A new record filled positionally, in column order."""
        record = entity_type()
        for column, value in zip(entity_type.COLUMNS, row, strict=True):
            setattr(record, column.attr, column.kind(value))
        return record

    # ===========================================================================
    # Generic CRUD
    # ===========================================================================

    async def read_unique(self, entity: E) -> E:
        """
        Fill `entity` from the row with the same identity and return it.

        Raises `NotPresentError` when no row has that identity.
        """
        table = self._registry.lookup(entity)
        rows = await self._fetchall(q.select_unique(entity, table))
        if not rows:
            raise NotPresentError(f"{type(entity).__name__} {entity.get_identity()} not present")
        found = self._materialize(type(entity), rows[0])
        for column in entity.COLUMNS:
            setattr(entity, column.attr, getattr(found, column.attr))
        return entity

    async def read(self, query: E, order_by: Sequence[str] = ()) -> list[E]:
        """
        Every row matching the non-NULL fields of `query`.

        `order_by` holds column names; use `herald.core.db.tags` to translate
        external names first. Zero matches is an empty list, never an error.
        """
        table = self._registry.lookup(query)
        rows = await self._fetchall(q.select(query, table, order_by))
        entity_type = type(query)
        return [self._materialize(entity_type, r) for r in rows]

    async def create(
        self,
        candidate: Entity,
        returning: Sequence[str] = (),
        *,
        exist_ok: bool = True,
    ) -> bool:
        """
        Insert `candidate` unless a row already matches it.

        - no match: INSERT, copy the `returning` columns onto the candidate, return True
        - one match: copy the fields missing on the candidate from the row and
          return False (or raise `AlreadyExistsError` when `exist_ok` is False)
        - several matches: raise `NonUniqueError`; the candidate is left untouched
        """
        results = await self.read(candidate)
        if len(results) > 1:
            raise NonUniqueError(candidate)
        if len(results) == 1:
            candidate.merge_missing(results[0])
            if not exist_ok:
                raise AlreadyExistsError(f"{candidate!r} already exists")
            return False

        await self._insert(candidate, returning)
        return True

    async def _insert(self, candidate: Entity, returning: Sequence[str]) -> None:
        table = self._registry.lookup(candidate)
        rows = await self._fetchall(q.insert(candidate, table, returning))
        if returning and rows:
            by_column = {c.column: c for c in candidate.COLUMNS}
            for name, value in zip(returning, rows[0], strict=True):
                column = by_column[name]
                setattr(candidate, column.attr, column.kind(value))

    async def update(self, set_: Entity, where: Entity) -> int:
        """
        UPDATE rows matching `where` with the non-NULL fields of `set_`.

        Returns the number of rows changed.
        """
        if type(set_) is not type(where):
            raise TypeMismatchError(
                f"cannot update {type(where).__name__} rows with a {type(set_).__name__}"
            )
        table = self._registry.lookup(where)
        stmt = q.update(set_, where, table)
        logger.debug("%s %r", stmt.sql, stmt.params)
        cursor = await self._require_conn().execute(stmt.sql, stmt.params)
        try:
            return cursor.rowcount
        finally:
            await cursor.close()

    async def get_or_create(self, candidate: Entity, *keys: str, null_keys: tuple[str, ...] = ()) -> bool:
        """
        Look `candidate` up by its natural key only, creating it when absent.

        `keys` are attribute names. Rows where any of `null_keys` is set do not
        match, so a name-keyed row never resolves to a path-keyed one.

        On a match, fields the stored row lacks but the candidate has are
        written back, then the candidate is replaced by the stored row
        (identity included). Returns True if a row was created.

        Without usable key values this is a plain `create`.
        """
        entity_type = type(candidate)
        returning = self._identity_returning(entity_type)

        probe = entity_type(**{k: getattr(candidate, k) for k in keys})
        if not probe.present():
            return await self.create(candidate, returning)

        matches = [
            row for row in await self.read(probe) if not any(getattr(row, k).valid for k in null_keys)
        ]
        if len(matches) > 1:
            raise NonUniqueError(probe)
        if not matches:
            await self._insert(candidate, returning)
            return True

        existing = matches[0]
        if entity_type.IDENTITY is not None:
            backfill = entity_type()
            for column, value in candidate.present():
                if not getattr(existing, column.attr).valid:
                    setattr(backfill, column.attr, value)
            if backfill.present():
                await self.update(backfill, entity_type.with_identity(getattr(existing, entity_type.IDENTITY).value))
                existing.merge_missing(backfill)

        for column in entity_type.COLUMNS:
            setattr(candidate, column.attr, getattr(existing, column.attr))
        return False

    @staticmethod
    def _identity_returning(entity_type: type[Entity]) -> tuple[str, ...]:
        if entity_type.IDENTITY is None:
            return ()
        return tuple(c.column for c in entity_type.COLUMNS if c.attr == entity_type.IDENTITY)

    # ===========================================================================
    # Libraries and membership
    # ===========================================================================

    async def count_table(self, table: str) -> int:
        if not self._registry.has_table(table):
            raise InvalidTableError(f"invalid table: {table!r}")
        cursor = await self._require_conn().execute(f"SELECT COUNT(1) FROM {table};")
        row = await cursor.fetchone()
        await cursor.close()
        return int(row[0]) if row is not None else 0

    async def add_library(self, name: str, fs_path: str | Path) -> Library:
        """
        Create the library `name` rooted at `fs_path` and commit.

        The path must be absolute: never assume which directory the server
        runs from. Raises `AlreadyExistsError` if the same library exists.
        """
        path = str(fs_path)
        if not Path(path).is_absolute():
            raise NotAbsError(f"library path must be absolute: {path!r}")

        library = Library(name=name, path=path)
        await self.create(library, returning=("id",), exist_ok=False)
        await self.commit()
        logger.info("Added library %s at %s", name, path)
        return library

    async def get_libraries(self) -> dict[str, Library]:
        """All libraries, keyed by name, in id order."""
        return {lib.name.get(): lib for lib in await self.read(Library(), order_by=("id",))}

    async def _song_id(self, song: Song) -> int | None:
        if song.id.valid:
            return song.id.value
        if not song.path.valid:
            raise NonUniqueError(song)
        rows = await self.read(Song(path=song.path))
        return rows[0].get_identity() if rows else None

    @staticmethod
    def _library_id(library: Library) -> int:
        if not library.id.valid:
            raise ValueError("provided library must have an id")
        return library.id.value

    async def song_in_library(self, song: Song, library: Library) -> bool:
        """
        Whether the song (by id, else by path) is linked to `library`.

        A song without id or path cannot be identified: `NonUniqueError`.
        """
        library_id = self._library_id(library)
        song_id = await self._song_id(song)
        if song_id is None:
            return False
        links = await self.read(SongInLibrary(song=song_id, library=library_id))
        if len(links) > 1:
            raise NonUniqueError(library)
        return len(links) == 1

    async def add_song_to_library(self, song: Song, library: Library) -> bool:
        """Link the song to the library. Returns False if it already was."""
        if await self.song_in_library(song, library):
            return False
        song_id = await self._song_id(song)
        if song_id is None:
            raise NotPresentError(f"song {song.path.get()!r} is not in the database")
        await self.create(SongInLibrary(song=song_id, library=self._library_id(library)))
        return True

    async def get_songs_in_library(self, library: Library) -> list[Song]:
        library_id = self._library_id(library)
        links = await self.read(SongInLibrary(library=library_id), order_by=("song_id",))
        songs: list[Song] = []
        for link in links:
            songs.append(await self.read_unique(Song.with_identity(link.song.value)))
        return songs
