"""
Database schema for Herald.

Design notes:
- We use SQLite `PRAGMA user_version` as the schema version.
- There is no migration path: a database stamped with another version is
  rejected. Create a new database when the schema changes.
- Table and column names must match the descriptors in `herald.core.db.models`
  and the names in `herald.core.db.registry.music_registry()`.
"""

from __future__ import annotations

from typing import Final

import aiosqlite

SCHEMA_VERSION: Final[int] = 1

# Order matters: referenced tables first.
_TABLES: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS libraries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        fs_path TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS artists (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT,
        fs_path TEXT UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS genres (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS images (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        fs_path TEXT NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS albums (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        artist INTEGER REFERENCES artists(id) ON DELETE SET NULL,
        release_year INTEGER,
        n_tracks INTEGER,
        n_disks INTEGER,
        title TEXT,
        fs_path TEXT UNIQUE,
        duration REAL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS songs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        album INTEGER REFERENCES albums(id) ON DELETE SET NULL,
        genre INTEGER REFERENCES genres(id) ON DELETE SET NULL,
        fs_path TEXT NOT NULL UNIQUE,
        title TEXT,
        track INTEGER,
        num_tracks INTEGER,
        disk INTEGER,
        num_disks INTEGER,
        song_size INTEGER,
        duration REAL,
        artist TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS songs_in_library (
        song_id INTEGER NOT NULL REFERENCES songs(id) ON DELETE CASCADE,
        library_id INTEGER NOT NULL REFERENCES libraries(id) ON DELETE CASCADE,
        PRIMARY KEY (song_id, library_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS images_in_album (
        image_id INTEGER NOT NULL REFERENCES images(id) ON DELETE CASCADE,
        album_id INTEGER NOT NULL REFERENCES albums(id) ON DELETE CASCADE,
        PRIMARY KEY (image_id, album_id)
    )
    """,
)

_INDEXES: Final[tuple[str, ...]] = (
    "CREATE INDEX IF NOT EXISTS idx_albums_artist ON albums(artist);",
    "CREATE INDEX IF NOT EXISTS idx_albums_title ON albums(title);",
    "CREATE INDEX IF NOT EXISTS idx_songs_album ON songs(album);",
    "CREATE INDEX IF NOT EXISTS idx_songs_genre ON songs(genre);",
    "CREATE INDEX IF NOT EXISTS idx_songs_in_library_library ON songs_in_library(library_id);",
    "CREATE INDEX IF NOT EXISTS idx_images_in_album_album ON images_in_album(album_id);",
)


async def ensure_schema(conn: aiosqlite.Connection) -> None:
    """
    Create the schema if the database is empty, or check its version.

    This function assumes:
    - `conn` is an open aiosqlite connection
    - foreign_keys pragma is enabled by the caller if desired
    """
    cursor = await conn.execute("PRAGMA user_version;")
    row = await cursor.fetchone()
    current = int(row[0]) if row is not None else 0

    if current == SCHEMA_VERSION:
        return
    if current != 0:
        raise RuntimeError(
            f"Database schema version {current} is not supported (expected {SCHEMA_VERSION}); "
            "create a new database."
        )

    for ddl in _TABLES:
        await conn.execute(ddl)
    for ddl in _INDEXES:
        await conn.execute(ddl)
    await conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION};")
    await conn.commit()
