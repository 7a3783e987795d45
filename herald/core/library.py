from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from herald.core import NotAbsError
from herald.core.db.models import Album, Artist, Genre, Image, ImageInAlbum, Library, Song
from herald.core.db.values import NullFloat
from herald.core.library_db import LibraryDb
from herald.core.probe import DurationProbe
from herald.core.scanner import (
    MediaKind,
    TrackMetadata,
    classify,
    extract_metadata,
    iter_media_files,
    strip_to_album,
    strip_to_artist,
)

logger = logging.getLogger(__name__)

Classifier = Callable[[Path], MediaKind]
TagReader = Callable[[Path], TrackMetadata]
Prober = Callable[[Path], Awaitable[float]]


class Outcome(Enum):
    """What happened to one music file during a scan."""

    ADDED = "added"
    LINKED = "linked"
    SKIPPED = "skipped"


@dataclass(slots=True)
class ScanResult:
    library: str
    scanned: int = 0
    added: int = 0
    linked: int = 0
    skipped: int = 0
    images: int = 0
    errors: int = 0
    cancelled: bool = False


class MediaLibraryError(RuntimeError):
    """Base error for MediaLibrary operations."""


class MediaLibrary:
    """
    Ingestion pipeline: walks library roots and fills the catalogue.

    For every file: classify by content, then for music files
    dedup-check -> tags -> duration -> genre -> artist -> album -> song -> link.
    Image files are recorded once the music of the scan is in.

    Dependencies:
    - `LibraryDb` for persistence (already open)
    - `classify`, `read_tags` and `probe` are injectable; tests pass fakes
    """

    def __init__(
        self,
        *,
        db: LibraryDb,
        probe: Prober | None = None,
        classify: Classifier = classify,
        read_tags: TagReader = extract_metadata,
        follow_symlinks: bool = False,
    ) -> None:
        self._db = db
        self._probe = probe if probe is not None else DurationProbe()
        self._classify = classify
        self._read_tags = read_tags
        self._follow_symlinks = follow_symlinks
        self._initialized = False

    @property
    def db(self) -> LibraryDb:
        return self._db

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """
        Prepare the catalogue.

        Contract:
        - `LibraryDb` must already be open.
        - the schema is ensured here for convenience.
        """
        if not self._db.is_open:
            raise MediaLibraryError("LibraryDb is not open. Open it before initializing MediaLibrary.")
        await self._db.ensure_schema()
        self._initialized = True

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise MediaLibraryError("MediaLibrary is not initialized. Call await initialize() first.")

    # =========================================================================
    # Scanning
    # =========================================================================

    async def scan_libraries(self, *, cancel: asyncio.Event | None = None) -> dict[str, ScanResult]:
        """
        Scan every library, one after the other.

        A library that fails (e.g. its root vanished) is logged and left out of
        the result; the others are still scanned.
        """
        self._require_initialized()
        results: dict[str, ScanResult] = {}
        for name, library in (await self._db.get_libraries()).items():
            if cancel is not None and cancel.is_set():
                break
            try:
                results[name] = await self.scan_library(library, cancel=cancel)
            except Exception:
                logger.exception("Scan of library %s failed", name)
        return results

    async def scan_library(self, library: Library, *, cancel: asyncio.Event | None = None) -> ScanResult:
        """
        Walk the library root and ingest every file.

        Each file is committed on success. A failing file is logged, its
        uncommitted writes are rolled back, and the walk goes on. Traversal
        errors are raised.
        """
        self._require_initialized()
        name = library.name.get("")
        root = Path(library.path.get(""))
        if not root.is_absolute():
            raise NotAbsError(f"library {name!r} has a relative path: {root}")

        result = ScanResult(library=name)
        images: list[Path] = []
        logger.info("Scanning library %s at %s", name, root)

        async for path in iter_media_files(root, follow_symlinks=self._follow_symlinks):
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            result.scanned += 1
            try:
                kind = await asyncio.to_thread(self._classify, path)
                if kind is MediaKind.IMAGE:
                    images.append(path)
                    continue
                if kind is not MediaKind.MUSIC:
                    continue
                outcome = await self.process_media(path, library)
                await self._db.commit()
            except Exception as e:
                result.errors += 1
                logger.warning("Skipping %s: %s: %s", path, type(e).__name__, e)
                await self._db.rollback()
                continue

            if outcome is Outcome.ADDED:
                result.added += 1
            elif outcome is Outcome.LINKED:
                result.linked += 1
            else:
                result.skipped += 1

        for path in images:
            if cancel is not None and cancel.is_set():
                result.cancelled = True
                break
            try:
                if await self.add_image_file(path):
                    result.images += 1
                await self._db.commit()
            except Exception as e:
                result.errors += 1
                logger.warning("Skipping image %s: %s: %s", path, type(e).__name__, e)
                await self._db.rollback()

        logger.info(
            "Scan of %s %s: %d files, %d added, %d linked, %d skipped, %d images, %d errors",
            name,
            "cancelled" if result.cancelled else "complete",
            result.scanned,
            result.added,
            result.linked,
            result.skipped,
            result.images,
            result.errors,
        )
        return result

    # =========================================================================
    # Per-file processing
    # =========================================================================

    async def process_media(self, path: Path, library: Library) -> Outcome:
        """
        Ingest one music file into `library`. Nothing is committed here.

        A file already in the catalogue is never re-read: it is only linked
        to this library when it is not yet.
        """
        fs_path = str(path)
        existing = await self._db.read(Song(path=fs_path))
        if existing:
            song = existing[0]
            if await self._db.song_in_library(song, library):
                return Outcome.SKIPPED
            await self._db.add_song_to_library(song, library)
            return Outcome.LINKED

        meta = await asyncio.to_thread(self._read_tags, path)
        size = path.stat().st_size
        duration = await self._probe(path)

        genre = await self.resolve_genre(meta.genre)
        artist = await self.resolve_artist(meta, path, library)
        album = await self.resolve_album(meta, path, artist)

        song = Song(
            album=album.id if album is not None else None,
            genre=genre.id if genre is not None else None,
            path=fs_path,
            title=meta.title,
            track=meta.track_number,
            num_tracks=meta.track_total,
            disk=meta.disc_number,
            num_disks=meta.disc_total,
            size=size,
            duration=duration,
            artist=meta.artist or meta.album_artist,
        )
        created = await self._db.get_or_create(song, "path")
        await self._db.add_song_to_library(song, library)
        if created and album is not None:
            await self._add_album_duration(album, duration)
        return Outcome.ADDED

    async def _add_album_duration(self, album: Album, seconds: float) -> None:
        total = album.duration.get(0.0) + seconds
        await self._db.update(Album(duration=total), Album.with_identity(album.id.value))
        album.duration = NullFloat(total)

    async def resolve_genre(self, name: str | None) -> Genre | None:
        if not name:
            return None
        genre = Genre(name=name)
        await self._db.get_or_create(genre, "name")
        return genre

    async def resolve_artist(self, meta: TrackMetadata, path: Path, library: Library) -> Artist | None:
        """
        The artist of a song, keyed by its directory under the library root.

        Name: album-artist tag, else artist tag, else the directory name.
        A song in the root itself has no artist directory; it is keyed by name
        among the artists that have no directory either.
        """
        artist_dir = strip_to_artist(path, Path(library.path.get("")))
        name = meta.album_artist or meta.artist or (artist_dir.name if artist_dir else None)
        if artist_dir is None and not name:
            return None

        artist = Artist(name=name, path=str(artist_dir) if artist_dir else None)
        if artist_dir is not None:
            await self._db.get_or_create(artist, "path")
        else:
            await self._db.get_or_create(artist, "name", null_keys=("path",))
        return artist

    async def resolve_album(self, meta: TrackMetadata, path: Path, artist: Artist | None) -> Album | None:
        """
        The album of a song, keyed by its directory under the artist directory.

        Title: album tag, else the directory name. Without an album directory
        the album is keyed by title and artist among the albums that
        have no directory.
        """
        album_dir = None
        if artist is not None and artist.path.valid:
            album_dir = strip_to_album(path, Path(artist.path.value))
        title = meta.album or (album_dir.name if album_dir else None)
        if album_dir is None and not title:
            return None

        album = Album(
            artist=artist.id if artist is not None else None,
            year=meta.year,
            num_tracks=meta.track_total,
            num_disks=meta.disc_total,
            title=title,
            path=str(album_dir) if album_dir else None,
        )
        if album_dir is not None:
            await self._db.get_or_create(album, "path")
        else:
            await self._db.get_or_create(album, "title", "artist", null_keys=("path",))
        return album

    async def add_image_file(self, path: Path) -> bool:
        """
        Record an image and link it to the album of its directory, if any.

        Returns True if the image was new.
        """
        image = Image(path=str(path))
        created = await self._db.get_or_create(image, "path")
        albums = await self._db.read(Album(path=str(path.parent)))
        if len(albums) == 1:
            await self._db.get_or_create(ImageInAlbum(image=image.id, album=albums[0].id), "image", "album")
        return created
