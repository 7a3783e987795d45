"""
Tests for herald.core.library (the ingestion pipeline).

Classification, tag reading and duration probing are replaced by fakes so the
tests only need plain files in `tmp_path`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from herald.core import NoDurationError, NotAbsError
from herald.core.db.models import Album, Artist, Genre, Image, ImageInAlbum, Library, Song
from herald.core.library import MediaLibrary, MediaLibraryError
from herald.core.library_db import LibraryDb
from herald.core.scanner import MediaKind, TrackMetadata

TABLES = ("artists", "albums", "genres", "songs", "images", "songs_in_library", "images_in_album")


def fake_classify(path: Path) -> MediaKind:
    if path.suffix == ".mp3":
        return MediaKind.MUSIC
    if path.suffix == ".jpg":
        return MediaKind.IMAGE
    return MediaKind.UNKNOWN


class FakeTags:
    """Tag reader returning canned metadata per file name."""

    def __init__(self, by_name: dict[str, dict] | None = None) -> None:
        self.by_name = by_name or {}
        self.calls: list[Path] = []

    def __call__(self, path: Path) -> TrackMetadata:
        self.calls.append(path)
        fields = {"title": path.stem, **self.by_name.get(path.name, {})}
        return TrackMetadata(path=path, **fields)


class FakeProbe:
    def __init__(self, seconds: float = 205.47, failing: set[str] | None = None) -> None:
        self.seconds = seconds
        self.failing = failing or set()

    async def __call__(self, path: Path) -> float:
        if path.name in self.failing:
            raise NoDurationError(f"no duration for {path}")
        return self.seconds


def touch(path: Path, data: bytes = b"\x00" * 64) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


async def counts(db: LibraryDb) -> dict[str, int]:
    return {t: await db.count_table(t) for t in TABLES}


@pytest.fixture
async def db() -> LibraryDb:
    """Create an in-memory database for testing."""
    db = LibraryDb(":memory:")
    await db.open()
    await db.ensure_schema()
    yield db
    await db.close()


@pytest.fixture
def root(tmp_path: Path) -> Path:
    root = tmp_path / "music"
    root.mkdir()
    return root


def make_library(db: LibraryDb, tags: FakeTags | None = None, probe: FakeProbe | None = None) -> MediaLibrary:
    return MediaLibrary(
        db=db,
        classify=fake_classify,
        read_tags=tags or FakeTags(),
        probe=probe or FakeProbe(),
    )


class TestMediaLibrary:
    async def test_initialize_requires_open_db(self) -> None:
        library = MediaLibrary(db=LibraryDb(":memory:"))
        with pytest.raises(MediaLibraryError):
            await library.initialize()

    async def test_not_initialized_raises(self, db: LibraryDb, root: Path) -> None:
        library = make_library(db)
        with pytest.raises(MediaLibraryError):
            await library.scan_libraries()


class TestScanLibrary:
    async def test_artist_album_track(self, db: LibraryDb, root: Path) -> None:
        song_path = touch(root / "Artist" / "Album" / "01 Track.mp3", b"\x01" * 1000)
        tags = FakeTags({"01 Track.mp3": {"title": "Track", "album": "Album", "album_artist": "Artist"}})
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert (result.scanned, result.added, result.errors) == (1, 1, 0)

        (artist,) = await db.read(Artist())
        assert artist.name.get() == "Artist"
        assert artist.path.get() == str(root / "Artist")

        (album,) = await db.read(Album())
        assert album.title.get() == "Album"
        assert album.artist == artist.id
        assert album.path.get() == str(root / "Artist" / "Album")
        assert album.duration.get() == pytest.approx(205.47)

        (song,) = await db.read(Song())
        assert song.path.get() == str(song_path)
        assert Path(song.path.get()).is_absolute()
        assert song.title.get() == "Track"
        assert song.artist.get() == "Artist"
        assert song.album == album.id
        assert song.size.get() == 1000
        assert song.duration.get() == pytest.approx(205.47)

        assert await db.song_in_library(song, lib)

    async def test_rescan_adds_nothing(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Artist" / "Album" / "01 Track.mp3")
        touch(root / "Artist" / "Album" / "02 Other.mp3")
        touch(root / "Artist" / "Album" / "cover.jpg")
        tags = FakeTags()
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)
        before = await counts(db)
        tags.calls.clear()

        result = await library.scan_library(lib)
        assert await counts(db) == before
        assert result.added == 0
        assert result.skipped == 2
        assert result.images == 0
        # already known files are never re-read
        assert tags.calls == []

    async def test_names_fall_back_to_directories(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Nico" / "Chelsea Girl" / "01.mp3")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        (artist,) = await db.read(Artist())
        (album,) = await db.read(Album())
        assert artist.name.get() == "Nico"
        assert album.title.get() == "Chelsea Girl"

    async def test_artist_tag_beats_directory(self, db: LibraryDb, root: Path) -> None:
        touch(root / "nico" / "album" / "01.mp3")
        library = make_library(db, FakeTags({"01.mp3": {"artist": "Nico"}}))
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        (artist,) = await db.read(Artist())
        assert artist.name.get() == "Nico"

    async def test_song_in_library_root(self, db: LibraryDb, root: Path) -> None:
        touch(root / "loose.mp3")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert result.added == 1

        (song,) = await db.read(Song())
        assert not song.album.valid
        assert await db.count_table("artists") == 0
        assert await db.count_table("albums") == 0

    async def test_song_in_artist_dir(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Artist" / "single.mp3")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        assert await db.count_table("artists") == 1
        assert await db.count_table("albums") == 0

    async def test_album_tag_without_album_dir(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Artist" / "a.mp3")
        touch(root / "Artist" / "b.mp3")
        tags = FakeTags({"a.mp3": {"album": "Singles"}, "b.mp3": {"album": "Singles"}})
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        (album,) = await db.read(Album())
        assert album.title.get() == "Singles"
        assert not album.path.valid
        assert album.duration.get() == pytest.approx(2 * 205.47)

    async def test_genres_are_shared(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "1.mp3")
        touch(root / "B" / "Y" / "2.mp3")
        tags = FakeTags({"1.mp3": {"genre": "Rock"}, "2.mp3": {"genre": "Rock"}})
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        (genre,) = await db.read(Genre())
        songs = await db.read(Song(genre=genre.id.value))
        assert len(songs) == 2

    async def test_tag_totals_are_stored(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "1.mp3")
        tags = FakeTags(
            {"1.mp3": {"track_number": 1, "track_total": 9, "disc_number": 1, "disc_total": 2, "year": 1967}}
        )
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)

        await library.scan_library(lib)

        (song,) = await db.read(Song())
        (album,) = await db.read(Album())
        assert (song.track.get(), song.num_tracks.get()) == (1, 9)
        assert (song.disk.get(), song.num_disks.get()) == (1, 2)
        assert (album.year.get(), album.num_tracks.get(), album.num_disks.get()) == (1967, 9, 2)

    async def test_images_link_to_album(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Artist" / "Album" / "01.mp3")
        cover = touch(root / "Artist" / "Album" / "cover.jpg")
        touch(root / "Artist" / "poster.jpg")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert result.images == 2

        (album,) = await db.read(Album())
        (link,) = await db.read(ImageInAlbum())
        assert link.album == album.id
        linked = await db.read_unique(Image.with_identity(link.image.value))
        assert linked.path.get() == str(cover)

    async def test_unknown_files_are_ignored(self, db: LibraryDb, root: Path) -> None:
        touch(root / "notes.txt")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert result.scanned == 1
        assert result.added == 0
        assert result.errors == 0

    async def test_root_song_named_like_directory_artist(self, db: LibraryDb, root: Path) -> None:
        touch(root / "a" / "Artist" / "Album" / "t1.mp3")
        touch(root / "b" / "Artist" / "Album" / "t2.mp3")
        loose = touch(root / "b" / "loose.mp3")
        tagged = {"album_artist": "Artist"}
        tags = FakeTags({"t1.mp3": tagged, "t2.mp3": tagged, "loose.mp3": tagged})
        library = make_library(db, tags)
        await library.initialize()
        first = await db.add_library("a", root / "a")
        second = await db.add_library("b", root / "b")

        await library.scan_library(first)
        result = await library.scan_library(second)
        assert (result.added, result.errors) == (2, 0)

        artists = await db.read(Artist(name="Artist"))
        assert sorted(a.path.get("") for a in artists) == ["", str(root / "a" / "Artist"), str(root / "b" / "Artist")]

        (song,) = await db.read(Song(path=str(loose)))
        assert not song.album.valid

        rescan = await library.scan_library(second)
        assert (rescan.skipped, rescan.errors) == (2, 0)

    async def test_loose_track_beside_same_titled_album_dirs(self, db: LibraryDb, root: Path) -> None:
        touch(root / "Artist" / "Foo CD1" / "a.mp3")
        touch(root / "Artist" / "Foo CD2" / "b.mp3")
        tags = FakeTags({name: {"album": "Foo"} for name in ("a.mp3", "b.mp3", "bonus.mp3")})
        library = make_library(db, tags)
        await library.initialize()
        lib = await db.add_library("main", root)
        await library.scan_library(lib)

        bonus = touch(root / "Artist" / "bonus.mp3")
        result = await library.scan_library(lib)
        assert (result.added, result.skipped, result.errors) == (1, 2, 0)

        assert await db.count_table("albums") == 3
        (song,) = await db.read(Song(path=str(bonus)))
        album = await db.read_unique(Album.with_identity(song.album.value))
        assert album.title.get() == "Foo"
        assert not album.path.valid


class TestFailures:
    async def test_failing_file_does_not_stop_scan(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "bad.mp3")
        touch(root / "A" / "X" / "good.mp3")
        library = make_library(db, probe=FakeProbe(failing={"bad.mp3"}))
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert result.errors == 1
        assert result.added == 1

        (song,) = await db.read(Song())
        assert song.path.get().endswith("good.mp3")

    async def test_failed_file_is_rolled_back(self, db: LibraryDb, root: Path) -> None:
        class BrokenAlbums(MediaLibrary):
            async def resolve_album(self, meta, path, artist):
                raise ValueError("boom")

        touch(root / "Artist" / "Album" / "01.mp3")
        library = BrokenAlbums(
            db=db,
            classify=fake_classify,
            read_tags=FakeTags({"01.mp3": {"genre": "Jazz"}}),
            probe=FakeProbe(),
        )
        await library.initialize()
        lib = await db.add_library("main", root)

        result = await library.scan_library(lib)
        assert result.errors == 1
        assert await db.count_table("artists") == 0
        assert await db.count_table("genres") == 0
        assert await db.count_table("songs") == 0

    async def test_missing_root_raises(self, db: LibraryDb, root: Path) -> None:
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("gone", root / "missing")

        with pytest.raises(FileNotFoundError):
            await library.scan_library(lib)

    async def test_scan_libraries_continues_after_failure(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "1.mp3")
        library = make_library(db)
        await library.initialize()
        await db.add_library("gone", root.parent / "missing")
        await db.add_library("main", root)

        results = await library.scan_libraries()
        assert list(results) == ["main"]
        assert results["main"].added == 1

    async def test_cancel(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "1.mp3")
        library = make_library(db)
        await library.initialize()
        lib = await db.add_library("main", root)

        cancel = asyncio.Event()
        cancel.set()
        result = await library.scan_library(lib, cancel=cancel)
        assert result.cancelled
        assert result.scanned == 0
        assert await db.count_table("songs") == 0


class TestSharedSongs:
    async def test_second_library_links_existing_song(self, db: LibraryDb, root: Path) -> None:
        touch(root / "A" / "X" / "1.mp3")
        tags = FakeTags()
        library = make_library(db, tags)
        await library.initialize()
        first = await db.add_library("main", root)
        second = await db.add_library("mirror", root / "A")

        await library.scan_library(first)
        tags.calls.clear()
        result = await library.scan_library(second)

        assert result.linked == 1
        assert result.added == 0
        assert tags.calls == []
        assert await db.count_table("songs") == 1
        assert await db.count_table("songs_in_library") == 2

        (song,) = await db.read(Song())
        assert await db.song_in_library(song, second)

    async def test_library_relative_path_rejected(self, db: LibraryDb) -> None:
        library = make_library(db)
        await library.initialize()
        with pytest.raises(NotAbsError):
            await library.scan_library(Library(id=1, name="bad", path="relative"))
