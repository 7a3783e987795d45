"""
Tests for herald.core.scanner (classification, tags, walk, path derivation).
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest
from mutagen import MutagenError

from herald.core import MetadataError
from herald.core import scanner
from herald.core.scanner import (
    MediaKind,
    _first_text,
    _parse_genre,
    _parse_int_maybe,
    _parse_number_pair,
    _parse_year_maybe,
    classify,
    extract_metadata,
    iter_media_files,
    strip_to_album,
    strip_to_artist,
)


class TestScannerHelpers:
    def test_first_text_string(self) -> None:
        assert _first_text("hello") == "hello"
        assert _first_text("  spaced  ") == "spaced"
        assert _first_text("") is None

    def test_first_text_list(self) -> None:
        assert _first_text(["first", "second"]) == "first"
        assert _first_text([]) is None

    def test_first_text_frame(self) -> None:
        assert _first_text(SimpleNamespace(text=["Framed"])) == "Framed"

    def test_first_text_none(self) -> None:
        assert _first_text(None) is None

    def test_parse_int_maybe(self) -> None:
        assert _parse_int_maybe("5") == 5
        assert _parse_int_maybe(["42"]) == 42
        assert _parse_int_maybe("abc") is None
        assert _parse_int_maybe(None) is None

    def test_number_pair_text(self) -> None:
        assert _parse_number_pair("3/12") == (3, 12)
        assert _parse_number_pair(["3"]) == (3, None)
        assert _parse_number_pair("x/y") == (None, None)
        assert _parse_number_pair(None) == (None, None)

    def test_number_pair_mp4(self) -> None:
        assert _parse_number_pair([(3, 12)]) == (3, 12)
        assert _parse_number_pair([(1, 0)]) == (1, None)

    def test_parse_year_maybe(self) -> None:
        assert _parse_year_maybe("1999") == 1999
        assert _parse_year_maybe("1999-05-01") == 1999
        assert _parse_year_maybe("unknown") is None
        assert _parse_year_maybe("0001") is None

    def test_parse_genre(self) -> None:
        assert _parse_genre("Rock; Pop") == "Rock"
        assert _parse_genre("Drum & Bass") == "Drum & Bass"
        assert _parse_genre(" / ") is None


class TestClassify:
    def test_audio_by_content(self, tmp_path: Path) -> None:
        # An ID3 header makes it audio, whatever the extension
        path = tmp_path / "notes.txt"
        path.write_bytes(b"ID3\x03\x00\x00\x00\x00\x00\x00" + b"\x00" * 256)
        assert classify(path) is MediaKind.MUSIC

    def test_image_by_content(self, tmp_path: Path) -> None:
        path = tmp_path / "cover"
        path.write_bytes(b"\x89PNG\r\n\x1a\n" + b"\x00" * 256)
        assert classify(path) is MediaKind.IMAGE

    def test_unknown(self, tmp_path: Path) -> None:
        path = tmp_path / "song.mp3"
        path.write_text("definitely not audio\n")
        assert classify(path) is MediaKind.UNKNOWN


class TestExtractMetadata:
    def test_vorbis_style_tags(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        tags = {
            "title": ["Track"],
            "album": ["Album"],
            "albumartist": ["Artist"],
            "artist": ["Guest"],
            "tracknumber": ["3"],
            "tracktotal": ["12"],
            "discnumber": ["1/2"],
            "date": ["1999-05-01"],
            "genre": ["Rock; Pop"],
        }
        monkeypatch.setattr(scanner, "mutagen_file", lambda p: SimpleNamespace(tags=tags))

        meta = extract_metadata(tmp_path / "01 Track.flac")
        assert meta.title == "Track"
        assert meta.album == "Album"
        assert meta.album_artist == "Artist"
        assert meta.artist == "Guest"
        assert (meta.track_number, meta.track_total) == (3, 12)
        assert (meta.disc_number, meta.disc_total) == (1, 2)
        assert meta.year == 1999
        assert meta.genre == "Rock"

    def test_mp4_style_tags(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        tags = {"©nam": ["Song"], "trkn": [(2, 9)], "disk": [(1, 1)], "©day": ["2004"]}
        monkeypatch.setattr(scanner, "mutagen_file", lambda p: SimpleNamespace(tags=tags))

        meta = extract_metadata(tmp_path / "song.m4a")
        assert meta.title == "Song"
        assert (meta.track_number, meta.track_total) == (2, 9)
        assert (meta.disc_number, meta.disc_total) == (1, 1)
        assert meta.year == 2004

    def test_untagged_file_falls_back_to_stem(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(scanner, "mutagen_file", lambda p: SimpleNamespace(tags=None))

        meta = extract_metadata(tmp_path / "07 Untitled.mp3")
        assert meta.title == "07 Untitled"
        assert meta.artist is None
        assert meta.track_number is None

    def test_unsupported_file(self, tmp_path: Path) -> None:
        path = tmp_path / "readme.txt"
        path.write_text("hello\n")
        with pytest.raises(MetadataError):
            extract_metadata(path)

    def test_mutagen_error_is_wrapped(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        def broken(path: Path) -> None:
            raise MutagenError("corrupt")

        monkeypatch.setattr(scanner, "mutagen_file", broken)
        with pytest.raises(MetadataError):
            extract_metadata(tmp_path / "bad.mp3")


class TestWalk:
    async def test_sorted_depth_first(self, tmp_path: Path) -> None:
        (tmp_path / "b").mkdir()
        (tmp_path / "a" / "x").mkdir(parents=True)
        for rel in ("z.txt", "b/2.mp3", "b/1.mp3", "a/x/deep.mp3", "a/top.mp3"):
            (tmp_path / rel).write_bytes(b"")

        paths = [p.relative_to(tmp_path).as_posix() async for p in iter_media_files(tmp_path)]
        assert paths == ["z.txt", "a/top.mp3", "a/x/deep.mp3", "b/1.mp3", "b/2.mp3"]

    async def test_missing_root(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            async for _ in iter_media_files(tmp_path / "nope"):
                pass

    async def test_root_is_a_file(self, tmp_path: Path) -> None:
        path = tmp_path / "file"
        path.write_bytes(b"")
        with pytest.raises(NotADirectoryError):
            async for _ in iter_media_files(path):
                pass


class TestPathDerivation:
    def test_artist_and_album(self) -> None:
        song = Path("/music/Artist/Album/01 Track.mp3")
        artist = strip_to_artist(song, Path("/music"))
        assert artist == Path("/music/Artist")
        assert strip_to_album(song, artist) == Path("/music/Artist/Album")

    def test_nested_disc_folder(self) -> None:
        song = Path("/music/Artist/Album/CD1/01.mp3")
        assert strip_to_album(song, Path("/music/Artist")) == Path("/music/Artist/Album")

    def test_song_in_root(self) -> None:
        assert strip_to_artist(Path("/music/loose.mp3"), Path("/music")) is None

    def test_song_in_artist_dir(self) -> None:
        assert strip_to_album(Path("/music/Artist/single.mp3"), Path("/music/Artist")) is None

    def test_trailing_slash_root(self) -> None:
        assert strip_to_artist(Path("/music/A/b.mp3"), Path("/music/")) == Path("/music/A")

    def test_outside_root(self) -> None:
        with pytest.raises(ValueError):
            strip_to_artist(Path("/elsewhere/A/b.mp3"), Path("/music"))
