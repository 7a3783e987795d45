from __future__ import annotations

import asyncio
import logging
import os
import re
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import filetype
from mutagen import File as mutagen_file
from mutagen import MutagenError

from herald.core import MetadataError

logger = logging.getLogger(__name__)


class MediaKind(Enum):
    """What a file is, judged from its content (magic bytes), not its extension."""

    MUSIC = "music"
    IMAGE = "image"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class TrackMetadata:
    """
    Normalized tags extracted from an audio file.

    Every field except `path` and `title` may be missing. `title` falls back
    to the file stem.
    """

    path: Path
    title: str
    artist: str | None = None
    album: str | None = None
    album_artist: str | None = None
    genre: str | None = None
    track_number: int | None = None
    track_total: int | None = None
    disc_number: int | None = None
    disc_total: int | None = None
    year: int | None = None


def classify(path: Path) -> MediaKind:
    """Sniff the file header. Reads at most a few KB."""
    name = str(path)
    if filetype.is_audio(name):
        return MediaKind.MUSIC
    if filetype.is_image(name):
        return MediaKind.IMAGE
    return MediaKind.UNKNOWN


def _clean_str(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip()
    return s if s else None


def _first_text(value: Any) -> str | None:
    """
    Mutagen returns different shapes depending on container/tag type:
    - ID3 frames
    - lists of strings
    - plain strings
    - objects with `.text`
    We normalize to a single string (first item if multiple).
    """
    if value is None:
        return None

    if isinstance(value, (list, tuple)):
        if not value:
            return None
        return _first_text(value[0])

    # Mutagen ID3 frames often have `.text` list
    text = getattr(value, "text", None)
    if text is not None:
        return _first_text(text)

    return _clean_str(str(value))


def _parse_int_maybe(value: Any) -> int | None:
    s = _first_text(value)
    if not s:
        return None
    try:
        return int(s)
    except ValueError:
        return None


def _parse_number_pair(value: Any) -> tuple[int | None, int | None]:
    """
    Parse a position tag into (number, total).

    Shapes:
    - "3", "3/12" (ID3 TRCK/TPOS, Vorbis)
    - [(3, 12)] (MP4 trkn/disk)
    """
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], tuple):
        pair = value[0]
        number = int(pair[0]) if len(pair) > 0 and pair[0] else None
        total = int(pair[1]) if len(pair) > 1 and pair[1] else None
        return number, total

    s = _first_text(value)
    if not s:
        return None, None
    head, _, tail = s.partition("/")
    return _parse_int_maybe(head), _parse_int_maybe(tail)


def _parse_year_maybe(value: Any) -> int | None:
    """
    Accept "1999" or "1999-01-01" or "1999/.." formats.
    """
    s = _first_text(value)
    if not s:
        return None

    match = re.search(r"\d{4}", s)
    if match is None:
        return None
    year = int(match.group(0))
    # sanity range
    return year if 1000 <= year <= 3000 else None


def _parse_genre(value: Any) -> str | None:
    """
    First genre of a possibly multi-valued tag.

    Common separators: ; / , (but not & which is often intentional like "Drum & Bass")
    """
    s = _first_text(value)
    if not s:
        return None
    parts = [p.strip() for p in re.split(r"\s*[;/,]\s*", s)]
    return next((p for p in parts if p), None)


def _tags_get(tags: Any, keys: Iterable[str]) -> Any:
    if not tags:
        return None
    for k in keys:
        if k in tags:
            return tags[k]
    return None


def extract_metadata(path: Path) -> TrackMetadata:
    """
    Extract tags using mutagen.

    This function is synchronous; the pipeline runs it in a thread.
    Raises `MetadataError` when the file cannot be parsed.
    """
    try:
        audio = mutagen_file(path)
    except MutagenError as e:
        raise MetadataError(f"unreadable tags in {path}: {e}") from e
    if audio is None:
        raise MetadataError(f"unsupported or unreadable audio file: {path}")

    tags = audio.tags

    # Keys: ID3=TIT2, Vorbis=title, MP4=©nam
    title = _first_text(_tags_get(tags, ("TIT2", "title", "TITLE", "©nam"))) or path.stem
    # Keys: ID3=TPE1, Vorbis=artist, MP4=©ART
    artist = _first_text(_tags_get(tags, ("TPE1", "artist", "ARTIST", "©ART")))
    # Keys: ID3=TALB, Vorbis=album, MP4=©alb
    album = _first_text(_tags_get(tags, ("TALB", "album", "ALBUM", "©alb")))
    # Keys: ID3=TPE2, Vorbis=albumartist, MP4=aART
    album_artist = _first_text(
        _tags_get(tags, ("TPE2", "albumartist", "ALBUMARTIST", "aART", "ALBUM ARTIST"))
    )
    # Keys: ID3=TCON, Vorbis=genre, MP4=©gen
    genre = _parse_genre(_tags_get(tags, ("TCON", "genre", "GENRE", "©gen")))

    # Keys: ID3=TRCK, Vorbis=tracknumber, MP4=trkn
    track_number, track_total = _parse_number_pair(
        _tags_get(tags, ("TRCK", "tracknumber", "TRACKNUMBER", "trkn"))
    )
    if track_total is None:
        track_total = _parse_int_maybe(
            _tags_get(tags, ("tracktotal", "TRACKTOTAL", "totaltracks", "TOTALTRACKS"))
        )
    # Keys: ID3=TPOS, Vorbis=discnumber, MP4=disk
    disc_number, disc_total = _parse_number_pair(
        _tags_get(tags, ("TPOS", "discnumber", "DISCNUMBER", "disk"))
    )
    if disc_total is None:
        disc_total = _parse_int_maybe(
            _tags_get(tags, ("disctotal", "DISCTOTAL", "totaldiscs", "TOTALDISCS"))
        )

    # Keys: ID3=TDRC/TYER, Vorbis=date, MP4=©day
    year = _parse_year_maybe(_tags_get(tags, ("TDRC", "TYER", "date", "DATE", "YEAR", "©day")))

    return TrackMetadata(
        path=path,
        title=title,
        artist=artist,
        album=album,
        album_artist=album_artist,
        genre=genre,
        track_number=track_number,
        track_total=track_total,
        disc_number=disc_number,
        disc_total=disc_total,
        year=year,
    )


def _walk(root: Path, follow_symlinks: bool) -> list[Path]:
    """Depth-first, sorted. Any traversal error is raised."""

    def _raise(err: OSError) -> None:
        raise err

    paths: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_raise, followlinks=follow_symlinks):
        dirnames.sort()
        for name in sorted(filenames):
            p = Path(dirpath) / name
            if not follow_symlinks and p.is_symlink():
                continue
            paths.append(p)
    return paths


async def iter_media_files(root: Path, *, follow_symlinks: bool = False) -> AsyncIterator[Path]:
    """
    Yield every file under `root`, depth-first in sorted order.

    The walk runs in a thread to avoid blocking the event loop on large trees.
    Unlike per-file problems, a traversal error (missing root, unreadable
    directory) is raised to the caller.
    """
    if not root.exists():
        raise FileNotFoundError(root)
    if not root.is_dir():
        raise NotADirectoryError(root)

    paths = await asyncio.to_thread(_walk, root, follow_symlinks)
    for p in paths:
        yield p


def _strip_to(path: Path, parent: Path) -> Path | None:
    """
    Walk up from `path` until the next step up is `parent`.

    Returns None when `path` sits directly in `parent`.
    """
    if path.parent == parent:
        return None
    current = path
    while current.parent != parent:
        if current.parent == current:
            raise ValueError(f"{path} is not under {parent}")
        current = current.parent
    return current


def strip_to_artist(song_path: Path, library_root: Path) -> Path | None:
    """The artist directory of a song: the top-level directory under the library root."""
    return _strip_to(Path(song_path), Path(library_root))


def strip_to_album(song_path: Path, artist_path: Path) -> Path | None:
    """The album directory of a song: the directory directly under the artist directory."""
    return _strip_to(Path(song_path), Path(artist_path))
