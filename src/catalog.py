"""
Track catalog for lptunes.

A session plays exactly one album. The album is sorted once when the
session starts and that order is the engine's queue order and the
1-based index space for goto/next/prev.
"""
import locale
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Union

MIN_SAMPLE_RATE: int = 44100
SIBLING_COVER_NAME: str = "cover.jpg"


@dataclass(frozen=True)
class EmbeddedCover:
    """Cover image stored in the database's deduplicated cover table."""
    index: int


@dataclass(frozen=True)
class SiblingCover:
    """Cover image file lying next to the track."""
    path: str


Artwork = Union[EmbeddedCover, SiblingCover]


def artwork_path(artwork: Artwork, database_dir: Union[str, Path]) -> str:
    """Resolve an artwork source to the file holding the image."""
    if isinstance(artwork, EmbeddedCover):
        return str(Path(database_dir) / f"cover{artwork.index}")
    if isinstance(artwork, SiblingCover):
        return artwork.path
    raise TypeError(f"Unknown artwork source: {artwork!r}")


@dataclass(frozen=True)
class Track:
    """A single track record as produced by the reindexer.

    Attributes:
        path: Absolute file path, unique within a session
        artist: Display artist
        album: Display album name
        title: Display title
        track: 1-based position within the album, if tagged
        year: Release year, if tagged
        duration: Length in seconds, if known
        sample_rate: Sample rate in Hz, if known
        cover: Index into the cover table, if the file embeds a picture
    """

    path: str
    artist: str = ""
    album: str = ""
    title: str = ""
    track: Optional[int] = None
    year: Optional[int] = None
    duration: Optional[float] = None
    sample_rate: Optional[int] = None
    cover: Optional[int] = None

    @property
    def artwork(self) -> Artwork:
        if self.cover is not None:
            return EmbeddedCover(self.cover)
        return SiblingCover(str(Path(self.path).parent / SIBLING_COVER_NAME))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Track":
        return cls(
            path=data["path"],
            artist=data.get("artist") or "",
            album=data.get("album") or "",
            title=data.get("title") or "",
            track=data.get("track"),
            year=data.get("year"),
            duration=data.get("duration"),
            sample_rate=data.get("sampleRate"),
            cover=data.get("cover"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "path": self.path,
            "artist": self.artist,
            "album": self.album,
            "title": self.title,
        }
        optional = {
            "track": self.track,
            "year": self.year,
            "duration": self.duration,
            "sampleRate": self.sample_rate,
            "cover": self.cover,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        return data


def _title_key(title: str) -> str:
    return locale.strxfrm(title.casefold())


def _track_order(track: Track) -> Tuple[int, int, str]:
    if track.track:
        return (0, track.track, "")
    return (1, 0, _title_key(track.title))


class Album:
    """Immutable, ordered track list for one playback session."""

    __slots__ = ('_tracks',)

    def __init__(self, tracks: Iterable[Track]) -> None:
        self._tracks: Tuple[Track, ...] = tuple(tracks)

    def __len__(self) -> int:
        return len(self._tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self._tracks)

    def __getitem__(self, index: int) -> Track:
        return self._tracks[index]

    def __repr__(self) -> str:
        return f"Album({len(self._tracks)} tracks)"

    @property
    def paths(self) -> Tuple[str, ...]:
        return tuple(t.path for t in self._tracks)

    def find(self, path: Optional[str]) -> Optional[Track]:
        """Return the track with the given path, or None."""
        for track in self._tracks:
            if track.path == path:
                return track
        return None

    def total_duration(self) -> Optional[float]:
        """Sum of all durations, or None if any track lacks one."""
        total = 0.0
        for track in self._tracks:
            if not track.duration:
                return None
            total += track.duration
        return total or None

    def best_sample_rate(self) -> int:
        rates = [t.sample_rate for t in self._tracks if t.sample_rate]
        return max([MIN_SAMPLE_RATE] + rates)


def sort_album(tracks: Iterable[Track]) -> Album:
    """Sort tracks into session order.

    Numbered tracks come first, by number. Untagged tracks follow, by
    title (locale-aware, case-insensitive). The sort is stable, so tracks
    with equal keys keep their input order.
    """
    return Album(sorted(tracks, key=_track_order))
