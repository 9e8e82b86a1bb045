"""
Library reindexing for lptunes.

Scans a music directory, reads tags with mutagen and writes the database
directory the player reads from:

    database.json   {"albums": {"<artist> - <album>": [track, ...]}}
    cover<N>        embedded cover images, deduplicated by content
    index.sqlite    full-text search index over artist/album/title
"""
import base64
import hashlib
import json
import re
import shutil
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from mutagen import File as MutagenFile, MutagenError
from mutagen.flac import Picture

from logging_config import get_logger, CatalogError
from src.catalog import Track
from src.search import SearchIndex

logger = get_logger('library')

DATABASE_FILE = "database.json"
INDEX_FILE = "index.sqlite"
SKIPPED_SUFFIXES = (".png", ".jpg", ".pdf", ".DS_Store", ".sh")


class CoverTable:
    """Embedded cover images, stored once per distinct content."""

    def __init__(self) -> None:
        self.images: List[bytes] = []
        self._by_digest: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self.images)

    def add(self, data: bytes) -> int:
        """Store `data` unless already present; return its index."""
        digest = hashlib.sha256(data).hexdigest()
        index = self._by_digest.get(digest)
        if index is None:
            index = len(self.images)
            self.images.append(data)
            self._by_digest[digest] = index
        return index


def _first(tags, key: str) -> Optional[str]:
    if not tags:
        return None
    values = tags.get(key)
    if not values:
        return None
    value = values[0] if isinstance(values, list) else values
    return str(value).strip() or None


def _parse_number(value: Optional[str]) -> Optional[int]:
    """"3/12" -> 3; None when there is no leading number."""
    if not value:
        return None
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match and int(match.group(1)) > 0 else None


def _parse_year(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    match = re.search(r"\d{4}", value)
    return int(match.group(0)) if match else None


def extract_picture(audio) -> Optional[bytes]:
    """First embedded picture of a mutagen file, whatever its tag format."""
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return pictures[0].data

    tags = getattr(audio, "tags", None)
    if tags is None:
        return None

    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return frames[0].data

    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        return bytes(covers[0])

    blocks = tags.get("metadata_block_picture") if hasattr(tags, "get") else None
    if blocks:
        try:
            return Picture(base64.b64decode(blocks[0])).data
        except (ValueError, MutagenError) as e:
            logger.debug(f"Unreadable picture block: {e}")
    return None


def read_track(path: Path, covers: CoverTable) -> Optional[Track]:
    """Read one file's tags; None if mutagen doesn't recognise it."""
    easy = MutagenFile(str(path), easy=True)
    if easy is None:
        logger.debug(f"Not an audio file: {path}")
        return None

    cover = None
    picture = extract_picture(MutagenFile(str(path)))
    if picture:
        cover = covers.add(picture)

    info = getattr(easy, "info", None)
    return Track(
        path=str(path.resolve()),
        artist=_first(easy.tags, "artist") or "",
        album=_first(easy.tags, "album") or "",
        title=_first(easy.tags, "title") or path.stem,
        track=_parse_number(_first(easy.tags, "tracknumber")),
        year=_parse_year(_first(easy.tags, "date")),
        duration=getattr(info, "length", None) or None,
        sample_rate=getattr(info, "sample_rate", None) or None,
        cover=cover,
    )


def scan_directory(directory: Union[str, Path], covers: Optional[CoverTable] = None) -> List[Track]:
    """Recursively read every audio file below `directory`."""
    covers = covers if covers is not None else CoverTable()
    result: List[Track] = []
    for entry in sorted(Path(directory).iterdir()):
        if entry.name.endswith(SKIPPED_SUFFIXES):
            continue
        if entry.is_dir():
            result.extend(scan_directory(entry, covers))
            continue
        try:
            track = read_track(entry, covers)
        except (MutagenError, OSError) as e:
            logger.warning(f"{entry}: {e}")
            continue
        if track is not None:
            result.append(track)
    return result


def album_ref(track: Track) -> str:
    return f"{track.artist} - {track.album}"


def group_albums(tracks: Iterable[Track]) -> Dict[str, List[Track]]:
    albums: Dict[str, List[Track]] = {}
    for track in tracks:
        albums.setdefault(album_ref(track), []).append(track)
    return albums


def write_database(database_dir: Union[str, Path], tracks: List[Track], covers: CoverTable) -> Path:
    """Replace the database directory with a fresh one."""
    database_dir = Path(database_dir)
    if database_dir.exists():
        shutil.rmtree(database_dir)
    database_dir.mkdir(parents=True)

    albums = group_albums(tracks)
    data = {"albums": {ref: [t.to_dict() for t in items] for ref, items in albums.items()}}
    with open(database_dir / DATABASE_FILE, "w") as f:
        json.dump(data, f, indent=2)

    for i, image in enumerate(covers.images):
        (database_dir / f"cover{i}").write_bytes(image)

    SearchIndex.build(database_dir / INDEX_FILE, tracks, album_ref).close()
    logger.info(f"Wrote {len(tracks)} tracks in {len(albums)} albums, {len(covers)} covers")
    return database_dir


def reindex(directory: Union[str, Path], database_dir: Union[str, Path]) -> Dict[str, int]:
    """Scan `directory` and rebuild the database; returns counts."""
    covers = CoverTable()
    tracks = scan_directory(directory, covers)
    write_database(database_dir, tracks, covers)
    return {
        "tracks": len(tracks),
        "albums": len(group_albums(tracks)),
        "covers": len(covers),
    }


def load_database(database_dir: Union[str, Path]) -> Dict[str, List[Track]]:
    """Albums by ref, as written by `write_database`."""
    path = Path(database_dir) / DATABASE_FILE
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise CatalogError(f"No database at {path}; run with --reindex first") from e
    except (json.JSONDecodeError, IOError) as e:
        raise CatalogError(f"Failed to load database {path}: {e}") from e

    return {
        ref: [Track.from_dict(t) for t in items]
        for ref, items in data.get("albums", {}).items()
    }
