import base64
import json
import pytest
from pathlib import Path
import sys
from types import SimpleNamespace

from mutagen.flac import Picture

sys.path.insert(0, str(Path(__file__).parent.parent))
from logging_config import CatalogError
from src import library
from src.catalog import Track
from src.library import (
    CoverTable, extract_picture, group_albums, load_database, reindex,
    scan_directory, write_database,
)


class FakeAudio:
    """Stands in for a mutagen file object."""

    def __init__(self, tags=None, length=None, sample_rate=None, pictures=None):
        self.tags = tags
        self.info = SimpleNamespace(length=length, sample_rate=sample_rate)
        if pictures is not None:
            self.pictures = pictures


class ID3Tags(dict):
    def __init__(self, frames):
        super().__init__()
        self.frames = frames

    def getall(self, key):
        return self.frames.get(key, [])


def fake_mutagen(files):
    """MutagenFile replacement keyed by file name."""
    def open_file(path, easy=False):
        entry = files.get(Path(path).name)
        if entry is None:
            return None
        if isinstance(entry, Exception):
            raise entry
        return entry
    return open_file


class TestCoverTable:
    """Tests for cover deduplication."""

    def test_identical_images_share_an_index(self):
        covers = CoverTable()
        assert covers.add(b"one") == 0
        assert covers.add(b"two") == 1
        assert covers.add(b"one") == 0
        assert len(covers) == 2


class TestTagParsing:
    """Tests for tag value parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("3", 3), ("3/12", 3), (" 07", 7), ("0", None), ("", None), (None, None), ("A1", None),
    ])
    def test_track_number(self, value, expected):
        assert library._parse_number(value) == expected

    @pytest.mark.parametrize("value,expected", [
        ("1999", 1999), ("1999-04-01", 1999), ("released 2003", 2003), ("n/a", None), (None, None),
    ])
    def test_year(self, value, expected):
        assert library._parse_year(value) == expected


class TestExtractPicture:
    """Tests for embedded picture lookup across tag formats."""

    def test_flac_pictures(self):
        picture = SimpleNamespace(data=b"flac-art")
        assert extract_picture(FakeAudio(tags={}, pictures=[picture])) == b"flac-art"

    def test_id3_apic(self):
        tags = ID3Tags({"APIC": [SimpleNamespace(data=b"apic-art")]})
        assert extract_picture(FakeAudio(tags=tags)) == b"apic-art"

    def test_mp4_covr(self):
        assert extract_picture(FakeAudio(tags={"covr": [b"mp4-art"]})) == b"mp4-art"

    def test_ogg_picture_block(self):
        picture = Picture()
        picture.data = b"ogg-art"
        block = base64.b64encode(picture.write()).decode("ascii")
        assert extract_picture(FakeAudio(tags={"metadata_block_picture": [block]})) == b"ogg-art"

    def test_no_tags(self):
        assert extract_picture(FakeAudio(tags=None)) is None


class TestScanDirectory:
    """Tests for reading a music directory."""

    @pytest.fixture
    def music(self, tmp_path):
        album = tmp_path / "Band" / "Record"
        album.mkdir(parents=True)
        for name in ("01.mp3", "02.mp3", "notes.txt", "cover.jpg", "broken.mp3"):
            (album / name).write_bytes(b"")
        return tmp_path

    def install(self, monkeypatch, files):
        monkeypatch.setattr(library, "MutagenFile", fake_mutagen(files))

    def test_reads_tags(self, monkeypatch, music):
        art = SimpleNamespace(data=b"art")
        self.install(monkeypatch, {
            "01.mp3": FakeAudio(tags={"artist": ["Band"], "album": ["Record"], "title": ["First"],
                                      "tracknumber": ["1/2"], "date": ["1999"]},
                                length=125.0, sample_rate=44100, pictures=[art]),
            "02.mp3": FakeAudio(tags={"artist": ["Band"], "album": ["Record"]},
                                length=60.0, sample_rate=48000, pictures=[art]),
            "broken.mp3": library.MutagenError("bad header"),
        })

        covers = CoverTable()
        tracks = scan_directory(music, covers)

        assert [t.title for t in tracks] == ["First", "02"]
        first = tracks[0]
        assert (first.artist, first.album, first.track, first.year) == ("Band", "Record", 1, 1999)
        assert first.duration == 125.0
        assert first.sample_rate == 44100
        assert tracks[0].cover == tracks[1].cover == 0
        assert len(covers) == 1

    def test_skips_images_and_unreadable_files(self, monkeypatch, music, caplog):
        self.install(monkeypatch, {"broken.mp3": library.MutagenError("bad header")})

        assert scan_directory(music) == []
        assert "bad header" in caplog.text


class TestDatabase:
    """Tests for writing and loading the database directory."""

    def setup_method(self):
        self.tracks = [
            Track(path="/m/a1.mp3", artist="Band", album="Record", title="One", track=1, cover=0),
            Track(path="/m/a2.mp3", artist="Band", album="Record", title="Two", track=2, cover=0),
            Track(path="/m/b1.mp3", artist="Other", album="Live", title="Intro", duration=10.0),
        ]

    def test_group_albums(self):
        albums = group_albums(self.tracks)
        assert list(albums) == ["Band - Record", "Other - Live"]
        assert len(albums["Band - Record"]) == 2

    def test_write_then_load(self, tmp_path):
        covers = CoverTable()
        covers.add(b"art")
        db = write_database(tmp_path / "db", self.tracks, covers)

        assert (db / "cover0").read_bytes() == b"art"
        assert (db / library.INDEX_FILE).exists()
        albums = load_database(db)
        assert albums["Band - Record"][1].title == "Two"
        assert albums["Other - Live"][0].duration == 10.0

    def test_write_replaces_old_database(self, tmp_path):
        db = tmp_path / "db"
        db.mkdir()
        (db / "cover9").write_bytes(b"stale")

        write_database(db, self.tracks, CoverTable())

        assert not (db / "cover9").exists()

    def test_database_format(self, tmp_path):
        db = write_database(tmp_path / "db", self.tracks[2:], CoverTable())
        data = json.loads((db / library.DATABASE_FILE).read_text())

        assert data == {"albums": {"Other - Live": [{
            "path": "/m/b1.mp3", "artist": "Other", "album": "Live",
            "title": "Intro", "duration": 10.0,
        }]}}

    def test_missing_database(self, tmp_path):
        with pytest.raises(CatalogError, match="--reindex"):
            load_database(tmp_path / "nowhere")

    def test_corrupt_database(self, tmp_path):
        (tmp_path / library.DATABASE_FILE).write_text("{not json")
        with pytest.raises(CatalogError):
            load_database(tmp_path)

    def test_reindex_counts(self, tmp_path, monkeypatch):
        music = tmp_path / "music"
        music.mkdir()
        (music / "x.mp3").write_bytes(b"")
        monkeypatch.setattr(library, "MutagenFile", fake_mutagen({
            "x.mp3": FakeAudio(tags={"artist": ["A"], "album": ["B"]}),
        }))

        counts = reindex(music, tmp_path / "db")

        assert counts == {"tracks": 1, "albums": 1, "covers": 0}
