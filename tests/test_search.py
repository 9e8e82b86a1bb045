import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))
from logging_config import SearchError
from src.catalog import Track
from src.library import album_ref
from src.search import SearchIndex, build_match_query


class TestMatchQuery:
    """Tests for turning user input into FTS queries."""

    def test_words_become_prefix_terms(self):
        assert build_match_query("kind of") == '"kind"* "of"*'

    def test_punctuation_is_dropped(self):
        assert build_match_query('AC/DC: "live"') == '"AC"* "DC"* "live"*'

    def test_empty(self):
        assert build_match_query("  -- ") == ""


class TestSearchIndex:
    """Tests for album lookup."""

    @pytest.fixture(autouse=True)
    def index(self, tmp_path):
        tracks = [
            Track(path="/1", artist="Miles Davis", album="Kind of Blue", title="So What"),
            Track(path="/2", artist="Miles Davis", album="Kind of Blue", title="Blue in Green"),
            Track(path="/3", artist="Miles Davis", album="Bitches Brew", title="Spanish Key"),
            Track(path="/4", artist="John Coltrane", album="Blue Train", title="Locomotion"),
        ]
        self.path = tmp_path / "index.sqlite"
        SearchIndex.build(self.path, tracks, album_ref).close()
        self.index = SearchIndex.open(self.path)
        yield
        self.index.close()

    def test_album_title(self):
        assert self.index.search("kind of blue") == ["Miles Davis - Kind of Blue"]

    def test_prefix_match(self):
        assert self.index.search("bitch") == ["Miles Davis - Bitches Brew"]

    def test_song_title_finds_album(self):
        assert self.index.search("locomotion") == ["John Coltrane - Blue Train"]

    def test_one_result_per_album(self):
        results = self.index.search("miles")
        assert sorted(results) == ["Miles Davis - Bitches Brew", "Miles Davis - Kind of Blue"]

    def test_multiple_albums(self):
        assert set(self.index.search("blue")) == {
            "Miles Davis - Kind of Blue", "John Coltrane - Blue Train",
        }

    def test_no_match(self):
        assert self.index.search("metallica") == []

    def test_empty_query(self):
        assert self.index.search("") == []

    def test_syntax_characters_are_safe(self):
        assert self.index.search('"kind" (blue:') == ["Miles Davis - Kind of Blue"]

    def test_rebuild_replaces_rows(self):
        SearchIndex.build(self.path, [Track(path="/9", artist="Nina", album="Simone")],
                          album_ref).close()
        reopened = SearchIndex.open(self.path)
        try:
            assert reopened.search("miles") == []
            assert reopened.search("nina") == ["Nina - Simone"]
        finally:
            reopened.close()


class TestOpen:
    def test_missing_index(self, tmp_path):
        with pytest.raises(SearchError, match="--reindex"):
            SearchIndex.open(tmp_path / "index.sqlite")
