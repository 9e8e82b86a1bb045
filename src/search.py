"""
Full-text album search backed by an sqlite FTS5 table.
"""
import re
import sqlite3
from pathlib import Path
from typing import Callable, Iterable, List, Union

from logging_config import get_logger, SearchError
from src.catalog import Track

logger = get_logger('search')

SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS tracks_fts USING fts5(
    ref UNINDEXED,
    artist,
    album,
    title
)
"""


def build_match_query(query: str) -> str:
    """Turn free text into an FTS5 query: every word, prefix-matched.

    Words are quoted so characters like '-' or ':' never reach the FTS
    parser as syntax.
    """
    words = re.findall(r"\w+", query, flags=re.UNICODE)
    return " ".join(f'"{w}"*' for w in words)


class SearchIndex:
    """Album lookup over artist, album and title of every track."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @classmethod
    def build(cls, path: Union[str, Path], tracks: Iterable[Track],
              ref: Callable[[Track], str]) -> "SearchIndex":
        try:
            conn = sqlite3.connect(str(path))
            conn.execute("DROP TABLE IF EXISTS tracks_fts")
            conn.execute(SCHEMA)
            conn.executemany(
                "INSERT INTO tracks_fts (ref, artist, album, title) VALUES (?, ?, ?, ?)",
                [(ref(t), t.artist, t.album, t.title) for t in tracks],
            )
            conn.commit()
        except sqlite3.Error as e:
            raise SearchError(f"Failed to build search index {path}: {e}") from e
        logger.debug(f"Built search index at {path}")
        return cls(conn)

    @classmethod
    def open(cls, path: Union[str, Path]) -> "SearchIndex":
        if not Path(path).exists():
            raise SearchError(f"No search index at {path}; run with --reindex first")
        try:
            return cls(sqlite3.connect(str(path)))
        except sqlite3.Error as e:
            raise SearchError(f"Failed to open search index {path}: {e}") from e

    def search(self, query: str) -> List[str]:
        """Album refs matching `query`, best match first."""
        match = build_match_query(query)
        if not match:
            return []
        try:
            rows = self.conn.execute(
                "SELECT ref FROM tracks_fts WHERE tracks_fts MATCH ? ORDER BY rank",
                (match,),
            ).fetchall()
        except sqlite3.Error as e:
            raise SearchError(f"Search failed for {query!r}: {e}") from e
        # one entry per album, at the position of its best-ranked track
        return list(dict.fromkeys(row[0] for row in rows))

    def close(self) -> None:
        self.conn.close()
