"""
Cover art for the playing track.

Covers are only painted when the resolved image differs from the one
already on screen. Reading and encoding the image happen off the poll
loop; only the final terminal write runs on it.
"""
from pathlib import Path
from typing import Any, Optional, Union

from logging_config import get_logger, CoverError
from src.catalog import Track, artwork_path

logger = get_logger('cover')


def read_cover(path: str) -> bytes:
    """Read a cover image, raising CoverError if it can't be read."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise CoverError(f"Cannot read cover {path}: {e}") from e


class CoverCache:
    """Remembers the last painted cover and skips repaints of it.

    Args:
        database_dir: Directory holding the deduplicated cover files
        renderer: Object with `encode_cover(data)` and `write_cover(image)`
        loop: Event loop; loading goes through `loop.run_in_executor`
    """

    def __init__(self, database_dir: Union[str, Path], renderer: Any, loop: Any) -> None:
        self.database_dir = Path(database_dir)
        self.renderer = renderer
        self.loop = loop
        self.current: Optional[str] = None

    def resolve(self, track: Track) -> str:
        return artwork_path(track.artwork, self.database_dir)

    def show_cover(self, track: Track) -> Optional[Any]:
        """Paint the track's cover unless it is already showing.

        Returns the pending read future, or None when nothing was scheduled.
        """
        ref = self.resolve(track)
        if ref == self.current:
            return None
        self.current = ref

        logger.debug(f"Loading cover {ref}")
        future = self.loop.run_in_executor(None, self._load, ref)
        future.add_done_callback(self._on_loaded)
        return future

    def reset(self) -> None:
        self.current = None

    def _load(self, ref: str) -> str:
        return self.renderer.encode_cover(read_cover(ref))

    def _on_loaded(self, future: Any) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error("Cover render failed", exc_info=error)
            return
        self.renderer.write_cover(future.result())
