"""
Playback session controller.

Reconciles the panel with the engine's polled state: the engine is asked
what it is decoding every poll interval, metadata is redrawn only when the
reported path changes, and the elapsed-time line is redrawn every poll.
Keyboard events arrive independently through `handle_key`. Both run as
callbacks on one event loop, so session state is never touched
concurrently.
"""
from dataclasses import dataclass
from typing import Any, Callable, Optional

from logging_config import get_logger
from src.catalog import Album, Track
from src.config import AppConfig
from src.cover import CoverCache
from src.engine import EngineAdapter, now_ms
from src.navigator import TrackNavigator
from src.reconciler import PlaybackClock, format_time

logger = get_logger('session')

KEY_BINDINGS = {
    "q": "quit",
    "space": "pause",
    "n": "next",
    "down": "next",
    "p": "prev",
    "up": "prev",
}
DIGITS = frozenset("0123456789")


@dataclass
class Display:
    """Strings currently shown in the panel."""

    album: str = ""
    artist: str = ""
    title: str = ""
    elapsed: str = ""
    duration: str = ""
    album_info: str = ""

    @property
    def time_line(self) -> str:
        if self.duration:
            return f"{self.elapsed} / {self.duration}"
        return self.elapsed


def album_summary(album: Album) -> str:
    """"<n> songs (<total>)", or "" unless every track has a duration."""
    total = album.total_duration()
    if total is None:
        return ""
    return f"{len(album)} songs ({format_time(total * 1000)})"


def describe(track: Optional[Track], album: Album) -> Display:
    """Display strings for a track; blank fields for an unknown one."""
    if track is None:
        return Display()

    title = track.title
    if track.track:
        title = f"{track.track}. {title}"
    album_name = track.album
    if track.year:
        album_name = f"{album_name} ({track.year})"

    display = Display(album=album_name, artist=track.artist, title=title,
                      album_info=album_summary(album))
    if track.duration:
        display.elapsed = format_time(0)
        display.duration = format_time(track.duration * 1000)
    return display


class PlaybackSession:
    """One playback session: owns all mutable state of the panel.

    Args:
        engine: Already primed engine (album queued, playing)
        album: Sorted album, in queue order
        renderer: Panel renderer (see `src.terminal.TerminalRenderer`)
        loop: asyncio event loop used for timers, futures and cover reads
        config: Panel settings; defaults when omitted
        clock: Wall-clock milliseconds
        key_reader: Optional object with `close()`, restored on quit
    """

    def __init__(self, engine: EngineAdapter, album: Album, renderer: Any, loop: Any,
                 config: Optional[AppConfig] = None,
                 clock: Callable[[], float] = now_ms,
                 key_reader: Optional[Any] = None) -> None:
        self.engine = engine
        self.album = album
        self.renderer = renderer
        self.loop = loop
        self.config = config or AppConfig()
        self.clock = clock
        self.key_reader = key_reader

        self.current_song_path: Optional[str] = None
        self.playback = PlaybackClock()
        self.display = Display()
        self.cover_cache = CoverCache(self.config.database_directory, renderer, loop)
        self.navigator = TrackNavigator(
            len(album), loop, self._jump,
            timeout=self.config.jump_timeout_ms / 1000,
        )

        self.closed = None
        self._on_close: Optional[Callable[[], None]] = None
        self._poll_handle: Optional[Any] = None
        self._startup_handle: Optional[Any] = None
        self._open = False

    @property
    def interval(self) -> float:
        return self.config.poll_interval_ms / 1000

    @property
    def paused(self) -> bool:
        return self.playback.paused

    def open(self, on_close: Optional[Callable[[], None]] = None) -> Any:
        """Start the session and return a future resolved when it closes."""
        self._on_close = on_close
        self.closed = self.loop.create_future()
        self._open = True

        self.renderer.reserve(self.config.panel_lines)
        self._startup_handle = self.loop.call_later(self.interval / 4, self._startup_refresh)
        self.refresh()
        self._poll_handle = self.loop.call_later(self.interval, self._poll)
        logger.info(f"Session opened with {len(self.album)} tracks")
        return self.closed

    def _startup_refresh(self) -> None:
        self._startup_handle = None
        self.refresh()

    def _poll(self) -> None:
        if not self._open:
            return
        self.refresh()
        self._poll_handle = self.loop.call_later(self.interval, self._poll)

    def refresh(self) -> None:
        """One poll tick: metadata first (on track change), then elapsed time."""
        song = self.engine.current_song()
        if song is not None and song.path != self.current_song_path:
            self._change_track(song)

        now = self.clock()
        end_of_decode = song.end_of_decode if song is not None else False
        if self.playback.timer_visible(end_of_decode, now):
            self.display.elapsed = format_time(self.playback.elapsed(now))
            self.renderer.render_elapsed(self.display.elapsed)

    def _change_track(self, song: Any) -> None:
        self.current_song_path = song.path
        track = self.album.find(song.path)
        duration_ms = track.duration * 1000 if track is not None and track.duration else None
        self.playback.start_track(song.first_read_timestamp or self.clock(), duration_ms)

        if track is None:
            logger.warning(f"Engine reported unknown track: {song.path}")
        else:
            self.cover_cache.show_cover(track)
            logger.info(f"Now playing: {track.artist} - {track.title}")

        self.display = describe(track, self.album)
        self.renderer.render_metadata(self.display)

    # ------------------------------------------------------------------
    # Keyboard
    # ------------------------------------------------------------------
    def handle_key(self, name: str) -> None:
        if not self._open:
            return
        action = KEY_BINDINGS.get(name)
        if action == "quit":
            self.quit()
        elif action == "pause":
            self.toggle_pause()
        elif action == "next":
            self.engine.next()
        elif action == "prev":
            self.engine.prev()
        elif name in DIGITS:
            self.navigator.on_digit(name)

    def toggle_pause(self) -> None:
        now = self.clock()
        if self.playback.paused:
            self.engine.play()
            self.playback.resume(now)
        else:
            self.engine.pause()
            self.playback.pause(now)

    def _jump(self, index: int) -> None:
        # forces a full metadata refresh even if the engine stays on the same path
        self.current_song_path = None
        self.engine.goto(index)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------
    def quit(self) -> None:
        if self.key_reader is not None:
            self.key_reader.close()
        self.renderer.show_cursor()
        self.close()

    def close(self) -> None:
        """Cancel every timer and signal completion, exactly once."""
        if not self._open:
            return
        self._open = False
        for handle in (self._poll_handle, self._startup_handle):
            if handle is not None:
                handle.cancel()
        self._poll_handle = self._startup_handle = None
        self.navigator.cancel()

        logger.info("Session closed")
        if not self.closed.done():
            self.closed.set_result(None)
        if self._on_close is not None:
            self._on_close()
