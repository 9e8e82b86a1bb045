"""
Audio engine for lptunes.

The playback panel only talks to an engine through `EngineAdapter`. The
bundled implementation drives an external decoder process per track.
"""
import math
import os
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from logging_config import get_logger, AudioPlayerError

logger = get_logger('engine')

SUPPORTED_PLAYERS = ("mpg123", "ffplay")

# grace period between SIGTERM and SIGKILL for a replaced decoder
KILL_AFTER_MS = 1000


@dataclass
class CurrentSong:
    """What the engine is decoding right now."""
    path: str
    first_read_timestamp: Optional[float] = None
    end_of_decode: bool = False


def now_ms() -> float:
    return time.time() * 1000


class EngineAdapter:
    """Base class for audio engines."""

    def init(self, channels: int, sample_rate: int) -> None:
        raise NotImplementedError("Subclasses must implement init()")

    def queue(self, path: str) -> None:
        raise NotImplementedError("Subclasses must implement queue()")

    def play(self) -> None:
        raise NotImplementedError("Subclasses must implement play()")

    def pause(self) -> None:
        raise NotImplementedError("Subclasses must implement pause()")

    def next(self) -> None:
        raise NotImplementedError("Subclasses must implement next()")

    def prev(self) -> None:
        raise NotImplementedError("Subclasses must implement prev()")

    def goto(self, track: int) -> None:
        raise NotImplementedError("Subclasses must implement goto()")

    def current_song(self) -> Optional[CurrentSong]:
        raise NotImplementedError("Subclasses must implement current_song()")

    def close(self) -> None:
        raise NotImplementedError("Subclasses must implement close()")


class SubprocessEngine(EngineAdapter):
    """Plays the queue one file at a time through an external decoder.

    Pause and resume stop and continue the decoder's process group. When a
    decoder exits by itself the next queued file starts; after the last one
    the engine keeps reporting it with `end_of_decode` set.
    """

    def __init__(self, executable: str, clock: Callable[[], float] = now_ms) -> None:
        self.executable = executable
        self.clock = clock
        self.channels = 2
        self.sample_rate = 44100
        self.songs: List[str] = []
        self.index = 0
        self.process: Optional[subprocess.Popen] = None
        self.playing = False
        self.first_read_timestamp: Optional[float] = None
        self.paused_at: Optional[float] = None
        self.end_of_decode = False
        self._stopping: List[Tuple[subprocess.Popen, float]] = []
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise AudioPlayerError("Engine has not been initialized yet")

    def init(self, channels: int, sample_rate: int) -> None:
        if self._initialized:
            raise AudioPlayerError("Engine has already been initialized")
        self.channels = channels
        self.sample_rate = sample_rate
        self._initialized = True
        logger.info(f"Engine {self.executable}: {channels} channels @ {sample_rate} Hz")

    def build_command(self, path: str) -> List[str]:
        if os.path.basename(self.executable).startswith("ffplay"):
            return [self.executable, "-nodisp", "-autoexit", "-loglevel", "quiet",
                    "-ac", str(self.channels), "-ar", str(self.sample_rate), path]
        return [self.executable, "-q", "-r", str(self.sample_rate), path]

    def queue(self, path: str) -> None:
        self._ensure_initialized()
        self.songs.append(path)
        if self.playing and self.process is None and not self.end_of_decode:
            self._start(len(self.songs) - 1)

    def play(self) -> None:
        self._ensure_initialized()
        self.playing = True
        if self.process is not None and self.paused_at is not None:
            self._signal(signal.SIGCONT)
            self.first_read_timestamp += self.clock() - self.paused_at
            self.paused_at = None
        elif self.process is None and self.songs and not self.end_of_decode:
            self._start(self.index)

    def pause(self) -> None:
        self._ensure_initialized()
        self.playing = False
        if self.process is not None and self.paused_at is None:
            self._signal(signal.SIGSTOP)
            self.paused_at = self.clock()

    def next(self) -> None:
        self._ensure_initialized()
        if self.index + 1 < len(self.songs):
            self._switch(self.index + 1)

    def prev(self) -> None:
        self._ensure_initialized()
        if self.index > 0:
            self._switch(self.index - 1)

    def goto(self, track: int) -> None:
        self._ensure_initialized()
        if 1 <= track <= len(self.songs):
            self._switch(track - 1)
        else:
            logger.warning(f"Ignoring goto({track}) with {len(self.songs)} queued songs")

    def current_song(self) -> Optional[CurrentSong]:
        self._reap()
        if not self.songs or self.first_read_timestamp is None:
            return None
        return CurrentSong(
            path=self.songs[self.index],
            first_read_timestamp=self.first_read_timestamp,
            end_of_decode=self.end_of_decode,
        )

    def close(self) -> None:
        self._terminate_all()
        self.songs = []
        self.playing = False
        self._initialized = False

    def _switch(self, index: int) -> None:
        self._stop()
        self.index = index
        self.end_of_decode = False
        if self.playing:
            self._start(index)
        else:
            # keep the position; playback starts with the next play()
            self.first_read_timestamp = None

    def _start(self, index: int) -> None:
        path = self.songs[index]
        try:
            self.process = subprocess.Popen(
                self.build_command(path),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                preexec_fn=os.setsid,
            )
        except (subprocess.SubprocessError, OSError) as e:
            logger.error(f"Failed to start {self.executable}: {e}")
            raise AudioPlayerError(f"Failed to start audio player: {e}") from e
        self.index = index
        self.first_read_timestamp = self.clock()
        self.paused_at = None
        self.end_of_decode = False
        logger.info(f"Started playback: {path}")

    def _reap(self) -> None:
        if self._stopping:
            self._reap_stopped()
        if self.process is None or self.process.poll() is None:
            return
        logger.debug(f"Decoder exited with {self.process.returncode}")
        self.process = None
        if self.index + 1 < len(self.songs):
            self._start(self.index + 1)
        else:
            self.end_of_decode = True

    def _signal(self, sig: int) -> None:
        try:
            os.killpg(os.getpgid(self.process.pid), sig)
        except (ProcessLookupError, PermissionError) as e:
            logger.warning(f"Could not signal audio process: {e}")

    def _stop(self) -> None:
        """Ask the current decoder to exit without waiting for it.

        The process is reaped by later `_reap` calls and killed if it is
        still running `KILL_AFTER_MS` later.
        """
        if self.process is None:
            return
        process, self.process = self.process, None
        self.paused_at = None
        if process.poll() is not None:
            return
        try:
            pgid = os.getpgid(process.pid)
            os.killpg(pgid, signal.SIGCONT)
            os.killpg(pgid, signal.SIGTERM)
        except (ProcessLookupError, PermissionError) as e:
            logger.warning(f"Process termination error: {e}")
            return
        self._stopping.append((process, self.clock() + KILL_AFTER_MS))

    def _reap_stopped(self) -> None:
        now = self.clock()
        remaining = []
        for process, deadline in self._stopping:
            if process.poll() is not None:
                logger.debug(f"Stopped audio process: {process.pid}")
                continue
            if now >= deadline:
                try:
                    os.killpg(os.getpgid(process.pid), signal.SIGKILL)
                    logger.warning(f"Force killed audio process: {process.pid}")
                except (ProcessLookupError, PermissionError) as e:
                    logger.warning(f"Force kill failed: {e}")
                    continue
                deadline = math.inf
            remaining.append((process, deadline))
        self._stopping = remaining

    def _terminate_all(self) -> None:
        """Stop every decoder, waiting for them to exit."""
        self._stop()
        for process, _ in self._stopping:
            try:
                process.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                try:
                    os.killpg(os.getpgid(process.pid), signal.SIGKILL)
                    process.wait(timeout=0.5)
                    logger.warning(f"Force killed audio process: {process.pid}")
                except (ProcessLookupError, PermissionError, subprocess.TimeoutExpired) as e:
                    logger.warning(f"Force kill failed: {e}")
        self._stopping = []


def detect_available_player() -> Optional[str]:
    """Return the first supported decoder found on PATH."""
    for player in SUPPORTED_PLAYERS:
        path = shutil.which(player)
        if path:
            return path
    logger.warning("No supported audio player found")
    return None


def create_engine(player_type: str = "auto") -> SubprocessEngine:
    """Build an engine for "auto", "mpg123" or "ffplay"."""
    if player_type == "auto":
        executable = detect_available_player()
    elif player_type in SUPPORTED_PLAYERS:
        executable = shutil.which(player_type)
    else:
        raise AudioPlayerError(f"Unsupported audio player: {player_type}")

    if not executable:
        raise AudioPlayerError(f"Audio player not found: {player_type}")
    return SubprocessEngine(executable)
