import concurrent.futures
import dataclasses
import sys
from pathlib import Path
from typing import List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.catalog import Album, Track
from src.engine import CurrentSong, EngineAdapter

EPOCH_MS = 1_700_000_000_000


class FakeHandle:
    """Timer handle of FakeLoop."""

    def __init__(self, when: float, callback, args) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Event loop stand-in with a manual clock.

    Timers only fire from `advance`; executor jobs run synchronously.
    """

    def __init__(self) -> None:
        self.time = 0.0
        self.timers: List[FakeHandle] = []

    def now_ms(self) -> float:
        return EPOCH_MS + self.time * 1000

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.time + delay, callback, args)
        self.timers.append(handle)
        return handle

    def create_future(self):
        return concurrent.futures.Future()

    def run_in_executor(self, executor, func, *args):
        future = concurrent.futures.Future()
        try:
            future.set_result(func(*args))
        except Exception as e:
            future.set_exception(e)
        return future

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.timers if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.pending if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.timers.remove(handle)
            self.time = max(self.time, handle.when)
            handle.callback(*handle.args)
        self.time = target


class FakeEngine(EngineAdapter):
    """Records transport calls and reports whatever `song` is set to."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.queued: List[str] = []
        self.song: Optional[CurrentSong] = None

    def init(self, channels, sample_rate):
        self.calls.append(("init", channels, sample_rate))

    def queue(self, path):
        self.queued.append(path)

    def play(self):
        self.calls.append(("play",))

    def pause(self):
        self.calls.append(("pause",))

    def next(self):
        self.calls.append(("next",))

    def prev(self):
        self.calls.append(("prev",))

    def goto(self, track):
        self.calls.append(("goto", track))

    def current_song(self):
        return self.song

    def close(self):
        self.calls.append(("close",))

    def gotos(self) -> List[int]:
        return [c[1] for c in self.calls if c[0] == "goto"]


class RecordingRenderer:
    """Remembers what the session asked to draw."""

    def __init__(self) -> None:
        self.reserved: List[int] = []
        self.metadata: List[object] = []
        self.elapsed: List[str] = []
        self.covers: List[bytes] = []
        self.cursor_shown = False

    def reserve(self, lines):
        self.reserved.append(lines)

    def render_metadata(self, display):
        self.metadata.append(dataclasses.replace(display))

    def render_elapsed(self, text):
        self.elapsed.append(text)

    def encode_cover(self, data):
        return data

    def write_cover(self, image):
        self.covers.append(image)

    def show_cursor(self):
        self.cursor_shown = True


def make_album(count: int, duration: Optional[float] = 180.0, directory: str = "/music/album") -> Album:
    return Album(
        Track(
            path=f"{directory}/{i:02d}.mp3",
            artist="Artist",
            album="Album",
            title=f"Song {i}",
            track=i,
            year=1999,
            duration=duration,
        )
        for i in range(1, count + 1)
    )


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def renderer():
    return RecordingRenderer()
