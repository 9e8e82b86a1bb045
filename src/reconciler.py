"""
Elapsed-time bookkeeping for the playing track.

Elapsed time is always derived from the engine's decode start timestamp,
never from a local tick counter, so missed polls and pauses don't drift.
All timestamps are wall-clock milliseconds.
"""
import math
from typing import Optional

UNBOUNDED: float = math.inf


def elapsed_ms(paused: bool, paused_timestamp: float,
               first_read_timestamp: float, now: float) -> float:
    """Milliseconds since decode start, frozen at the pause moment while paused."""
    return (paused_timestamp if paused else now) - first_read_timestamp


def format_time(ms: float) -> str:
    """Format milliseconds as MM:SS."""
    total = math.floor(ms / 1000)
    seconds = total % 60
    minutes = total // 60
    return f"{minutes:02d}:{seconds:02d}"


class PlaybackClock:
    """Timing state of the current track.

    `start_track` re-baselines `paused_timestamp` to the new decode start;
    that is what keeps elapsed time non-negative when the track changes
    while paused. Do not clamp elapsed values instead.
    """

    def __init__(self) -> None:
        self.started: bool = False
        self.first_read_timestamp: float = 0
        self.duration: float = UNBOUNDED
        self.paused: bool = False
        self.paused_timestamp: float = 0

    def start_track(self, first_read_timestamp: float,
                    duration_ms: Optional[float] = None) -> None:
        self.started = True
        self.first_read_timestamp = first_read_timestamp
        self.duration = UNBOUNDED if duration_ms is None else duration_ms
        self.paused_timestamp = first_read_timestamp

    def pause(self, now: float) -> None:
        self.paused_timestamp = now
        self.paused = True

    def resume(self, now: float) -> None:
        self.first_read_timestamp += now - self.paused_timestamp
        self.paused = False

    def elapsed(self, now: float) -> float:
        return elapsed_ms(self.paused, self.paused_timestamp,
                          self.first_read_timestamp, now)

    def timer_visible(self, end_of_decode: bool, now: float) -> bool:
        """False before any track started, and once decoding ended and the
        counter reached the track length."""
        if not self.started:
            return False
        return not end_of_decode or self.elapsed(now) < self.duration
