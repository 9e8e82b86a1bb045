"""
Jump-to-track by typing its number.

Pressing "5" jumps to the fifth track, "01" to the first and "10" to the
tenth. When the digits typed so far could still grow into another track
number ("1" in a 15-track album) the jump waits for a short debounce
window before settling on what was typed.
"""
from typing import Any, Callable, Optional

from logging_config import get_logger

logger = get_logger('navigator')

JUMP_TIMEOUT: float = 0.5


class TrackNavigator:
    """Resolve digit key presses into a 1-based track index.

    Args:
        count: Number of tracks in the album
        scheduler: Object with `call_later(delay, callback)` returning a
            cancelable handle (an asyncio event loop)
        on_jump: Called with the resolved 1-based index
        timeout: Debounce window in seconds
    """

    def __init__(self, count: int, scheduler: Any,
                 on_jump: Callable[[int], None],
                 timeout: float = JUMP_TIMEOUT) -> None:
        self.count = count
        self.scheduler = scheduler
        self.on_jump = on_jump
        self.timeout = timeout
        self.buffer: str = ""
        self._timer: Optional[Any] = None

    @property
    def width(self) -> int:
        return len(str(self.count)) if self.count > 0 else 0

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def candidates(self, digits: str) -> list:
        """Track indices whose number starts with `digits`."""
        padded = digits.startswith("0")
        result = []
        for i in range(1, self.count + 1):
            label = str(i).zfill(self.width) if padded else str(i)
            if label.startswith(digits):
                result.append(i)
        return result

    def on_digit(self, digit: str) -> None:
        self._cancel_timer()
        self.buffer += digit
        matches = self.candidates(self.buffer)
        if len(matches) == 1:
            self.buffer = ""
            self._jump(matches[0])
        else:
            self._timer = self.scheduler.call_later(self.timeout, self._expire)

    def cancel(self) -> None:
        """Drop any pending input."""
        self._cancel_timer()
        self.buffer = ""

    def _expire(self) -> None:
        self._timer = None
        digits, self.buffer = self.buffer, ""
        n = int(digits) if digits.isdigit() else 0
        if 1 <= n <= self.count:
            self._jump(n)
        else:
            logger.debug(f"Discarding track number input {digits!r}")

    def _jump(self, index: int) -> None:
        logger.debug(f"Jumping to track {index}")
        self.on_jump(index)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
