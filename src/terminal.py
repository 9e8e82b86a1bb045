"""
Terminal primitives for the playback panel: escape sequences, inline
images and raw keyboard input.
"""
import base64
import io
import os
import termios
import tty
from typing import Any, Callable, Dict, List, Optional, TextIO

from PIL import Image

from logging_config import get_logger

logger = get_logger('terminal')

# =============================================================================
# Escape sequences
# =============================================================================
ESC = "\033"
CSI = ESC + "["

ERASE_END_LINE = CSI + "K"
CURSOR_NEXT_LINE = CSI + "E"
CURSOR_SAVE_POSITION = ESC + "7"
CURSOR_RESTORE_POSITION = ESC + "8"
CURSOR_HIDE = CSI + "?25l"
CURSOR_SHOW = CSI + "?25h"

COLOR_MAP: Dict[str, str] = {
    "gray": "\033[90m",
    "bold": "\033[1m",
    "reset": "\033[0m",
}

# Panel layout, relative to the saved cursor position below the panel
PANEL_LINES: int = 11
TEXT_COLUMN: int = 21
COVER_WIDTH: int = 20
ALBUM_ROW: int = -10
TIME_ROW: int = -4
COVER_ROW: int = -10


def cursor_move(x: int, y: int = 0) -> str:
    """Relative cursor movement (x columns right, y rows down)."""
    result = ""
    if x < 0:
        result += f"{CSI}{-x}D"
    elif x > 0:
        result += f"{CSI}{x}C"
    if y < 0:
        result += f"{CSI}{-y}A"
    elif y > 0:
        result += f"{CSI}{y}B"
    return result


# =============================================================================
# Terminal Image Protocols
# =============================================================================
class TerminalImageProtocol:
    """Inline image protocols the cover can be painted with."""

    ITERM2 = "iterm2"
    KITTY = "kitty"
    BLOCKS = "blocks"
    NONE = "none"

    @classmethod
    def detect(cls, preferred: str = "auto") -> str:
        """Pick the image protocol for this terminal.

        Args:
            preferred: Config override; "auto" inspects the environment
        """
        if preferred in (cls.ITERM2, cls.KITTY, cls.BLOCKS, cls.NONE):
            return preferred

        term = os.environ.get("TERM_PROGRAM", "").lower()
        term_var = os.environ.get("TERM", "").lower()

        if term in ("ghostty",) or os.environ.get("KITTY_WINDOW_ID") or "kitty" in term_var:
            return cls.KITTY
        if "iterm" in term or term == "wezterm" or "vscode" in term:
            return cls.ITERM2
        if term_var in ("", "dumb"):
            return cls.NONE
        return cls.BLOCKS


def image_iterm2(data: bytes, width: int) -> str:
    """iTerm2 inline image escape for raw image bytes."""
    payload = base64.b64encode(data).decode("ascii")
    return f"{ESC}]1337;File=inline=1;width={width}:{payload}\a"


def image_kitty(data: bytes, width: int, chunk_size: int = 4096) -> str:
    """Kitty graphics protocol escape; the image is re-encoded as PNG."""
    with Image.open(io.BytesIO(data)) as im:
        buf = io.BytesIO()
        im.convert("RGBA").save(buf, format="PNG")
    payload = base64.b64encode(buf.getvalue()).decode("ascii")
    chunks = [payload[i:i + chunk_size] for i in range(0, len(payload), chunk_size)] or [""]

    parts: List[str] = []
    for i, chunk in enumerate(chunks):
        more = 1 if i < len(chunks) - 1 else 0
        if i == 0:
            parts.append(f"{ESC}_Ga=T,f=100,c={width},m={more};{chunk}{ESC}\\")
        else:
            parts.append(f"{ESC}_Gm={more};{chunk}{ESC}\\")
    return "".join(parts)


def image_blocks(data: bytes, width: int) -> str:
    """Paint the image with upper-half blocks, two pixel rows per text row."""
    with Image.open(io.BytesIO(data)) as im:
        rows = max(1, width // 2)
        pixels = im.convert("RGB").resize((width, rows * 2))
        lines = []
        for row in range(rows):
            cells = []
            for col in range(width):
                tr, tg, tb = pixels.getpixel((col, row * 2))
                br, bg, bb = pixels.getpixel((col, row * 2 + 1))
                cells.append(f"{CSI}38;2;{tr};{tg};{tb}m{CSI}48;2;{br};{bg};{bb}m▀")
            lines.append("".join(cells) + COLOR_MAP["reset"])
    return CURSOR_NEXT_LINE.join(lines)


def encode_image(data: bytes, width: int, protocol: str) -> str:
    """Escape sequence painting `data` at the cursor, or "" if disabled."""
    if protocol == TerminalImageProtocol.ITERM2:
        return image_iterm2(data, width)
    if protocol == TerminalImageProtocol.KITTY:
        return image_kitty(data, width)
    if protocol == TerminalImageProtocol.BLOCKS:
        return image_blocks(data, width)
    return ""


# =============================================================================
# Renderer
# =============================================================================
class TerminalRenderer:
    """Writes the fixed playback panel.

    Every write is relative to the cursor position saved by `reserve` and
    ends by restoring it, so writes can happen in any order.
    """

    def __init__(self, stream: TextIO, cover_width: int = COVER_WIDTH,
                 use_colors: bool = True,
                 image_protocol: str = TerminalImageProtocol.NONE) -> None:
        self.stream = stream
        self.cover_width = cover_width
        self.use_colors = use_colors
        self.image_protocol = image_protocol

    def _style(self, name: str, text: str) -> str:
        if not self.use_colors or not text:
            return text
        return f"{COLOR_MAP[name]}{text}{COLOR_MAP['reset']}"

    def _write(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def reserve(self, lines: int = PANEL_LINES) -> None:
        """Make room for the panel and remember where it ends."""
        self._write("\n" * lines + CURSOR_SAVE_POSITION + CURSOR_HIDE)

    def _field(self, text: str) -> str:
        return cursor_move(TEXT_COLUMN) + ERASE_END_LINE + text

    def render_metadata(self, display: Any) -> None:
        out = (
            cursor_move(TEXT_COLUMN, ALBUM_ROW) + ERASE_END_LINE + display.album
            + CURSOR_NEXT_LINE + self._field(self._style("gray", display.artist))
            + CURSOR_NEXT_LINE * 2 + self._field(self._style("bold", display.title))
            + CURSOR_NEXT_LINE * 3 + self._field(display.time_line)
            + CURSOR_NEXT_LINE * 2 + self._field(self._style("gray", display.album_info))
            + CURSOR_RESTORE_POSITION
        )
        self._write(out)

    def render_elapsed(self, text: str) -> None:
        self._write(cursor_move(TEXT_COLUMN, TIME_ROW) + text + CURSOR_RESTORE_POSITION)

    def encode_cover(self, data: bytes) -> str:
        """Image escape for `data`; safe to call off the event loop."""
        return encode_image(data, self.cover_width, self.image_protocol)

    def write_cover(self, image: str) -> None:
        if not image:
            return
        self._write(cursor_move(0, COVER_ROW) + image + CURSOR_RESTORE_POSITION)

    def show_cursor(self) -> None:
        self._write(CURSOR_SHOW)


# =============================================================================
# Keyboard
# =============================================================================
ESCAPE_KEYS: Dict[str, str] = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "OA": "up",
    "OB": "down",
}


def decode_keys(text: str) -> List[str]:
    """Split raw terminal input into symbolic key names."""
    keys = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == ESC and text[i + 1:i + 3] in ESCAPE_KEYS:
            keys.append(ESCAPE_KEYS[text[i + 1:i + 3]])
            i += 3
            continue
        if ch == " ":
            keys.append("space")
        elif ch in ("\r", "\n"):
            keys.append("return")
        elif ch == ESC:
            keys.append("escape")
        else:
            keys.append(ch)
        i += 1
    return keys


class KeyReader:
    """Delivers key presses from a tty to `on_key` via the event loop."""

    def __init__(self, loop: Any, fd: int, on_key: Callable[[str], None]) -> None:
        self.loop = loop
        self.fd = fd
        self.on_key = on_key
        self._saved: Optional[list] = None
        self._active = False

    def start(self) -> None:
        if os.isatty(self.fd):
            self._saved = termios.tcgetattr(self.fd)
            tty.setcbreak(self.fd)
        self.loop.add_reader(self.fd, self._on_readable)
        self._active = True

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self.loop.remove_reader(self.fd)
        if self._saved is not None:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, self._saved)
            self._saved = None

    def _on_readable(self) -> None:
        try:
            data = os.read(self.fd, 64)
        except OSError as e:
            logger.warning(f"Keyboard read failed: {e}")
            return
        for key in decode_keys(data.decode("utf-8", errors="ignore")):
            if not self._active:
                break
            self.on_key(key)
