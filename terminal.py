import logging
import re
import shutil
import sys
import threading
from typing import Optional, TextIO

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Matches CSI sequences (colors, cursor movement, line clearing).
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[A-Za-z]")


# --- Color formatting for console output ---
class TColors:
    # Basic colors
    CYAN = '\033[36m'
    GRAY = '\033[90m'
    LIGHT_CYAN = '\033[96m'
    LIGHT_WHITE = '\033[97m'

    # Formatting
    ENDC = '\033[0m'


def stylize(text, style: str = "") -> str:
    """Wrap text in an ANSI style prefix and a reset. An empty style returns the text unchanged."""
    text = str(text)
    if not style or not text:
        return text
    return f"{style}{text}{TColors.ENDC}"


def gray(text) -> str:
    return stylize(text, TColors.GRAY)


def light_white(text) -> str:
    return stylize(text, TColors.LIGHT_WHITE)


def rgb(r: int, g: int, b: int) -> str:
    """24-bit foreground color prefix."""
    return f"\033[38;2;{r};{g};{b}m"


def fade(start, end, minimum: float, maximum: float, current: float):
    """
    Linearly interpolate between two RGB tuples.

    `current` is placed on the [minimum, maximum] scale; the result is `start`
    at minimum and `end` at maximum. Channels are truncated to integers.
    """
    span = maximum - minimum
    factor = (current - minimum) / span if span else 0.0
    factor = min(max(factor, 0.0), 1.0)
    return tuple(int(s + (e - s) * factor) for s, e in zip(start, end))


def remove_color(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def visible_len(text: str) -> int:
    """Display length of a string, ignoring embedded escape sequences."""
    return len(remove_color(text))


def get_terminal_width() -> int:
    return shutil.get_terminal_size(fallback=(80, 24)).columns


def write(writer: Optional[TextIO], text: str) -> None:
    """
    Fire-and-forget write to a text stream (stdout when writer is None).
    Failures are reported through logging and never retried.
    """
    stream = writer if writer is not None else sys.stdout
    try:
        stream.write(text)
        stream.flush()
    except (OSError, ValueError) as e:
        # ValueError is what a closed file object raises on write.
        logger.warning("Terminal write failed: %s", e)


def print_over(writer: Optional[TextIO], text: str = "") -> None:
    """Return to the start of the line and print text over the previous content."""
    write(writer, "\r" + text)


def print_line(writer: Optional[TextIO], text: str = "") -> None:
    write(writer, text + "\n")


def clear_line(writer: Optional[TextIO]) -> None:
    print_over(writer, " " * get_terminal_width())


class Cursor:
    """Cursor visibility control. Only emits codes when stdout is an interactive terminal."""

    HIDE = "\x1b[?25l"
    SHOW = "\x1b[?25h"

    def _emit(self, code: str):
        stream = sys.stdout
        isatty = getattr(stream, "isatty", None)
        if isatty is not None and isatty():
            write(stream, code)

    def hide(self):
        self._emit(self.HIDE)

    def show(self):
        self._emit(self.SHOW)


cursor = Cursor()


class TerminalArea:
    """
    A redrawable region of terminal output.

    Each update() moves the cursor back to the top of the previously drawn
    block and rewrites it, clearing leftovers of longer lines and of lines
    that no longer exist. stop() releases the region: the last drawn content
    stays on screen and output continues below it.
    """
    def __init__(self, writer: Optional[TextIO] = None):
        self._lock = threading.Lock()
        self._writer = writer
        self._height = 0
        self.is_active = False

    def set_writer(self, writer: Optional[TextIO]):
        with self._lock:
            self._writer = writer

    def update(self, content: str):
        with self._lock:
            if not self.is_active:
                cursor.hide()
                self.is_active = True
            clear_code = f"\x1b[{self._height}F" if self._height else ""
            body = content.replace("\n", "\x1b[0K\n")
            write(self._writer, f"{clear_code}{body}\x1b[0K\x1b[0J")
            self._height = content.count("\n")

    def stop(self):
        with self._lock:
            if self.is_active:
                cursor.show()
            self.is_active = False
            self._height = 0
