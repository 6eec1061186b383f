import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Optional

from live_printer import ProgressbarRegistry, active_progressbars
from models import DEFAULT_PROGRESSBAR, ProgressbarConfig
from repeating_task import RepeatingTask, every
from terminal import (
    clear_line,
    cursor,
    fade,
    get_terminal_width,
    gray,
    light_white,
    print_line,
    print_over,
    remove_color,
    rgb,
    stylize,
    visible_len,
)

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

PERCENTAGE_START_COLOR = (255, 0, 0)
PERCENTAGE_END_COLOR = (0, 255, 0)
RERENDER_INTERVAL = timedelta(seconds=1)

_UNITS = (
    (3_600_000_000_000, "h"),
    (60_000_000_000, "m"),
)


def count_padding(total: int) -> int:
    """Number of digits the current count is zero-padded to."""
    return 1 + int(math.log10(total))


def percentage(current: int, total: int) -> int:
    """Completed percentage, rounded half away from zero."""
    value = current / total * 100
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def filled_cells(current: int, total: int, bar_width: int) -> int:
    """Number of filled bar cells, always within [0, bar_width]."""
    if bar_width <= 0 or total <= 0:
        return 0
    return min(max(current * bar_width // total, 0), bar_width)


def round_duration(duration: timedelta, factor: timedelta) -> timedelta:
    """Round to the nearest multiple of factor, halfway values away from zero."""
    m = factor // timedelta(microseconds=1)
    if m <= 0:
        return duration
    d = duration // timedelta(microseconds=1)
    sign = -1 if d < 0 else 1
    d = abs(d)
    r = d % m
    d = d - r if r + r < m else d + m - r
    return timedelta(microseconds=sign * d)


def _trim_fraction(value: str) -> str:
    if "." in value:
        value = value.rstrip("0").rstrip(".")
    return value


def format_duration(duration: timedelta) -> str:
    """Compact duration text such as '0s', '250ms', '42s' or '1h2m3.5s'."""
    ns = (duration // timedelta(microseconds=1)) * 1000
    if ns == 0:
        return "0s"

    sign = "-" if ns < 0 else ""
    ns = abs(ns)

    if ns < 1_000_000:
        return f"{sign}{_trim_fraction(f'{ns / 1000:.3f}')}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_trim_fraction(f'{ns / 1_000_000:.6f}')}ms"

    out = sign
    started = False
    for unit, suffix in _UNITS:
        count, ns = divmod(ns, unit)
        if count or started:
            out += f"{count}{suffix}"
            started = True
    return out + _trim_fraction(f"{ns / 1_000_000_000:.9f}") + "s"


class ProgressbarPrinter:
    """
    A single-line progress bar drawn in place with carriage returns.

    The bar redraws itself on every change (add, increment, update_title)
    and, when elapsed time is shown, once per second. It stops itself as
    soon as current reaches total. A total of 0 disables the bar: it renders
    nothing and ignores add().
    """
    def __init__(self, config: Optional[ProgressbarConfig] = None, registry: Optional[ProgressbarRegistry] = None):
        self.config = config if config is not None else DEFAULT_PROGRESSBAR
        self.registry = registry if registry is not None else active_progressbars

        self.title = self.config.title
        self.total = self.config.total
        self.current = self.config.current
        self.is_active = False

        self._lock = threading.RLock()
        self._writer = self.config.writer
        self._started_at: Optional[datetime] = self.config.started_at
        self._rerender_task: Optional[RepeatingTask] = None
        self._was_started = False

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(title={self.title!r}, current={self.current}, "
            f"total={self.total}, is_active={self.is_active})"
        )

    @property
    def writer(self):
        return self._writer

    def set_writer(self, writer):
        with self._lock:
            self._writer = writer

    def set_started_at(self, started_at: datetime):
        with self._lock:
            self._started_at = started_at

    def reset_timer(self):
        with self._lock:
            self._started_at = datetime.now()

    def increment(self) -> "ProgressbarPrinter":
        return self.add(1)

    def update_title(self, title: str) -> "ProgressbarPrinter":
        with self._lock:
            self.title = title
        self._update_progress()
        return self

    def add(self, count: int) -> "ProgressbarPrinter":
        with self._lock:
            if self.total == 0:
                return self
            self.current += count
            current = self.current
            total = self.total

        self._update_progress()

        if current >= total:
            # Overshooting raises total so the bar and percentage stay in bounds.
            # Re-read under the lock: a concurrent add may have moved current further.
            with self._lock:
                self.total = max(self.total, self.current)
            self._update_progress()
            self.stop()
        return self

    def _update_progress(self):
        line = self.get_string()
        if not line:
            return
        with self._lock:
            writer = self._writer
        print_over(writer, line)

    def _line_width(self) -> int:
        terminal_width = get_terminal_width()
        max_width = self.config.max_width
        if max_width <= 0 or terminal_width < max_width:
            return terminal_width
        return max_width

    def _elapsed_text(self) -> str:
        rounded = round_duration(self.get_elapsed_time(), self.config.elapsed_time_rounding_factor)
        return format_duration(rounded)

    def get_string(self) -> str:
        """Render the current state to one line. Empty while inactive or disabled."""
        with self._lock:
            if not self.is_active or self.total == 0:
                return ""

            cfg = self.config
            current, total = self.current, self.total
            width = self._line_width()

            # --- 1. Title and counter in front of the bar ---
            before = ""
            if cfg.show_title:
                before += stylize(self.title, cfg.title_style) + " "
            if cfg.show_count:
                padded = f"{current:0{count_padding(total)}d}"
                before += gray("[") + light_white(padded) + gray("/") + light_white(total) + gray("]") + " "

            # --- 2. Percentage and elapsed time behind it ---
            after = " "
            if cfg.show_percentage:
                color = rgb(*fade(PERCENTAGE_START_COLOR, PERCENTAGE_END_COLOR, 0, total, current))
                after += stylize(f"{percentage(current, total):3d}%", color) + " "
            if cfg.show_elapsed_time:
                after += "| " + self._elapsed_text()

            # --- 3. The bar fills whatever width is left ---
            bar_width = width - visible_len(before) - visible_len(after) - 1
            filled = filled_cells(current, total, bar_width)

            bar = cfg.bar_filler * max(bar_width - filled, 0)
            if filled > 0:
                bar = stylize(cfg.bar_character * filled + cfg.last_character, cfg.bar_style) + bar

            line = before + bar + after
            if cfg.raw_output:
                line = remove_color(line)
            return line

    def start(self, *title) -> "ProgressbarPrinter":
        """
        Start drawing the bar.

        An optional title replaces the configured one. Starting a running bar
        does nothing; starting a stopped bar returns a fresh bar built from the
        same configuration, since a stopped bar cannot be revived.
        """
        with self._lock:
            if self.is_active:
                return self
            was_started = self._was_started
            writer = self._writer
        if was_started:
            fresh = self.__class__(self.config, registry=self.registry)
            fresh.set_writer(writer)
            return fresh.start(*title)

        cursor.hide()

        with self._lock:
            if title:
                self.title = " ".join(str(t) for t in title)
            print_title = self.config.raw_output and self.config.show_title
            current_title = self.title
        if print_title:
            print_line(writer, current_title)

        with self._lock:
            self.is_active = True
            self._was_started = True
            if self.config.started_at is None:
                self._started_at = datetime.now()

        self.registry.add(self)
        logger.debug("Progress bar %r started (total=%d)", self.title, self.total)

        self._update_progress()

        if self.config.show_elapsed_time:
            task = every(RERENDER_INTERVAL, self._rerender, name=f"progressbar-{self.title or id(self)}")
            with self._lock:
                self._rerender_task = task
        return self

    def _rerender(self) -> bool:
        if not self.is_active:
            return False
        self._update_progress()
        return True

    def stop(self) -> "ProgressbarPrinter":
        with self._lock:
            task = self._rerender_task
            self._rerender_task = None
            if not self.is_active:
                stopped = False
            else:
                self.is_active = False
                stopped = True
            remove_when_done = self.config.remove_when_done
            writer = self._writer

        if task is not None and task.is_active():
            task.stop()
        if not stopped:
            return self

        cursor.show()

        if remove_when_done:
            clear_line(writer)
            print_over(writer)
        else:
            print_line(writer)

        self.registry.remove(self)
        logger.debug("Progress bar %r stopped at %d/%d", self.title, self.current, self.total)
        return self

    def generic_start(self) -> "ProgressbarPrinter":
        return self.start()

    def generic_stop(self) -> "ProgressbarPrinter":
        return self.stop()

    def get_elapsed_time(self) -> timedelta:
        """Wall-clock time since the bar was started."""
        with self._lock:
            started_at = self._started_at
        if started_at is None:
            return timedelta(0)
        return datetime.now() - started_at
