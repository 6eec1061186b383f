# multi_printer.py
import logging
import threading
import time
from datetime import timedelta
from typing import List, Optional, Union

from live_printer import LivePrinter
from models import DEFAULT_MULTI_PRINTER, MultiPrinterConfig
from repeating_task import RepeatingTask, every
from terminal import TerminalArea

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

# Time given to stopped sub-printers to land their final writes before the last redraw.
STOP_GRACE_PERIOD = 0.02


class SyncBuffer:
    """
    A thread-safe, append-only text sink. Any number of producers may write
    to it while one consumer periodically takes a snapshot of its content.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._chunks: List[str] = []

    def write(self, data: Union[str, bytes]) -> int:
        if isinstance(data, bytes):
            # Replace malformed characters rather than failing the producer.
            data = data.decode('utf-8', errors='replace')
        with self._lock:
            self._chunks.append(data)
        return len(data)

    def flush(self):
        pass

    def getvalue(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def __str__(self) -> str:
        return self.getvalue()


def visible_line(content: str) -> str:
    """
    Collapse the output of one stream to the line a terminal would show.

    Producers redraw in place with carriage returns, so only the last
    '\\r'-separated segment is current. A blank last segment (e.g. output
    ending in '\\r') falls back to the latest non-blank one.
    """
    # --- 1. Drop surrounding newlines so a trailing one doesn't hide the content ---
    content = content.strip("\n")

    # --- 2. Keep only the latest override ---
    parts = content.split("\r")
    line = parts[-1]
    for part in reversed(parts):
        if line:
            break
        line = part

    return line.strip("\n\r")


class MultiPrinter:
    """
    Composes several live output streams into one redrawn terminal area.

    Each stream writes to its own SyncBuffer (see new_writer()) exactly as
    it would write to a terminal. While active, a periodic tick collapses
    every buffer to its current line and redraws the whole block at once.
    """
    def __init__(self, config: Optional[MultiPrinterConfig] = None, area: Optional[TerminalArea] = None):
        self.config = config if config is not None else DEFAULT_MULTI_PRINTER
        self.is_active = False
        # Protects config, is_active and both lists.
        self._lock = threading.RLock()
        self._printers: List[LivePrinter] = []
        self._buffers: List[SyncBuffer] = []
        self._area = area if area is not None else TerminalArea(self.config.writer)
        self._task: Optional[RepeatingTask] = None

    @property
    def writer(self):
        return self.config.writer

    @property
    def update_delay(self) -> timedelta:
        return self.config.update_delay

    @property
    def printers(self) -> List[LivePrinter]:
        with self._lock:
            return list(self._printers)

    @property
    def buffers(self) -> List[SyncBuffer]:
        with self._lock:
            return list(self._buffers)

    def set_writer(self, writer):
        with self._lock:
            self.config = self.config.with_writer(writer)
            self._area.set_writer(writer)

    def _copy(self, config: MultiPrinterConfig) -> "MultiPrinter":
        with self._lock:
            clone = self.__class__(config)
            clone._printers = list(self._printers)
            clone._buffers = list(self._buffers)
        return clone

    def with_writer(self, writer) -> "MultiPrinter":
        return self._copy(self.config.with_writer(writer))

    def with_update_delay(self, delay: timedelta) -> "MultiPrinter":
        return self._copy(self.config.with_update_delay(delay))

    def new_writer(self) -> SyncBuffer:
        """Register a new output stream. Streams are drawn top to bottom in registration order."""
        buf = SyncBuffer()
        with self._lock:
            self._buffers.append(buf)
        return buf

    def add_printer(self, printer: LivePrinter):
        """Register a sub-printer to be started and stopped together with this one."""
        with self._lock:
            self._printers.append(printer)

    def get_string(self) -> str:
        buffers = self.buffers
        return "".join(visible_line(buf.getvalue()) + "\n" for buf in buffers)

    def _tick(self) -> bool:
        with self._lock:
            is_active = self.is_active
        if not is_active:
            return False

        self._area.update(self.get_string())
        return True

    def start(self) -> "MultiPrinter":
        with self._lock:
            self.is_active = True
            printers = list(self._printers)
            delay = self.config.update_delay

        logger.debug("Starting multi printer with %d sub-printer(s), %d stream(s)", len(printers), len(self._buffers))
        # A stopped bar starts as a fresh copy; track the copy so stop() reaches it.
        started = [printer.generic_start() for printer in printers]
        with self._lock:
            for old, new in zip(printers, started):
                for i, registered in enumerate(self._printers):
                    if registered is old:
                        self._printers[i] = new
                        break

        self._task = every(delay, self._tick, name="multi-printer-refresh")
        return self

    def stop(self) -> "MultiPrinter":
        with self._lock:
            self.is_active = False
            printers = list(self._printers)
            task = self._task
            self._task = None

        for printer in printers:
            printer.generic_stop()

        # Make sure no tick is mid-redraw when the final frame is drawn.
        if task is not None:
            task.stop()

        time.sleep(STOP_GRACE_PERIOD)
        self._area.update(self.get_string())
        self._area.stop()
        logger.debug("Multi printer stopped")
        return self

    def generic_start(self) -> "MultiPrinter":
        return self.start()

    def generic_stop(self) -> "MultiPrinter":
        return self.stop()
