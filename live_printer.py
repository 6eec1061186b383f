import logging
import threading
from typing import List, Protocol, runtime_checkable

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


@runtime_checkable
class LivePrinter(Protocol):
    """Anything with a start/stop lifecycle that a MultiPrinter can drive."""

    def generic_start(self) -> "LivePrinter":
        ...

    def generic_stop(self) -> "LivePrinter":
        ...


class ProgressbarRegistry:
    """
    A thread-safe list of the progress bars that are currently running.
    Bars add themselves on start() and remove themselves on stop().
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._printers: List[LivePrinter] = []

    def add(self, printer: LivePrinter):
        with self._lock:
            self._printers.append(printer)

    def remove(self, printer: LivePrinter) -> bool:
        """Remove a printer by identity. Returns False if it was not registered."""
        with self._lock:
            for i, registered in enumerate(self._printers):
                if registered is printer:
                    del self._printers[i]
                    return True
        return False

    def active(self) -> List[LivePrinter]:
        """Snapshot of the registered printers, in start order."""
        with self._lock:
            return list(self._printers)

    def stop_all(self):
        """Stop every registered printer, e.g. on interpreter shutdown."""
        printers = self.active()
        logger.debug("Stopping %d active progress bar(s)", len(printers))
        for printer in printers:
            printer.generic_stop()

    def __contains__(self, printer) -> bool:
        with self._lock:
            return any(registered is printer for registered in self._printers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._printers)


# Used by progress bars that are not given a registry of their own.
active_progressbars = ProgressbarRegistry()
