import logging
import threading
from datetime import timedelta
from typing import Callable, Optional, Union

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())

Interval = Union[float, timedelta]


def _seconds(interval: Interval) -> float:
    if isinstance(interval, timedelta):
        return interval.total_seconds()
    return float(interval)


class RepeatingTask:
    """
    Runs a callable on a fixed interval in a background thread.

    The callable returns True to keep going and False to end the loop. The
    first call happens one interval after the task is started.
    """
    def __init__(self, interval: Interval, fn: Callable[[], bool], name: Optional[str] = None):
        self.interval = _seconds(interval)
        if self.interval <= 0:
            raise ValueError(f"Interval must be positive, got {interval!r}")
        self._fn = fn
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name or "repeating-task", daemon=True)

    def start(self) -> "RepeatingTask":
        logger.debug("Starting %s every %.3fs", self._thread.name, self.interval)
        self._thread.start()
        return self

    def _run(self):
        try:
            # wait() returns True as soon as stop() is called, cutting the sleep short.
            while not self._stop_event.wait(self.interval):
                if not self._fn():
                    break
        except Exception:
            logger.exception("%s failed, cancelling it", self._thread.name)
        finally:
            self._stop_event.set()
            logger.debug("%s finished", self._thread.name)

    def stop(self, timeout: Optional[float] = 2.0):
        """Cancel the task and wait for a running tick to finish."""
        self._stop_event.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def join(self, timeout: Optional[float] = None):
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    def is_active(self) -> bool:
        return self._thread.is_alive() and not self._stop_event.is_set()


def every(interval: Interval, fn: Callable[[], bool], name: Optional[str] = None) -> RepeatingTask:
    """Start a RepeatingTask that calls fn every interval until it returns False or is stopped."""
    return RepeatingTask(interval, fn, name=name).start()
