"""
Timer services for cloudsignage.

Every delayed or periodic action (advance timer, schedule poll, heartbeat)
goes through a TimerService so it can be cancelled on teardown and replaced
by a logical clock in tests.
"""

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple


class TimerHandle:
    """Cancellable handle for one scheduled callback."""

    def __init__(self, name: Optional[str] = None):
        self.name = name
        self._cancelled = threading.Event()

    def cancel(self):
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class TimerService:
    """Base class for scheduled-callback primitives."""

    def call_later(
        self, delay: float, callback: Callable[[], None], name: Optional[str] = None
    ) -> TimerHandle:
        """Run callback once after delay seconds."""
        raise NotImplementedError

    def call_every(
        self, interval: float, callback: Callable[[], None], name: Optional[str] = None
    ) -> TimerHandle:
        """Run callback every interval seconds until the handle is cancelled."""
        raise NotImplementedError

    def now(self) -> datetime:
        """Local wall-clock time."""
        return datetime.now()

    def epoch_ms(self) -> int:
        """Wall-clock time as epoch milliseconds."""
        return int(self.now().timestamp() * 1000)


class ThreadingTimerService(TimerService):
    """Runs callbacks on daemon threads."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._handles: List[TimerHandle] = []
        self._lock = threading.Lock()

    def call_later(self, delay, callback, name=None):
        handle = TimerHandle(name)

        def fire():
            if handle.cancelled:
                return
            try:
                callback()
            except Exception as e:
                self.logger.error("Error in timer %s: %s", name or "callback", e, exc_info=True)
            finally:
                self._forget(handle)

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        if name:
            timer.name = name
        self._remember(handle)
        timer.start()
        return handle

    def call_every(self, interval, callback, name=None):
        handle = TimerHandle(name)

        def loop():
            # Event.wait doubles as the sleep and the cancellation check
            while not handle._cancelled.wait(interval):
                try:
                    callback()
                except Exception as e:
                    self.logger.error(
                        "Error in periodic task %s: %s", name or "callback", e, exc_info=True
                    )
            self._forget(handle)

        thread = threading.Thread(target=loop, daemon=True, name=name or "PeriodicTimer")
        self._remember(handle)
        thread.start()
        return handle

    def cancel_all(self):
        """Cancel every outstanding timer."""
        with self._lock:
            handles = list(self._handles)
            self._handles.clear()
        for handle in handles:
            handle.cancel()

    def _remember(self, handle: TimerHandle):
        with self._lock:
            self._handles.append(handle)

    def _forget(self, handle: TimerHandle):
        with self._lock:
            if handle in self._handles:
                self._handles.remove(handle)


class ManualTimerService(TimerService):
    """
    Logical clock for tests and simulations.

    Nothing runs until advance() is called; callbacks then fire in due-time
    order, including ones scheduled by earlier callbacks within the window.
    """

    def __init__(self, start: Optional[datetime] = None):
        self.start = start or datetime(2024, 1, 1, 12, 0)
        self.elapsed = 0.0
        self._queue: List[Tuple[float, int, TimerHandle, Callable[[], None], float]] = []
        self._counter = itertools.count()

    def call_later(self, delay, callback, name=None):
        handle = TimerHandle(name)
        heapq.heappush(
            self._queue, (self.elapsed + delay, next(self._counter), handle, callback, 0.0)
        )
        return handle

    def call_every(self, interval, callback, name=None):
        handle = TimerHandle(name)
        heapq.heappush(
            self._queue, (self.elapsed + interval, next(self._counter), handle, callback, interval)
        )
        return handle

    def advance(self, seconds: float):
        """Move the clock forward, firing everything that falls due."""
        target = self.elapsed + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback, interval = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.elapsed = due
            if interval:
                heapq.heappush(
                    self._queue, (due + interval, next(self._counter), handle, callback, interval)
                )
            callback()
        self.elapsed = target

    def pending(self, name: Optional[str] = None) -> int:
        """Count live timers, optionally only those with the given name."""
        return sum(
            1
            for _, _, handle, _, _ in self._queue
            if not handle.cancelled and (name is None or handle.name == name)
        )

    def now(self) -> datetime:
        return self.start + timedelta(seconds=self.elapsed)
