"""
Unit tests for timer services.
"""

import threading
from datetime import datetime
from unittest.mock import Mock

from cloudsignage.timers import ManualTimerService, ThreadingTimerService


def test_manual_call_later_fires_once():
    timers = ManualTimerService()
    callback = Mock()
    timers.call_later(5, callback)

    timers.advance(4)
    callback.assert_not_called()
    timers.advance(1)
    callback.assert_called_once()
    timers.advance(100)
    callback.assert_called_once()


def test_manual_call_every_repeats():
    timers = ManualTimerService()
    callback = Mock()
    timers.call_every(2, callback)

    timers.advance(7)

    assert callback.call_count == 3


def test_manual_cancel():
    timers = ManualTimerService()
    callback = Mock()
    handle = timers.call_every(2, callback, name="heartbeat")
    assert timers.pending("heartbeat") == 1

    handle.cancel()
    timers.advance(10)

    callback.assert_not_called()
    assert timers.pending() == 0


def test_manual_fires_in_due_order_including_nested():
    timers = ManualTimerService()
    fired = []

    def first():
        fired.append(("first", timers.elapsed))
        timers.call_later(1, lambda: fired.append(("nested", timers.elapsed)))

    timers.call_later(3, lambda: fired.append(("second", timers.elapsed)))
    timers.call_later(1, first)

    timers.advance(5)

    assert fired == [("first", 1), ("nested", 2), ("second", 3)]


def test_manual_clock():
    timers = ManualTimerService(start=datetime(2024, 1, 7, 23, 59))
    timers.advance(120)

    assert timers.now() == datetime(2024, 1, 8, 0, 1)
    assert timers.epoch_ms() == int(datetime(2024, 1, 8, 0, 1).timestamp() * 1000)


def test_threading_call_later():
    timers = ThreadingTimerService()
    done = threading.Event()

    timers.call_later(0.01, done.set)

    assert done.wait(2.0)


def test_threading_call_every_and_cancel():
    timers = ThreadingTimerService()
    ticks = threading.Semaphore(0)

    handle = timers.call_every(0.01, ticks.release, name="tick")
    assert ticks.acquire(timeout=2.0)
    assert ticks.acquire(timeout=2.0)
    handle.cancel()
    assert handle.cancelled


def test_threading_errors_are_logged_not_raised():
    timers = ThreadingTimerService()
    done = threading.Event()

    def boom():
        done.set()
        raise RuntimeError("boom")

    timers.call_later(0.01, boom)
    assert done.wait(2.0)


def test_threading_cancel_all():
    timers = ThreadingTimerService()
    callback = Mock()
    timers.call_later(0.2, callback)
    timers.cancel_all()

    threading.Event().wait(0.4)

    callback.assert_not_called()
