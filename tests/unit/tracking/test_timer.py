"""
Unit tests for RepeatingTimer.
"""

import threading

import pytest
from pacematch.tracking.timer import RepeatingTimer


class TestRepeatingTimer:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            RepeatingTimer(0, lambda: None)

    def test_fires_repeatedly_until_stopped(self):
        calls = []
        done = threading.Event()

        def tick():
            calls.append(1)
            if len(calls) >= 3:
                done.set()

        timer = RepeatingTimer(0.01, tick)
        timer.start()
        try:
            assert done.wait(timeout=2)
        finally:
            timer.stop()
        assert not timer.running

    def test_start_and_stop_idempotent(self):
        timer = RepeatingTimer(0.01, lambda: None, name="idempotent")
        timer.start()
        first = timer._thread
        timer.start()
        assert timer._thread is first
        timer.stop()
        timer.stop()
        assert not timer.running
        assert not first.is_alive()

    def test_callback_errors_do_not_stop_timer(self):
        calls = []
        done = threading.Event()

        def flaky():
            calls.append(1)
            if len(calls) >= 2:
                done.set()
            raise RuntimeError("boom")

        timer = RepeatingTimer(0.01, flaky)
        timer.start()
        try:
            assert done.wait(timeout=2)
        finally:
            timer.stop()

    def test_restart_after_stop(self):
        fired = threading.Event()
        timer = RepeatingTimer(0.01, fired.set)
        timer.start()
        timer.stop()
        fired.clear()
        timer.start()
        try:
            assert fired.wait(timeout=2)
        finally:
            timer.stop()
