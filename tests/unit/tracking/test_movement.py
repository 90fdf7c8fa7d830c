"""
Unit tests for stationary detection.
"""

import pytest
from pacematch.tracking.movement import MovementDetector

SECOND = 1000
WINDOW = 60 * SECOND


@pytest.fixture
def events():
    return []


@pytest.fixture
def detector(clock, events):
    d = MovementDetector(
        lambda: events.append("stationary"),
        lambda: events.append("moving"),
        distance_threshold_m=10,
        window_ms=WINDOW,
        clock=clock,
    )
    d.begin()
    return d


def hold_still(detector, clock, seconds, lat=10.0, lng=10.0):
    for _ in range(seconds // 10):
        clock.advance(10 * SECOND)
        detector.add_location(lat, lng)


class TestMovementDetector:
    def test_no_decision_before_window(self, detector, clock, events):
        hold_still(detector, clock, 50)
        assert detector.check() is False
        assert events == []

    def test_stationary_detected_once(self, detector, clock, events):
        hold_still(detector, clock, 60)
        assert detector.check() is True
        assert detector.check() is True
        assert events == ["stationary"]

    def test_small_jitter_still_stationary(self, detector, clock, events):
        for i in range(6):
            clock.advance(10 * SECOND)
            detector.add_location(10.0, 10.0 + (i % 2) * 0.00001)  # ~1m
        assert detector.check() is True

    def test_movement_after_stationary(self, detector, clock, events):
        hold_still(detector, clock, 60)
        detector.check()
        clock.advance(5 * SECOND)
        detector.add_location(10.0, 10.001)  # ~110m
        assert detector.check() is False
        assert events == ["stationary", "moving"]

    def test_paused_suppresses_callback(self, detector, clock, events):
        hold_still(detector, clock, 60)
        assert detector.check(paused=True) is True
        assert events == []

    def test_needs_two_recent_fixes(self, detector, clock, events):
        clock.advance(WINDOW)
        detector.add_location(10.0, 10.0)
        assert detector.check() is False
        assert events == []

    def test_old_fixes_pruned(self, detector, clock):
        hold_still(detector, clock, 60)
        clock.advance(3 * WINDOW)
        detector.add_location(10.0, 10.0)
        assert detector.location_count == 1

    def test_end_resets_state(self, detector, clock, events):
        hold_still(detector, clock, 60)
        detector.check()
        detector.end()
        assert detector.is_stationary is False
        assert detector.check() is False
