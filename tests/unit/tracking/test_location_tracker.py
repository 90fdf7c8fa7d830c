"""
Unit tests for LocationTracker.

A scripted geolocation provider pushes fixes and errors; the fake clock
controls the write throttle.
"""

import pytest
from pacematch.tracking.geolocation import (
    PERMISSION_DENIED,
    POSITION_UNAVAILABLE,
    TIMEOUT,
    Position,
    PositionOptions,
)
from pacematch.tracking.location_tracker import LocationTracker
from pacematch.utils.errors import (
    InvalidInputError,
    LocationPermissionDeniedError,
    LocationUnavailableError,
    StoreUnavailableError,
)


@pytest.fixture
def errors():
    return []


@pytest.fixture
def tracker(geolocation, memory_store, clock, errors):
    return LocationTracker(
        geolocation, memory_store, "me", clock=clock, on_error=errors.append
    )


class TestThrottledWrites:
    """Write-back cadence."""

    def test_first_fix_written_immediately(self, tracker, geolocation, memory_store, clock):
        tracker.start()
        geolocation.emit(10.0, 10.0)
        doc = memory_store.data["users"]["me"]
        assert doc["lat"] == 10.0
        assert doc["timestamp"] == clock.now
        assert doc["visible"] is True

    def test_fixes_within_throttle_only_update_last_known(
        self, tracker, geolocation, memory_store, clock
    ):
        tracker.start()
        geolocation.emit(10.0, 10.0)
        clock.advance(5000)
        geolocation.emit(10.0, 10.001)

        assert len(memory_store.writes_to("users/me")) == 1
        assert tracker.last_known_location.lng == 10.001

        clock.advance(2500)
        geolocation.emit(10.0, 10.002)
        writes = memory_store.writes_to("users/me")
        assert len(writes) == 2
        assert writes[-1]["lng"] == 10.002

    def test_restart_writes_first_fix_again(self, tracker, geolocation, memory_store, clock):
        tracker.start()
        geolocation.emit(10.0, 10.0)
        tracker.stop()
        clock.advance(1000)
        tracker.start()
        geolocation.emit(10.0, 10.001)
        assert len(memory_store.writes_to("users/me")) == 2

    def test_handle_position_reports_write(self, tracker, clock):
        assert tracker.handle_position(Position(10.0, 10.0)) is True
        assert tracker.handle_position(Position(10.0, 10.0)) is False

    def test_on_location_called_for_every_fix(self, geolocation, memory_store, clock):
        seen = []
        tracker = LocationTracker(
            geolocation, memory_store, "me", clock=clock, on_location=seen.append
        )
        tracker.start()
        geolocation.emit(10.0, 10.0)
        geolocation.emit(10.0, 10.001)
        assert [p.lng for p in seen] == [10.0, 10.001]

    def test_hidden_user_written_with_visible_false(self, geolocation, memory_store, clock):
        tracker = LocationTracker(geolocation, memory_store, "me", visible=False, clock=clock)
        tracker.start()
        geolocation.emit(10.0, 10.0)
        assert memory_store.data["users"]["me"]["visible"] is False

    def test_write_failure_reported_and_tracking_continues(
        self, tracker, geolocation, memory_store, errors
    ):
        memory_store.fail_writes = True
        tracker.start()
        geolocation.emit(10.0, 10.0)

        assert isinstance(errors[0], StoreUnavailableError)
        assert tracker.is_tracking
        assert tracker.last_known_location.lat == 10.0

    def test_unusable_fix_reported(self, tracker, geolocation, memory_store, errors):
        tracker.start()
        geolocation.emit(float("nan"), 10.0)
        assert isinstance(errors[0], InvalidInputError)
        assert memory_store.writes == []
        assert tracker.last_known_location is None

    def test_first_valid_fix_after_unusable_one_written_immediately(
        self, tracker, geolocation, memory_store, clock
    ):
        tracker.start()
        geolocation.emit(float("nan"), 10.0)
        clock.advance(1000)
        geolocation.emit(10.0, 10.0)

        writes = memory_store.writes_to("users/me")
        assert len(writes) == 1
        assert writes[0]["timestamp"] == clock.now

    def test_failed_write_does_not_use_up_throttle_slot(
        self, tracker, geolocation, memory_store, clock, errors
    ):
        memory_store.fail_writes = True
        tracker.start()
        geolocation.emit(10.0, 10.0)
        assert isinstance(errors[0], StoreUnavailableError)

        memory_store.fail_writes = False
        clock.advance(1000)
        geolocation.emit(10.0, 10.001)

        writes = memory_store.writes_to("users/me")
        assert len(writes) == 1
        assert writes[0]["lng"] == 10.001


class TestWatchLifecycle:
    """Start, stop and platform errors."""

    def test_start_is_idempotent(self, tracker, geolocation):
        tracker.start()
        tracker.start()
        assert geolocation.active_watches == 1

    def test_stop_clears_watch_and_is_idempotent(self, tracker, geolocation):
        tracker.start()
        tracker.stop()
        tracker.stop()
        assert geolocation.active_watches == 0
        assert geolocation.cleared == [1]
        assert not tracker.is_tracking

    def test_no_writes_after_stop(self, tracker, geolocation, memory_store):
        tracker.start()
        tracker.stop()
        geolocation.emit(10.0, 10.0)
        assert memory_store.writes == []

    def test_permission_denied_is_terminal(self, tracker, geolocation, errors):
        tracker.start()
        geolocation.fail(PERMISSION_DENIED)

        assert tracker.permission_denied
        assert not tracker.is_tracking
        assert geolocation.active_watches == 0
        assert isinstance(errors[0], LocationPermissionDeniedError)
        assert "permission denied" in tracker.error

        tracker.start()
        assert len(geolocation.options_history) == 1

    def test_transient_errors_retry_with_relaxed_options(self, tracker, geolocation, errors):
        tracker.start()
        geolocation.fail(TIMEOUT)
        geolocation.fail(POSITION_UNAVAILABLE)

        assert errors == []
        assert tracker.is_tracking
        assert geolocation.active_watches == 1
        assert geolocation.options_history[0] == PositionOptions()
        assert geolocation.options_history[-1] == PositionOptions().relaxed()
        assert geolocation.options_history[-1].enable_high_accuracy is False

    def test_error_surfaced_after_retries_exhausted(self, tracker, geolocation, errors):
        tracker.start()
        for _ in range(3):
            geolocation.fail(POSITION_UNAVAILABLE)

        assert len(errors) == 1
        assert isinstance(errors[0], LocationUnavailableError)
        assert tracker.error == "Location information unavailable."

    def test_successful_fix_resets_retries(self, tracker, geolocation, errors):
        tracker.start()
        geolocation.fail(TIMEOUT)
        geolocation.fail(TIMEOUT)
        geolocation.emit(10.0, 10.0)
        geolocation.fail(TIMEOUT)
        assert errors == []
        assert tracker.error is None


class TestPositionOptions:
    def test_relaxed_options(self):
        relaxed = PositionOptions(timeout_ms=10_000, maximum_age_ms=5_000).relaxed()
        assert relaxed.enable_high_accuracy is False
        assert relaxed.timeout_ms == 20_000
        assert relaxed.maximum_age_ms == 30_000
