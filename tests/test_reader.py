from __future__ import annotations

import itertools
import logging
import threading
from typing import Optional

import pytest
import serial

from app.exposition import render_metrics
from app.schemas import Measurement
from fakes import SCENARIO_SERIES, FakeDriver
from models.records import PollOutcome, ReaderPhase
from sensor.device import EmptyResultError, SensorError
from services.errors import DeviceInitializationError
from services.reader import SensorReader
from state.shared_state import SharedState


class RecordingEvent(threading.Event):
    """Stop flag that records wait timeouts instead of sleeping."""

    def __init__(self, set_on_wait: bool = False) -> None:
        super().__init__()
        self.waits: list[Optional[float]] = []
        self._set_on_wait = set_on_wait

    def wait(self, timeout: Optional[float] = None) -> bool:
        self.waits.append(timeout)
        if self._set_on_wait:
            self.set()
        return self.is_set()


def _reader(driver: FakeDriver, state: SharedState, stop_event: threading.Event, **kwargs) -> SensorReader:
    kwargs.setdefault("poll_interval", 0.0)
    kwargs.setdefault("startup_delay", 0.0)
    return SensorReader(lambda: driver, state, stop_event, **kwargs)


def test_successful_poll_publishes_partitioned_measurement() -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver([SCENARIO_SERIES], stop_event=stop)

    reader = _reader(driver, state, stop)
    reader.run()

    latest = state.latest()
    assert latest is not None
    assert latest.mass.model_dump() == {"pm1": 1.1, "pm25": 2.2, "pm4": 3.3, "pm10": 4.4}
    assert latest.number.model_dump() == {
        "pm05": 5.5,
        "pm1": 6.6,
        "pm25": 7.7,
        "pm4": 8.8,
        "pm10": 9.9,
    }
    assert latest.typical_particle_size == 10.1
    assert reader.phase is ReaderPhase.terminated
    assert driver.calls == [
        "reset",
        "start_measurement",
        "read_measurement",
        "stop_measurement",
        "close",
    ]


def test_recoverable_errors_are_counted_and_polling_continues() -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver(
        [
            SensorError("checksum mismatch"),
            serial.SerialException("device reports readiness but returned no data"),
            SensorError("timeout"),
            SCENARIO_SERIES,
        ],
        stop_event=stop,
    )

    _reader(driver, state, stop).run()

    snapshot = state.snapshot()
    assert snapshot.error_count == 3
    assert snapshot.latest == Measurement.from_series(SCENARIO_SERIES)
    exposition = render_metrics(snapshot).splitlines()
    assert "sps30_error_count 3" in exposition
    assert 'sps30_typical_particle_size{unit="μm"} 10.1' in exposition


def test_empty_results_are_not_errors() -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver(
        [EmptyResultError("no data"), EmptyResultError("no data"), SCENARIO_SERIES],
        stop_event=stop,
    )

    _reader(driver, state, stop).run()

    assert state.error_count == 0
    assert state.latest() is not None
    assert driver.reads == 3


def test_malformed_series_is_counted_and_discarded() -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver([SCENARIO_SERIES[:9]], stop_event=stop)

    _reader(driver, state, stop).run()

    assert state.error_count == 1
    assert state.latest() is None


def test_lock_failure_counts_an_error_and_leaves_reading_stale() -> None:
    state = SharedState(lock_timeout=0)
    stop = threading.Event()
    driver = FakeDriver([SCENARIO_SERIES], stop_event=stop)
    reader = _reader(driver, state, stop)

    assert state._lock.acquire_read()
    try:
        reader.run()
    finally:
        state._lock.release_read()

    assert state.error_count == 1
    assert state.latest() is None


def test_poll_once_reports_outcomes() -> None:
    state = SharedState()
    driver = FakeDriver([SCENARIO_SERIES, EmptyResultError("none"), SensorError("bad")])
    reader = _reader(driver, state, threading.Event())

    assert reader.poll_once(driver) is PollOutcome.stored
    assert reader.poll_once(driver) is PollOutcome.idle
    assert reader.poll_once(driver) is PollOutcome.error
    assert state.error_count == 1


def test_open_failure_is_a_device_initialization_error() -> None:
    def broken_factory() -> FakeDriver:
        raise serial.SerialException("could not open port /dev/ttyUSB9")

    state = SharedState()
    reader = SensorReader(broken_factory, state, threading.Event(), startup_delay=0)

    with pytest.raises(DeviceInitializationError, match="/dev/ttyUSB9"):
        reader.run()

    assert reader.phase is ReaderPhase.aborted
    assert state.latest() is None


@pytest.mark.parametrize("step", ["reset", "start_measurement"])
def test_startup_command_failure_aborts_and_closes(step: str) -> None:
    state = SharedState()
    driver = FakeDriver(fail_on={step: SensorError("rejected")})
    reader = _reader(driver, state, threading.Event())

    with pytest.raises(DeviceInitializationError):
        reader.run()

    assert reader.phase is ReaderPhase.aborted
    assert "read_measurement" not in driver.calls
    assert driver.calls[-1] == "close"


def test_each_poll_logs_its_outcome(caplog) -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver(
        [EmptyResultError("no data"), SensorError("timeout"), SCENARIO_SERIES],
        stop_event=stop,
    )

    with caplog.at_level(logging.DEBUG, logger="services.reader"):
        _reader(driver, state, stop).run()

    outcomes = [record.outcome for record in caplog.records if hasattr(record, "outcome")]
    assert outcomes == ["idle", "error", "stored"]


def test_stop_failure_is_logged_not_raised(caplog) -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver(
        [SCENARIO_SERIES],
        stop_event=stop,
        fail_on={"stop_measurement": SensorError("no response")},
    )
    reader = _reader(driver, state, stop)

    with caplog.at_level(logging.ERROR):
        reader.run()

    assert reader.phase is ReaderPhase.terminated
    assert "Could not stop measurements" in caplog.text
    assert driver.calls[-1] == "close"


def test_stop_requested_before_first_poll_skips_reads() -> None:
    state = SharedState()
    stop = threading.Event()
    stop.set()
    driver = FakeDriver([SCENARIO_SERIES])

    reader = _reader(driver, state, stop)
    reader.run()

    assert driver.reads == 0
    assert "stop_measurement" in driver.calls
    assert state.latest() is None
    assert reader.phase is ReaderPhase.terminated


def test_stop_during_interval_wait_prevents_further_writes() -> None:
    state = SharedState()
    stop = RecordingEvent(set_on_wait=True)
    driver = FakeDriver([SCENARIO_SERIES])

    _reader(driver, state, stop, poll_interval=2.0).run()

    assert stop.waits and stop.waits[0] == pytest.approx(2.0, abs=0.5)
    assert driver.reads == 0
    assert state.latest() is None


def test_interval_is_measured_from_previous_attempt_start() -> None:
    state = SharedState()
    stop = RecordingEvent()
    driver = FakeDriver([SCENARIO_SERIES, SCENARIO_SERIES], stop_event=stop)
    ticks = itertools.chain([0.0, 0.5, 2.0, 3.0, 4.0], itertools.repeat(10.0))

    reader = _reader(driver, state, stop, poll_interval=2.0, clock=lambda: next(ticks))
    reader.run()

    assert stop.waits == [pytest.approx(1.5), pytest.approx(1.0)]
    assert driver.reads == 2


def test_no_wait_when_interval_already_elapsed() -> None:
    state = SharedState()
    stop = RecordingEvent()
    driver = FakeDriver([SCENARIO_SERIES], stop_event=stop)
    ticks = itertools.chain([0.0, 2.5, 2.5], itertools.repeat(10.0))

    _reader(driver, state, stop, poll_interval=2.0, clock=lambda: next(ticks)).run()

    assert stop.waits == []
    assert driver.reads == 1


def test_unexpected_error_aborts_after_best_effort_stop() -> None:
    state = SharedState()
    stop = threading.Event()
    driver = FakeDriver([RuntimeError("driver bug")], stop_event=stop)
    reader = _reader(driver, state, stop)

    with pytest.raises(RuntimeError, match="driver bug"):
        reader.run()

    assert reader.phase is ReaderPhase.aborted
    assert driver.calls[-2:] == ["stop_measurement", "close"]
    assert state.error_count == 0
