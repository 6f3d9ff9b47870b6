"""Fixed-cadence polling of the particulate matter sensor."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol, Sequence

from app.schemas import Measurement
from models.records import PollOutcome, ReaderPhase
from sensor.device import EmptyResultError, SensorError
from services.errors import DeviceInitializationError
from state.shared_state import SharedState, StateAccessError

logger = logging.getLogger(__name__)

_DEVICE_ERRORS = (SensorError, OSError)


class SensorDriver(Protocol):
    def reset(self) -> None: ...

    def start_measurement(self) -> None: ...

    def read_measurement(self) -> Sequence[float]: ...

    def stop_measurement(self) -> None: ...

    def close(self) -> None: ...


class SensorReader:
    """Sole owner of the sensor connection and sole writer of the latest reading."""

    def __init__(
        self,
        driver_factory: Callable[[], SensorDriver],
        state: SharedState,
        stop_event: threading.Event,
        poll_interval: float = 2.0,
        startup_delay: float = 8.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._driver_factory = driver_factory
        self.state = state
        self.stop_event = stop_event
        self.poll_interval = poll_interval
        self.startup_delay = startup_delay
        self._clock = clock
        self.phase = ReaderPhase.uninitialized

    def run(self) -> None:
        """Initialize the device and poll until the stop event is set.

        Returns normally after a requested shutdown. Raises
        ``DeviceInitializationError`` if the device never reached measurement
        mode; any other exception escaping the loop is re-raised after a
        best-effort device stop.
        """
        driver = self._initialize()
        try:
            self._measure(driver)
        except Exception:
            self.phase = ReaderPhase.aborted
            self._release(driver)
            raise

        self.phase = ReaderPhase.stopping
        self._release(driver)
        self.phase = ReaderPhase.terminated
        logger.info("Sensor reader stopped.", extra={"phase": self.phase.value})

    def poll_once(self, driver: SensorDriver) -> PollOutcome:
        try:
            values = driver.read_measurement()
        except EmptyResultError:
            logger.debug("Sensor reported no new data.")
            return PollOutcome.idle
        except _DEVICE_ERRORS as exc:
            count = self.state.record_error()
            logger.warning("Read error: %s", exc, extra={"error_count": count})
            return PollOutcome.error

        try:
            measurement = Measurement.from_series(values)
        except ValueError as exc:
            count = self.state.record_error()
            logger.warning(
                "Discarding malformed measurement: %s", exc, extra={"error_count": count}
            )
            return PollOutcome.error

        try:
            self.state.publish(measurement)
        except StateAccessError as exc:
            count = self.state.record_error()
            logger.warning(
                "Could not store measurement: %s", exc, extra={"error_count": count}
            )
            return PollOutcome.error
        return PollOutcome.stored

    def _initialize(self) -> SensorDriver:
        self.phase = ReaderPhase.initializing
        try:
            driver = self._driver_factory()
        except _DEVICE_ERRORS as exc:
            self.phase = ReaderPhase.aborted
            raise DeviceInitializationError(f"Could not open sensor: {exc}") from exc

        try:
            driver.reset()
            logger.info(
                "Sensor reset, waiting %.1fs for start-up.", self.startup_delay
            )
            time.sleep(self.startup_delay)
            driver.start_measurement()
        except _DEVICE_ERRORS as exc:
            self.phase = ReaderPhase.aborted
            self._close(driver)
            raise DeviceInitializationError(
                f"Could not start measurement: {exc}"
            ) from exc

        self.phase = ReaderPhase.measuring
        logger.info("Measurement started.", extra={"phase": self.phase.value})
        return driver

    def _measure(self, driver: SensorDriver) -> None:
        last_attempt = self._clock()
        while not self.stop_event.is_set():
            remaining = self.poll_interval - (self._clock() - last_attempt)
            if remaining > 0 and self.stop_event.wait(remaining):
                break

            last_attempt = self._clock()
            outcome = self.poll_once(driver)
            logger.debug("Poll finished.", extra={"outcome": outcome.value})

    def _release(self, driver: SensorDriver) -> None:
        try:
            driver.stop_measurement()
        except _DEVICE_ERRORS as exc:
            logger.error("Could not stop measurements: %s", exc)
        self._close(driver)

    @staticmethod
    def _close(driver: SensorDriver) -> None:
        try:
            driver.close()
        except _DEVICE_ERRORS as exc:
            logger.warning("Could not close sensor connection: %s", exc)
