"""Process orchestration: reader thread, HTTP server thread, signals, exit code."""

from __future__ import annotations

import logging
import signal
import threading
from functools import partial
from typing import Any, Callable, Dict, Optional, Protocol

import uvicorn
from fastapi import FastAPI

from app.main import create_app
from sensor.device import Sps30Device
from services.errors import (
    ConfigurationError,
    DeviceInitializationError,
    ReaderThreadFailure,
)
from services.reader import SensorDriver, SensorReader
from settings import Settings, get_settings
from state.shared_state import SharedState

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FATAL = 1

_SHUTDOWN_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class HttpServer(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class UvicornServerThread:
    """Runs uvicorn on a daemon thread; uvicorn skips signal handlers off the main thread."""

    def __init__(self, app: FastAPI, host: str, port: int) -> None:
        config = uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run, name="sps30-http", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._server.should_exit = True
        self._thread.join(timeout)


class ExporterRuntime:
    """Wires the sensor reader and the HTTP exporter around one shared state."""

    def __init__(
        self,
        device: str,
        port: int,
        settings: Optional[Settings] = None,
        driver_factory: Optional[Callable[[], SensorDriver]] = None,
        server_factory: Optional[Callable[[FastAPI, str, int], HttpServer]] = None,
        install_signal_handlers: bool = True,
    ) -> None:
        if not device or not device.strip():
            raise ConfigurationError("A serial device path is required.")
        if not 0 < port < 65536:
            raise ConfigurationError(f"Port {port} is outside 1-65535.")

        self.settings = settings or get_settings()
        self.device = device
        self.port = port
        self.state = SharedState(lock_timeout=self.settings.state_lock_timeout)
        self.stop_event = threading.Event()
        self.reader = SensorReader(
            driver_factory=driver_factory
            or partial(Sps30Device.open, device, self.settings.serial_timeout),
            state=self.state,
            stop_event=self.stop_event,
            poll_interval=self.settings.poll_interval,
            startup_delay=self.settings.startup_delay,
        )
        self._server_factory = server_factory or UvicornServerThread
        self._install_signal_handlers = install_signal_handlers
        self.failure: Optional[BaseException] = None

    def request_shutdown(self) -> None:
        self.stop_event.set()

    def run(self) -> int:
        previous = self._register_signals() if self._install_signal_handlers else {}
        reader_thread = threading.Thread(
            target=self._run_reader, name="sps30-reader"
        )
        server = self._server_factory(
            create_app(self.state, self.reader), self.settings.bind_host, self.port
        )
        try:
            reader_thread.start()
            logger.info(
                "Starting exporter.", extra={"device": self.device, "port": self.port}
            )
            server.start()
            while reader_thread.is_alive():
                reader_thread.join(timeout=0.5)
        finally:
            server.stop()
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        if self.failure is not None:
            logger.error(
                "Exiting due to error: %s",
                self.failure,
                extra={"fatal_error_count": self.state.fatal_error_count},
            )
            return EXIT_FATAL
        return EXIT_OK

    def _run_reader(self) -> None:
        try:
            self.reader.run()
        except DeviceInitializationError as exc:
            self._record_failure(exc)
        except Exception as exc:
            logger.exception("Read thread failed.")
            failure = ReaderThreadFailure(f"Reader thread terminated: {exc!r}")
            failure.__cause__ = exc
            self._record_failure(failure)

    def _record_failure(self, failure: BaseException) -> None:
        self.failure = failure
        count = self.state.record_fatal_error()
        logger.error(
            "Sensor reader failed: %s", failure, extra={"fatal_error_count": count}
        )

    def _register_signals(self) -> Dict[int, Any]:
        previous: Dict[int, Any] = {}
        for signum in _SHUTDOWN_SIGNALS:
            previous[signum] = signal.signal(signum, self._handle_signal)
        return previous

    def _handle_signal(self, signum: int, _frame: Any) -> None:
        logger.info("Received %s, shutting down.", signal.Signals(signum).name)
        self.request_shutdown()
