"""SPS30 particulate matter sensor over UART (SHDLC)."""

from __future__ import annotations

import logging
import struct
from typing import Optional, Protocol, Tuple

import serial

from sensor.shdlc import (
    FRAME_DELIMITER,
    MAX_DATA_LENGTH,
    ShdlcDeviceError,
    ShdlcError,
    build_request,
    parse_response,
)

logger = logging.getLogger(__name__)

BAUD_RATE = 115_200
DEVICE_ADDRESS = 0x00

CMD_START_MEASUREMENT = 0x00
CMD_STOP_MEASUREMENT = 0x01
CMD_READ_MEASURED_VALUES = 0x03
CMD_DEVICE_RESET = 0xD3

# Sub-command 0x01 followed by output format 0x03 (big-endian IEEE754 float).
_START_FLOAT_OUTPUT = bytes((0x01, 0x03))
_MEASURED_VALUES = struct.Struct(">10f")
_FLOAT32 = struct.Struct(">f")
_MAX_STUFFED_FRAME = (MAX_DATA_LENGTH + 5) * 2


class SensorError(Exception):
    """Any failed exchange with the sensor."""


class SensorTimeoutError(SensorError):
    """The sensor did not answer within the serial timeout."""


class EmptyResultError(SensorError):
    """The sensor has no new measurement since the previous read."""


class SerialPort(Protocol):
    def write(self, data: bytes) -> Optional[int]: ...

    def read(self, size: int = 1) -> bytes: ...

    def reset_input_buffer(self) -> None: ...

    def close(self) -> None: ...


class Sps30Device:
    """Command set of the SPS30 needed for continuous measurement."""

    def __init__(self, port: SerialPort, address: int = DEVICE_ADDRESS) -> None:
        self._port = port
        self.address = address

    @classmethod
    def open(cls, path: str, timeout: float = 2.0) -> "Sps30Device":
        """Open ``path`` as 115200 baud 8N1 with all flow control disabled."""
        port = serial.Serial(
            port=path,
            baudrate=BAUD_RATE,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
            write_timeout=timeout,
            xonxoff=False,
            rtscts=False,
            dsrdtr=False,
        )
        port.rts = False
        logger.info("Opened serial port.", extra={"device": path})
        return cls(port)

    def reset(self) -> None:
        self._transceive(CMD_DEVICE_RESET)

    def start_measurement(self) -> None:
        self._transceive(CMD_START_MEASUREMENT, _START_FLOAT_OUTPUT)

    def stop_measurement(self) -> None:
        self._transceive(CMD_STOP_MEASUREMENT)

    def read_measurement(self) -> Tuple[float, ...]:
        """Return mass (4), number (5) and typical particle size (1) values."""
        data = self._transceive(CMD_READ_MEASURED_VALUES)
        if not data:
            raise EmptyResultError("No new measurement available.")
        if len(data) != _MEASURED_VALUES.size:
            raise SensorError(
                f"Unexpected measured values length: {len(data)} bytes."
            )
        return tuple(_shortest_float32(value) for value in _MEASURED_VALUES.unpack(data))

    def close(self) -> None:
        self._port.close()

    def _transceive(self, command: int, data: bytes = b"") -> bytes:
        self._port.reset_input_buffer()
        self._port.write(build_request(self.address, command, data))
        try:
            response = parse_response(self._read_frame())
        except ShdlcError as exc:
            raise SensorError(str(exc)) from exc

        if response.command != command or response.address != self.address:
            raise SensorError(
                f"Response for command 0x{response.command:02X} "
                f"does not match request 0x{command:02X}."
            )
        if response.state:
            raise SensorError(str(ShdlcDeviceError(command, response.state)))
        return response.data

    def _read_frame(self) -> bytes:
        while True:
            byte = self._port.read(1)
            if not byte:
                raise SensorTimeoutError("Timed out waiting for a response frame.")
            if byte[0] == FRAME_DELIMITER:
                break

        body = bytearray()
        while True:
            byte = self._port.read(1)
            if not byte:
                raise SensorTimeoutError("Timed out inside a response frame.")
            if byte[0] == FRAME_DELIMITER:
                if body:
                    return bytes(body)
                continue
            body.append(byte[0])
            if len(body) > _MAX_STUFFED_FRAME:
                raise SensorError("Response frame exceeds the maximum SHDLC length.")


def _shortest_float32(value: float) -> float:
    """Shortest decimal that still packs to the same float32 word."""
    packed = _FLOAT32.pack(value)
    for digits in range(6, 10):
        candidate = float(f"{value:.{digits}g}")
        if _FLOAT32.pack(candidate) == packed:
            return candidate
    return value
