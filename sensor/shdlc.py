"""Sensirion SHDLC framing used by the SPS30 UART interface.

Host to device:   7E | ADR | CMD | LEN | DATA... | CHK | 7E
Device to host:   7E | ADR | CMD | STATE | LEN | DATA... | CHK | 7E

CHK is the inverted low byte of the sum of every byte between the
delimiters. Reserved bytes inside a frame are escaped with 0x7D.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

FRAME_DELIMITER = 0x7E
ESCAPE = 0x7D
_ESCAPED = {0x7E: 0x5E, 0x7D: 0x5D, 0x11: 0x31, 0x13: 0x33}
_UNESCAPED = {value: key for key, value in _ESCAPED.items()}
MAX_DATA_LENGTH = 255

DEVICE_ERRORS: Dict[int, str] = {
    0x01: "wrong data length for this command",
    0x02: "unknown command",
    0x03: "no access right for command",
    0x04: "illegal command parameter or parameter out of range",
    0x28: "internal function argument out of range",
    0x43: "command not allowed in current state",
}


class ShdlcError(Exception):
    """Base class for malformed or rejected SHDLC exchanges."""


class ShdlcFrameError(ShdlcError):
    """The received bytes do not form a valid response frame."""


class ShdlcDeviceError(ShdlcError):
    """The device answered with a non-zero execution state."""

    def __init__(self, command: int, state: int) -> None:
        self.command = command
        self.state = state
        self.code = state & 0x7F
        reason = DEVICE_ERRORS.get(self.code, "unknown error")
        super().__init__(
            f"Device rejected command 0x{command:02X} with state 0x{state:02X} ({reason})."
        )


@dataclass(frozen=True)
class Response:
    address: int
    command: int
    state: int
    data: bytes


def checksum(payload: bytes) -> int:
    return (~sum(payload)) & 0xFF


def stuff(payload: bytes) -> bytes:
    out = bytearray()
    for byte in payload:
        if byte in _ESCAPED:
            out.append(ESCAPE)
            out.append(_ESCAPED[byte])
        else:
            out.append(byte)
    return bytes(out)


def unstuff(payload: bytes) -> bytes:
    out = bytearray()
    escaped = False
    for byte in payload:
        if escaped:
            if byte not in _UNESCAPED:
                raise ShdlcFrameError(f"Invalid escape sequence 0x7D 0x{byte:02X}.")
            out.append(_UNESCAPED[byte])
            escaped = False
        elif byte == ESCAPE:
            escaped = True
        else:
            out.append(byte)
    if escaped:
        raise ShdlcFrameError("Frame ends inside an escape sequence.")
    return bytes(out)


def build_request(address: int, command: int, data: bytes = b"") -> bytes:
    """Encode a host-to-device frame, delimiters included."""
    if len(data) > MAX_DATA_LENGTH:
        raise ValueError(f"SHDLC payload too long: {len(data)} bytes.")
    body = bytes((address, command, len(data))) + data
    return (
        bytes((FRAME_DELIMITER,))
        + stuff(body + bytes((checksum(body),)))
        + bytes((FRAME_DELIMITER,))
    )


def parse_response(frame: bytes) -> Response:
    """Decode the stuffed content between two delimiters of a response frame."""
    raw = unstuff(frame)
    if len(raw) < 5:
        raise ShdlcFrameError(f"Response frame too short: {len(raw)} bytes.")

    address, command, state, length = raw[0], raw[1], raw[2], raw[3]
    data = raw[4:-1]
    if len(data) != length:
        raise ShdlcFrameError(
            f"Response length mismatch: header says {length}, got {len(data)}."
        )
    if checksum(raw[:-1]) != raw[-1]:
        raise ShdlcFrameError("Response checksum mismatch.")
    return Response(address=address, command=command, state=state, data=bytes(data))
