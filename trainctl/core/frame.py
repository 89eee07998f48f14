"""Command/notification frame codec.

Frame layout::

    +--------+--------+-------------------+----------+
    | Marker | Length |      Payload      | Checksum |
    | 0xAA   | 1 byte | ``Length`` bytes  |  1 byte  |
    +--------+--------+-------------------+----------+

The checksum is the two's complement of the low byte of
``Length + sum(Payload)``, so that length, payload and checksum add up to
zero modulo 256.

An earlier firmware revision omitted the length byte and summed the payload
only. That layout is not supported here.
"""

from __future__ import annotations

from collections.abc import Iterable

from trainctl.core.errors import (
    BadMarkerError,
    ChecksumMismatchError,
    InvalidArgumentError,
    LengthMismatchError,
    PayloadTooLargeError,
)

START_MARKER = 0xAA
MAX_PAYLOAD_BYTES = 0xFF
HEADER_SIZE = 2  # marker + length


def checksum(payload: bytes) -> int:
    """Checksum byte for ``payload`` (length byte included in the sum)."""
    return (0x100 - ((len(payload) + sum(payload)) & 0xFF)) & 0xFF


def _as_bytes(payload: Iterable[int]) -> bytes:
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    values = list(payload)
    for value in values:
        if not 0 <= value <= 0xFF:
            raise InvalidArgumentError(f"Payload byte {value!r} is outside 0..255")
    return bytes(values)


def encode(payload: Iterable[int]) -> bytes:
    """Wrap ``payload`` in a frame ready to write to the control endpoint.

    Raises:
        PayloadTooLargeError: if the payload is longer than 255 bytes.
    """
    body = _as_bytes(payload)
    if len(body) > MAX_PAYLOAD_BYTES:
        raise PayloadTooLargeError(
            f"Payload of {len(body)} bytes exceeds max frame payload {MAX_PAYLOAD_BYTES}"
        )
    return bytes([START_MARKER, len(body)]) + body + bytes([checksum(body)])


def decode(frame: bytes) -> bytes:
    """Validate ``frame`` and return its payload.

    Raises:
        BadMarkerError: empty input or wrong first byte.
        LengthMismatchError: declared length disagrees with the bytes present.
        ChecksumMismatchError: trailing byte is not the expected checksum.
    """
    data = bytes(frame)
    if not data or data[0] != START_MARKER:
        got = f"0x{data[0]:02X}" if data else "empty frame"
        raise BadMarkerError(f"Expected start marker 0x{START_MARKER:02X}, got {got}")
    if len(data) < HEADER_SIZE:
        raise LengthMismatchError("Frame too short to carry a length byte")

    length = data[1]
    remaining = len(data) - HEADER_SIZE
    if remaining != length + 1:
        raise LengthMismatchError(
            f"Declared payload length {length} needs {length + 1} trailing bytes, got {remaining}"
        )

    payload = data[HEADER_SIZE:-1]
    expected = checksum(payload)
    if data[-1] != expected:
        raise ChecksumMismatchError(
            f"Checksum 0x{data[-1]:02X} does not match expected 0x{expected:02X}"
        )
    return payload
