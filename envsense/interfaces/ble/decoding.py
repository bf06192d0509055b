"""Conversion of raw Environmental Sensing characteristic payloads into physical units."""

import struct
from typing import Callable, Dict, Union

from envsense.interfaces.ble.errors import DecodeError
from envsense.interfaces.ble.store import SensorKind

__all__ = [
    "decode",
    "decode_humidity",
    "decode_pressure",
    "decode_temperature",
]

Payload = Union[bytes, bytearray, memoryview]

_TEMPERATURE = struct.Struct("<h")
_PRESSURE = struct.Struct("<I")
_HUMIDITY = struct.Struct("<H")


def _unpack(fmt: struct.Struct, payload: Payload, label: str) -> int:
    if len(payload) < fmt.size:
        raise DecodeError(
            f"{label} payload needs {fmt.size} bytes, got {len(payload)}"
        )
    return fmt.unpack_from(payload)[0]


def decode_temperature(payload: Payload) -> float:
    """Degrees Celsius from a signed little-endian int16 in units of 0.01."""
    return _unpack(_TEMPERATURE, payload, "temperature") / 100.0


def decode_pressure(payload: Payload) -> float:
    """Hectopascal from an unsigned little-endian uint32 in units of 0.01."""
    return _unpack(_PRESSURE, payload, "pressure") / 100.0


def decode_humidity(payload: Payload) -> float:
    """Percent relative humidity from an unsigned little-endian uint16 in units of 0.01."""
    return _unpack(_HUMIDITY, payload, "humidity") / 100.0


_DECODERS: Dict[SensorKind, Callable[[Payload], float]] = {
    SensorKind.TEMPERATURE: decode_temperature,
    SensorKind.PRESSURE: decode_pressure,
    SensorKind.HUMIDITY: decode_humidity,
}


def decode(kind: SensorKind, payload: Payload) -> float:
    """
    Decode `payload` for the given sensor kind.

    Bytes beyond the required width are ignored and out-of-range values are
    passed through unchanged.

    Raises:
        DecodeError: If the payload is shorter than the kind's fixed width.
    """
    return _DECODERS[kind](payload)
