"""Thread-safe snapshot of the latest sensor readings."""

from dataclasses import dataclass
from enum import Enum
from threading import Lock
from typing import Dict, NamedTuple, Optional

from bleak.uuids import normalize_uuid_str

from envsense.interfaces.ble.constants import (
    HUMIDITY_UUID,
    PRESSURE_UUID,
    TEMPERATURE_UUID,
)

__all__ = ["Reading", "SensorKind", "SensorSnapshot", "SensorStateStore"]


class SensorKind(Enum):
    """Logical sensor kinds exposed by the Environmental Sensing Service."""

    TEMPERATURE = "temperature"
    PRESSURE = "pressure"
    HUMIDITY = "humidity"

    @property
    def uuid(self) -> str:
        """128-bit characteristic UUID string for this kind."""
        return _KIND_TO_UUID[self]

    @classmethod
    def from_uuid(cls, uuid: str) -> Optional["SensorKind"]:
        """Return the kind for a characteristic UUID, or None when it is not a known sensor."""
        try:
            return _UUID_TO_KIND.get(normalize_uuid_str(str(uuid)))
        except ValueError:
            return None


_KIND_TO_UUID = {
    SensorKind.TEMPERATURE: TEMPERATURE_UUID,
    SensorKind.PRESSURE: PRESSURE_UUID,
    SensorKind.HUMIDITY: HUMIDITY_UUID,
}
_UUID_TO_KIND = {uuid: kind for kind, uuid in _KIND_TO_UUID.items()}


class Reading(NamedTuple):
    """Latest value for one sensor kind and whether it was observed since the last connect."""

    value: float
    observed: bool


@dataclass(frozen=True)
class SensorSnapshot:
    """Consistent view of the whole store taken under a single lock acquisition."""

    connected: bool
    temperature: Reading
    pressure: Reading
    humidity: Reading

    def reading(self, kind: SensorKind) -> Reading:
        return getattr(self, kind.value)


class SensorStateStore:
    """Guarded container shared between the BLE reactor and exposition threads.

    A single lock protects the three readings and the connectivity flag. Every
    method holds it only for plain attribute access, never across I/O or callbacks.
    Clearing connectivity clears all observed flags in the same critical section
    but leaves the numeric values in place.
    """

    def __init__(self):
        self._lock = Lock()
        self._connected = False
        self._values: Dict[SensorKind, float] = {kind: 0.0 for kind in SensorKind}
        self._observed: Dict[SensorKind, bool] = {kind: False for kind in SensorKind}

    def write(self, kind: SensorKind, value: float) -> bool:
        """
        Store `value` for `kind` and flag it as observed.

        Returns:
            bool: False (and nothing stored) while the store is marked disconnected,
            so a late completion can never flag a value observed without a connection.
        """
        with self._lock:
            if not self._connected:
                return False
            self._values[kind] = float(value)
            self._observed[kind] = True
            return True

    def set_connected(self, connected: bool) -> None:
        """Update connectivity; going offline clears every observed flag."""
        with self._lock:
            self._connected = bool(connected)
            if not self._connected:
                for kind in SensorKind:
                    self._observed[kind] = False

    def read(self, kind: SensorKind) -> Reading:
        with self._lock:
            return Reading(self._values[kind], self._observed[kind])

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def snapshot(self) -> SensorSnapshot:
        with self._lock:
            readings = {
                kind.value: Reading(self._values[kind], self._observed[kind])
                for kind in SensorKind
            }
            return SensorSnapshot(connected=self._connected, **readings)
