"""Push (notification) and pull (polling) ingestion of sensor values."""

import asyncio
from abc import ABC, abstractmethod
from functools import partial
from typing import Callable, Dict, Optional, Set, TYPE_CHECKING

from envsense.interfaces.ble.constants import (
    BLEConfig,
    MALFORMED_NOTIFICATION_THRESHOLD,
    logger,
)
from envsense.interfaces.ble.decoding import decode
from envsense.interfaces.ble.errors import DecodeError, TRANSPORT_ERRORS
from envsense.interfaces.ble.resolver import HandleMap, ResolvedCharacteristic
from envsense.interfaces.ble.state import BLEStateManager
from envsense.interfaces.ble.store import SensorKind, SensorStateStore

if TYPE_CHECKING:
    from envsense.interfaces.ble.client import GattSession

__all__ = ["Ingestion", "NotifyIngestion", "PollIngestion", "create_ingestion"]

ReadingCallback = Callable[[SensorKind, float], None]

_UNITS = {
    SensorKind.TEMPERATURE: ("Temperature", "{:.2f} °C"),
    SensorKind.PRESSURE: ("Pressure", "{:.1f} hPa"),
    SensorKind.HUMIDITY: ("Humidity", "{:.2f} %RH"),
}


def format_reading(kind: SensorKind, value: float) -> str:
    """Human-readable rendering such as ``Temperature: 22.80 °C``."""
    label, fmt = _UNITS[kind]
    return f"{label}: {fmt.format(value)}"


class Ingestion(ABC):
    """
    Base class for the two ingestion strategies.

    An instance lives for exactly one connection: it is created after
    discovery with that connection's HandleMap and generation, armed once, and
    disarmed on teardown. Every callback checks the generation it was created
    with so completions from a torn-down connection are dropped.
    """

    def __init__(
        self,
        session: "GattSession",
        handle_map: HandleMap,
        store: SensorStateStore,
        state_manager: BLEStateManager,
        *,
        loop: asyncio.AbstractEventLoop,
        on_reading: Optional[ReadingCallback] = None,
    ):
        self.session = session
        self.handle_map = handle_map
        self.store = store
        self.state_manager = state_manager
        self.generation = state_manager.generation
        self.loop = loop
        self.on_reading = on_reading
        self._armed = False
        self._malformed_count = 0

    @property
    def armed(self) -> bool:
        return self._armed

    def _is_stale(self) -> bool:
        return not self._armed or not self.state_manager.is_current(self.generation)

    @abstractmethod
    def arm(self) -> None:
        """Start delivering values into the store; must run on the reactor loop."""

    def disarm(self) -> None:
        """Stop ingestion and drop the handle map; safe to call more than once."""
        self._armed = False
        self.handle_map.clear()

    def _handle_malformed(self, kind: SensorKind, reason: str) -> None:
        self._malformed_count += 1
        logger.debug("Dropping %s value: %s", kind.value, reason)
        if self._malformed_count >= MALFORMED_NOTIFICATION_THRESHOLD:
            logger.warning(
                "Received %d malformed sensor payloads. Check the peripheral firmware.",
                self._malformed_count,
            )
            self._malformed_count = 0

    def _ingest(self, kind: SensorKind, payload: bytes) -> None:
        """Decode `payload` and publish it to the store."""
        try:
            value = decode(kind, payload)
        except DecodeError as exc:
            self._handle_malformed(kind, str(exc))
            return
        self._malformed_count = 0
        if not self.store.write(kind, value):
            logger.debug("Store offline; dropped %s value", kind.value)
            return
        logger.info("%s", format_reading(kind, value))
        if self.on_reading is not None:
            self.on_reading(kind, value)


class NotifyIngestion(Ingestion):
    """Subscribe to value notifications and decode each one as it arrives."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._registrations: Set[asyncio.Task] = set()

    def arm(self) -> None:
        self._armed = True
        for entry in self.handle_map:
            logger.info("Registering notify for handle 0x%04x", entry.handle)
            task = self.loop.create_task(
                self.session.subscribe_notify(
                    entry.handle, partial(self._on_value, entry.handle)
                )
            )
            self._registrations.add(task)
            task.add_done_callback(partial(self._on_registered, entry))

    def disarm(self) -> None:
        super().disarm()
        for task in list(self._registrations):
            task.cancel()
        self._registrations.clear()

    def _on_registered(self, entry: ResolvedCharacteristic, task: asyncio.Task) -> None:
        self._registrations.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            logger.debug("Notifications enabled for %s", entry.kind.value)
        elif isinstance(exc, TRANSPORT_ERRORS):
            logger.warning(
                "Failed to register notify handler for %s (0x%04x): %s",
                entry.kind.value,
                entry.handle,
                exc,
            )
        else:
            logger.error(
                "Unexpected error registering notify for %s",
                entry.kind.value,
                exc_info=exc,
            )

    def _on_value(self, handle: int, payload: bytes) -> None:
        if self._is_stale():
            logger.debug("Ignoring notification for stale handle 0x%04x", handle)
            return
        characteristic = self.session.get_characteristic(handle)
        if characteristic is None:
            logger.debug("Notification from unknown handle 0x%04x", handle)
            return
        kind = SensorKind.from_uuid(characteristic.uuid)
        if kind is None:
            return
        self._ingest(kind, payload)


class PollIngestion(Ingestion):
    """
    Read every resolved characteristic on a self-rescheduling timer.

    The next tick is scheduled only after the current one has issued its reads,
    and a kind whose previous read is still outstanding is skipped, so a slow
    read never stacks up behind itself.
    """

    def __init__(self, *args, interval: float = BLEConfig.POLL_INTERVAL, **kwargs):
        super().__init__(*args, **kwargs)
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.interval = interval
        self._timer: Optional[asyncio.TimerHandle] = None
        self._in_flight: Dict[SensorKind, asyncio.Task] = {}
        self.ticks = 0

    def arm(self) -> None:
        self._armed = True
        self._timer = self.loop.call_soon(self._on_tick)

    def disarm(self) -> None:
        super().disarm()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in list(self._in_flight.values()):
            task.cancel()
        self._in_flight.clear()

    def _ready(self) -> bool:
        return self.state_manager.is_ready and self.state_manager.is_current(
            self.generation
        )

    def _on_tick(self) -> None:
        self._timer = None
        if not self._armed:
            return
        self.ticks += 1
        if self._ready():
            for entry in self.handle_map:
                if entry.kind in self._in_flight:
                    logger.debug("Previous %s read still pending", entry.kind.value)
                    continue
                task = self.loop.create_task(self.session.read_value(entry.handle))
                self._in_flight[entry.kind] = task
                task.add_done_callback(partial(self._on_read_complete, entry.kind))
        else:
            logger.debug("Poll tick skipped: connection not ready")
        self._timer = self.loop.call_later(self.interval, self._on_tick)

    def _on_read_complete(self, kind: SensorKind, task: asyncio.Task) -> None:
        if self._in_flight.get(kind) is task:
            del self._in_flight[kind]
        if task.cancelled():
            return
        exc = task.exception()
        if self._is_stale():
            logger.debug("Discarding stale %s read completion", kind.value)
            return
        if exc is not None:
            if isinstance(exc, TRANSPORT_ERRORS):
                logger.debug("Read of %s failed: %s", kind.value, exc)
            else:
                logger.error("Unexpected error reading %s", kind.value, exc_info=exc)
            return
        self._ingest(kind, task.result())


INGESTION_CLASSES = {
    "notify": NotifyIngestion,
    "poll": PollIngestion,
}


def create_ingestion(mode: str, *args, poll_interval: float = BLEConfig.POLL_INTERVAL, **kwargs) -> Ingestion:
    """Instantiate the ingestion strategy named by `mode` ("notify" or "poll")."""
    try:
        cls = INGESTION_CLASSES[mode]
    except KeyError:
        raise ValueError(f"Unknown ingestion mode: {mode!r}") from None
    if cls is PollIngestion:
        kwargs["interval"] = poll_interval
    return cls(*args, **kwargs)
