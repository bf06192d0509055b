"""Main BLE sensor interface class."""

import atexit
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, Tuple, TYPE_CHECKING

from pubsub import pub

from envsense import publishing
from envsense.interfaces.ble.client import GattSession
from envsense.interfaces.ble.constants import BLEConfig, logger
from envsense.interfaces.ble.ingestion import format_reading
from envsense.interfaces.ble.policies import ReconnectPolicy
from envsense.interfaces.ble.reactor import Reactor
from envsense.interfaces.ble.state import ConnectionState
from envsense.interfaces.ble.store import SensorKind, SensorSnapshot, SensorStateStore
from envsense.interfaces.ble.supervisor import SessionSupervisor

if TYPE_CHECKING:
    from envsense.config import DeviceConfig

__all__ = ["SensorInterface"]


class SensorInterface:
    """
    Persistent session to one Environmental Sensing peripheral.

    Starts a reactor thread that owns the BLE connection and reconnects
    whenever the link drops. Any other thread may call the read accessors;
    they only touch the shared SensorStateStore and never the connection.

    Key Features:
        - Automatic reconnection with a fixed retry delay
        - Notification or polling ingestion, chosen at construction
        - Readings flagged unobserved whenever the link is down
        - pubsub events on connection changes and new readings

    Published topics:
        - envsense.connection.established / envsense.connection.lost
        - envsense.connection.status (connected=bool)
        - envsense.reading (kind=str, value=float)
    """

    def __init__(
        self,
        config: "DeviceConfig",
        *,
        store: Optional[SensorStateStore] = None,
        session_factory: Callable[..., GattSession] = GattSession,
        reactor: Optional[Reactor] = None,
    ) -> None:
        """
        Wire the store, reactor and supervisor together without connecting.

        Parameters:
            config (DeviceConfig): Device identity and session timing.
            store (Optional[SensorStateStore]): Shared snapshot; a new one is created when omitted.
            session_factory: Callable creating a GattSession per attempt (replaceable in tests).
            reactor (Optional[Reactor]): Event reactor; a new one is created when omitted.
        """
        self.config = config
        self.store = store if store is not None else SensorStateStore()
        self.reactor = reactor if reactor is not None else Reactor()
        self._exit_handler = None
        self.supervisor = SessionSupervisor(
            config.address,
            self.store,
            loop=self.reactor.loop,
            address_type=config.address_type,
            security=config.security,
            ingestion_mode=config.ingestion,
            poll_interval=config.poll_interval,
            reconnect_policy=ReconnectPolicy.fixed(config.reconnect_delay),
            discovery_timeout=config.discovery_timeout,
            session_factory=session_factory,
            on_ready=self._connected,
            on_lost=self._disconnected,
            on_reading=self._reading,
        )

    def __repr__(self):
        return (
            f"SensorInterface(address={self.config.address!r}, "
            f"ingestion={self.config.ingestion!r})"
        )

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, _type, _value, _traceback):
        self.stop()

    # ------------------------------------------------------------------
    # Process control
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the reactor and the first connection attempt."""
        if self.reactor.running:
            return
        logger.debug("BLE connecting to: %s", self.config.address)
        # reactor.start() may replace a closed loop; keep the supervisor on the live one
        self.reactor.start()
        self.supervisor.loop = self.reactor.loop
        self.reactor.call_soon(self.supervisor.start)
        self._exit_handler = atexit.register(self.stop)

    def stop(self, timeout: float = BLEConfig.DISCONNECT_TIMEOUT) -> None:
        """Disconnect, halt the reactor loop and mark the store offline."""
        if self._exit_handler is not None:
            atexit.unregister(self.stop)
            self._exit_handler = None
        if not self.reactor.running:
            self.store.set_connected(False)
            return
        future = self.reactor.run_coroutine(self.supervisor.shutdown())
        try:
            future.result(timeout)
        except FutureTimeoutError:
            future.cancel()
            logger.warning("BLE shutdown did not finish within %.1fs", timeout)
        except Exception:  # noqa: BLE001 - stopping must always halt the reactor
            logger.exception("Error while shutting down BLE session")
        self.reactor.stop()
        self.store.set_connected(False)

    @property
    def state(self) -> ConnectionState:
        return self.supervisor.state

    # ------------------------------------------------------------------
    # Exposition boundary
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        return self.store.is_connected()

    def read_temperature(self) -> Tuple[float, bool]:
        """Latest temperature in °C and whether it was observed since the last connect."""
        return self.store.read(SensorKind.TEMPERATURE)

    def read_pressure(self) -> Tuple[float, bool]:
        """Latest pressure in hPa and whether it was observed since the last connect."""
        return self.store.read(SensorKind.PRESSURE)

    def read_humidity(self) -> Tuple[float, bool]:
        """Latest relative humidity in % and whether it was observed since the last connect."""
        return self.store.read(SensorKind.HUMIDITY)

    def snapshot(self) -> SensorSnapshot:
        return self.store.snapshot()

    # ------------------------------------------------------------------
    # Event publication (called on the reactor; listeners run elsewhere)
    # ------------------------------------------------------------------

    def _connected(self) -> None:
        publishing.publishingThread.queueWork(
            lambda: pub.sendMessage("envsense.connection.established", interface=self)
        )
        publishing.publishingThread.queueWork(
            lambda: pub.sendMessage(
                "envsense.connection.status", interface=self, connected=True
            )
        )

    def _disconnected(self) -> None:
        publishing.publishingThread.queueWork(
            lambda: pub.sendMessage("envsense.connection.lost", interface=self)
        )
        publishing.publishingThread.queueWork(
            lambda: pub.sendMessage(
                "envsense.connection.status", interface=self, connected=False
            )
        )

    def _reading(self, kind: SensorKind, value: float) -> None:
        logger.debug("Publishing %s", format_reading(kind, value))
        publishing.publishingThread.queueWork(
            lambda: pub.sendMessage(
                "envsense.reading", interface=self, kind=kind.value, value=value
            )
        )
