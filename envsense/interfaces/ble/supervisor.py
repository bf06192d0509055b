"""Connection lifecycle supervision: connect, discover, ingest, tear down, reconnect."""

import asyncio
import logging
from functools import partial
from typing import Callable, Optional

from envsense.interfaces.ble.client import GattSession
from envsense.interfaces.ble.constants import BLEConfig, logger
from envsense.interfaces.ble.errors import BLEErrorHandler, TRANSPORT_ERRORS
from envsense.interfaces.ble.ingestion import Ingestion, ReadingCallback, create_ingestion
from envsense.interfaces.ble.policies import ReconnectPolicy
from envsense.interfaces.ble.resolver import (
    HandleMap,
    format_services,
    resolve_characteristics,
)
from envsense.interfaces.ble.state import BLEStateManager, ConnectionState
from envsense.interfaces.ble.store import SensorStateStore

__all__ = ["SessionSupervisor"]

SessionFactory = Callable[..., GattSession]


class SessionSupervisor:
    """
    Owns the connection to one peripheral and keeps it alive.

    Drives ``DISCONNECTED → CONNECTING → DISCOVERING → READY → DISCONNECTED``
    forever until `shutdown` is awaited. Every method runs on the reactor
    loop, so the supervisor itself holds no locks; the only state shared with
    other threads is the SensorStateStore.

    Architecture:
        - BLEStateManager: explicit state machine and generation counter
        - GattSession: per-attempt bleak connection (created by `session_factory`)
        - resolve_characteristics: builds the HandleMap after discovery
        - Ingestion: NotifyIngestion or PollIngestion, rebuilt on every connection
        - ReconnectPolicy: delay between attempts (fixed by default)
    """

    def __init__(
        self,
        address: str,
        store: SensorStateStore,
        *,
        loop: asyncio.AbstractEventLoop,
        address_type: str = "random",
        security: str = "low",
        ingestion_mode: str = "notify",
        poll_interval: float = BLEConfig.POLL_INTERVAL,
        reconnect_policy: Optional[ReconnectPolicy] = None,
        discovery_timeout: Optional[float] = BLEConfig.DISCOVERY_TIMEOUT,
        session_factory: SessionFactory = GattSession,
        state_manager: Optional[BLEStateManager] = None,
        on_ready: Optional[Callable[[], None]] = None,
        on_lost: Optional[Callable[[], None]] = None,
        on_reading: Optional[ReadingCallback] = None,
    ) -> None:
        self.address = address
        self.store = store
        self.loop = loop
        self.address_type = address_type
        self.security = security
        self.ingestion_mode = ingestion_mode
        self.poll_interval = poll_interval
        self.reconnect_policy = reconnect_policy or ReconnectPolicy.fixed(
            BLEConfig.RECONNECT_DELAY
        )
        self.discovery_timeout = discovery_timeout
        self.session_factory = session_factory
        self.state_manager = state_manager or BLEStateManager()
        self.error_handler = BLEErrorHandler()
        self.on_ready = on_ready
        self.on_lost = on_lost
        self.on_reading = on_reading

        self.handle_map: Optional[HandleMap] = None
        self.ingestion: Optional[Ingestion] = None
        self._session: Optional[GattSession] = None
        self._attempt_task: Optional[asyncio.Task] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._discovery_timer: Optional[asyncio.TimerHandle] = None
        self._stopped = True

    def __repr__(self) -> str:
        return (
            f"SessionSupervisor(address={self.address!r}, "
            f"state={self.state.value}, mode={self.ingestion_mode!r})"
        )

    @property
    def state(self) -> ConnectionState:
        return self.state_manager.state

    @property
    def session(self) -> Optional[GattSession]:
        return self._session

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin the first connection attempt; must be called on the reactor loop."""
        if not self._stopped:
            return
        self._stopped = False
        self.reconnect_policy.reset()
        self._schedule_connect(0)

    def _schedule_connect(self, delay: float) -> None:
        if self._stopped:
            return
        if self._retry_handle is not None:
            self._retry_handle.cancel()
        self._retry_handle = self.loop.call_later(delay, self._begin_attempt)

    def _schedule_retry(self) -> None:
        delay = self.reconnect_policy.next_attempt()
        logger.info("Reconnecting to %s in %.1fs", self.address, delay)
        self._schedule_connect(delay)

    def _begin_attempt(self) -> None:
        self._retry_handle = None
        if self._stopped or not self.state_manager.can_connect:
            return
        self._attempt_task = self.loop.create_task(self._attempt())

    # ------------------------------------------------------------------
    # Connect / discover
    # ------------------------------------------------------------------

    async def _attempt(self) -> None:
        """Run one DISCONNECTED → CONNECTING → DISCOVERING → READY pass."""
        self.state_manager.transition_to(ConnectionState.CONNECTING)
        generation = self.state_manager.generation
        attempt_num = self.reconnect_policy.get_attempt_count() + 1
        logger.info("Connecting to %s (attempt %d)", self.address, attempt_num)

        try:
            session = self.session_factory(
                self.address,
                disconnected_callback=partial(self._on_transport_disconnect, generation),
                address_type=self.address_type,
                security=self.security,
            )
        except Exception:
            logger.exception("Failed to set up BLE session for %s", self.address)
            self._fail_attempt(None)
            return
        self._session = session

        try:
            await session.connect()
        except TRANSPORT_ERRORS as err:
            logger.warning("Connect to %s failed: %s", self.address, err)
            self._fail_attempt(session)
            return
        except Exception:
            logger.exception("Unexpected error connecting to %s", self.address)
            self._fail_attempt(session)
            return

        if not self.state_manager.is_current(generation):
            await self._discard_session(session)
            return
        if not session.is_connected:
            logger.warning("Link to %s dropped while connecting", self.address)
            self._fail_attempt(session)
            return

        logger.info("Connected to %s", self.address)
        self.state_manager.transition_to(ConnectionState.DISCOVERING, session)
        await self._discover(session, generation)

    async def _discard_session(self, session: GattSession) -> None:
        """Close a link that came up after its attempt was superseded."""
        logger.debug("Dropping superseded connection to %s", self.address)
        if session.is_connected:
            try:
                await session.disconnect()
            except TRANSPORT_ERRORS as err:
                logger.debug("Disconnect of superseded session failed: %s", err)
        session.release()
        if self._session is session:
            self._session = None

    def _fail_attempt(self, session: Optional[GattSession]) -> None:
        if session is not None:
            session.release()
        if self._session is session:
            self._session = None
        if self.state_manager.state != ConnectionState.DISCONNECTED:
            self.state_manager.transition_to(ConnectionState.DISCONNECTED)
        self._schedule_retry()

    async def _discover(self, session: GattSession, generation: int) -> None:
        if self.discovery_timeout is not None:
            self._discovery_timer = self.loop.call_later(
                self.discovery_timeout, self._on_discovery_timeout, generation
            )
        try:
            services = await session.discover()
        except TRANSPORT_ERRORS as err:
            # The connection is left open; a later disconnect (or the optional
            # discovery timeout) still runs the normal teardown.
            logger.error("GATT discovery failed on %s: %s", self.address, err)
            return
        except Exception:
            logger.exception("Unexpected error during discovery on %s", self.address)
            return

        if not self.state_manager.is_current(generation):
            return
        self._cancel_discovery_timer()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Discovered services:\n%s", format_services(services))

        self.handle_map = resolve_characteristics(services)
        logger.debug("Resolved %r", self.handle_map)
        self.ingestion = create_ingestion(
            self.ingestion_mode,
            session,
            self.handle_map,
            self.store,
            self.state_manager,
            loop=self.loop,
            on_reading=self.on_reading,
            poll_interval=self.poll_interval,
        )
        self.ingestion.arm()
        self.state_manager.transition_to(ConnectionState.READY)
        self.store.set_connected(True)
        self.reconnect_policy.reset()
        logger.info(
            "Session ready (%s ingestion, %d sensor characteristics)",
            self.ingestion_mode,
            len(self.handle_map),
        )
        if self.on_ready is not None:
            self.error_handler.safe_execute(self.on_ready, error_msg="on_ready failed")

    def _cancel_discovery_timer(self) -> None:
        if self._discovery_timer is not None:
            self._discovery_timer.cancel()
            self._discovery_timer = None

    def _on_discovery_timeout(self, generation: int) -> None:
        self._discovery_timer = None
        if (
            not self.state_manager.is_current(generation)
            or self.state_manager.state != ConnectionState.DISCOVERING
        ):
            return
        logger.warning(
            "Discovery on %s made no progress in %.1fs; dropping connection",
            self.address,
            self.discovery_timeout,
        )
        session = self._session
        self.loop.create_task(self._force_disconnect(session, generation))

    async def _force_disconnect(
        self, session: Optional[GattSession], generation: int
    ) -> None:
        if session is not None:
            try:
                await session.disconnect()
            except TRANSPORT_ERRORS as err:
                logger.debug("Disconnect after discovery timeout failed: %s", err)
        # Not every backend reports a disconnect we initiated ourselves.
        self._handle_disconnect(generation)

    # ------------------------------------------------------------------
    # Disconnect / teardown
    # ------------------------------------------------------------------

    def _on_transport_disconnect(self, generation: int, _session: GattSession) -> None:
        """Disconnect callback registered with the session; may fire on any thread."""
        if self.loop.is_closed():
            return
        self.loop.call_soon_threadsafe(self._handle_disconnect, generation)

    def _handle_disconnect(self, generation: int) -> None:
        if not self.state_manager.is_current(generation):
            logger.debug("Ignoring stale disconnect (generation %d)", generation)
            return
        state = self.state_manager.state
        if state == ConnectionState.CONNECTING:
            logger.debug("Ignoring disconnect while a connection is in progress.")
            return
        if state == ConnectionState.DISCONNECTED:
            return
        logger.warning("Disconnected from %s", self.address)
        self._teardown()
        self._schedule_retry()

    def _teardown(self) -> None:
        """Drop the ingestion path, the handle map and the session; clear the store."""
        was_ready = self.state_manager.state == ConnectionState.READY
        self._cancel_discovery_timer()
        if self.ingestion is not None:
            self.error_handler.safe_cleanup(self.ingestion.disarm, "ingestion disarm")
            self.ingestion = None
        self.handle_map = None
        session = self._session
        self._session = None
        if session is not None:
            session.release()
        if self.state_manager.state != ConnectionState.DISCONNECTED:
            self.state_manager.transition_to(ConnectionState.DISCONNECTED)
        self.store.set_connected(False)
        if was_ready and self.on_lost is not None:
            self.error_handler.safe_execute(self.on_lost, error_msg="on_lost failed")

    async def shutdown(self) -> None:
        """Stop scheduling, drop the current connection and leave the store offline."""
        self._stopped = True
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
        attempt = self._attempt_task
        self._attempt_task = None
        if (
            attempt is not None
            and not attempt.done()
            and attempt is not asyncio.current_task()
        ):
            attempt.cancel()
        session = self._session
        if session is not None and session.is_connected:
            try:
                await session.disconnect()
            except TRANSPORT_ERRORS as err:
                logger.debug("Disconnect during shutdown failed: %s", err)
        self._teardown()
        logger.info("BLE session for %s stopped", self.address)
