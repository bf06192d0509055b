"""BLE connection state management."""

from enum import Enum
from threading import RLock
from typing import Optional, TYPE_CHECKING

from envsense.interfaces.ble.constants import logger

if TYPE_CHECKING:
    from envsense.interfaces.ble.client import GattSession


class ConnectionState(Enum):
    """Enum for managing BLE connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    DISCOVERING = "discovering"
    READY = "ready"


_VALID_TRANSITIONS = {
    ConnectionState.DISCONNECTED: {ConnectionState.CONNECTING},
    ConnectionState.CONNECTING: {
        ConnectionState.DISCOVERING,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.DISCOVERING: {
        ConnectionState.READY,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.READY: {ConnectionState.DISCONNECTED},
}


class BLEStateManager:
    """Explicit connection state machine for one supervised peripheral.

    Transitions are only driven from the reactor thread, but the lock keeps
    `state` and `generation` readable from other threads. The generation
    counter changes whenever an attempt starts or a connection is torn down;
    callers capture it when issuing an operation and compare on completion.
    """

    def __init__(self):
        """Initialize state manager with disconnected state."""
        self._state_lock = RLock()
        self._state = ConnectionState.DISCONNECTED
        self._session: Optional["GattSession"] = None
        self._generation = 0

    @property
    def lock(self) -> RLock:
        """Expose the reentrant lock controlling state transitions."""
        return self._state_lock

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        with self._state_lock:
            return self._state

    @property
    def generation(self) -> int:
        """Identifier of the current (or most recent) connection attempt."""
        with self._state_lock:
            return self._generation

    @property
    def is_ready(self) -> bool:
        """Check if the session is connected with ingestion armed."""
        return self.state == ConnectionState.READY

    @property
    def can_connect(self) -> bool:
        """Check if a new connection can be initiated."""
        return self.state == ConnectionState.DISCONNECTED

    @property
    def session(self) -> Optional["GattSession"]:
        """Get current GATT session."""
        with self._state_lock:
            return self._session

    def is_current(self, generation: int) -> bool:
        """Return True when `generation` still identifies the live attempt."""
        with self._state_lock:
            return generation == self._generation

    def transition_to(
        self, new_state: ConnectionState, session: Optional["GattSession"] = None
    ) -> bool:
        """Thread-safe state transition with validation.

        Entering CONNECTING starts a new generation; entering DISCONNECTED drops
        the session reference and also starts a new generation so completions
        belonging to the torn-down connection are recognisably stale.

        Args:
        ----
            new_state: Target state to transition to
            session: GATT session associated with this transition (optional)

        Returns:
        -------
            True if transition was valid and applied, False otherwise

        """
        with self._state_lock:
            if new_state not in _VALID_TRANSITIONS[self._state]:
                logger.warning(
                    "Invalid state transition: %s → %s",
                    self._state.value,
                    new_state.value,
                )
                return False
            old_state = self._state
            self._state = new_state
            if new_state in (ConnectionState.CONNECTING, ConnectionState.DISCONNECTED):
                self._generation += 1
            if session is not None:
                self._session = session
            elif new_state == ConnectionState.DISCONNECTED:
                self._session = None
            logger.debug(
                "State transition: %s → %s (generation %d)",
                old_state.value,
                new_state.value,
                self._generation,
            )
            return True
