"""Reconnection delay policy for the session supervisor."""

from typing import Optional

from envsense.interfaces.ble.constants import BLEConfig


class ReconnectPolicy:
    """
    Delay between reconnection attempts.

    With the defaults (``backoff=1.0``) every attempt waits the same fixed
    delay. A backoff above 1.0 grows the delay up to ``max_delay``. The policy
    only ever answers "how long"; the supervisor keeps retrying until stopped.
    """

    def __init__(
        self,
        *,
        initial_delay: float = BLEConfig.RECONNECT_DELAY,
        max_delay: Optional[float] = None,
        backoff: float = BLEConfig.RECONNECT_BACKOFF,
    ):
        if max_delay is None:
            max_delay = initial_delay
        if initial_delay <= 0:
            raise ValueError(f"initial_delay must be > 0, got {initial_delay}")
        if max_delay < initial_delay:
            raise ValueError(
                f"max_delay ({max_delay}) must be >= initial_delay ({initial_delay})"
            )
        if backoff < 1.0:
            raise ValueError(f"backoff must be >= 1.0, got {backoff}")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff = backoff
        self._attempt_count = 0

    @classmethod
    def fixed(cls, delay: float) -> "ReconnectPolicy":
        """Policy that always waits `delay` seconds."""
        return cls(initial_delay=delay, max_delay=delay, backoff=1.0)

    def reset(self) -> None:
        """Start a fresh cycle after a successful connection."""
        self._attempt_count = 0

    def get_delay(self, attempt: Optional[int] = None) -> float:
        """Delay for `attempt` (defaults to the current attempt count), capped at ``max_delay``."""
        if attempt is None:
            attempt = self._attempt_count
        return min(self.initial_delay * (self.backoff**attempt), self.max_delay)

    def next_attempt(self) -> float:
        """Advance the attempt counter and return the delay to wait first."""
        delay = self.get_delay()
        self._attempt_count += 1
        return delay

    def get_attempt_count(self) -> int:
        """Expose the current attempt count (primarily for logging)."""
        return self._attempt_count


__all__ = ["ReconnectPolicy"]
