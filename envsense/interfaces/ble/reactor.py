"""Single-threaded event reactor hosting all BLE work."""

import asyncio
from concurrent.futures import Future
from threading import Thread
from typing import Any, Callable, Coroutine, Optional

from envsense.interfaces.ble.constants import BLEConfig, logger
from envsense.interfaces.ble.errors import BLEErrorHandler

__all__ = ["Reactor"]


class Reactor:
    """
    Asyncio event loop running on a dedicated daemon thread.

    Connection transitions, timers, read completions and notification
    callbacks are all executed one at a time on this loop, so the code they
    touch needs no locking of its own. Other threads interact only through
    `call_soon` and `run_coroutine`.
    """

    def __init__(self, name: str = "BLEReactor") -> None:
        self.error_handler = BLEErrorHandler()
        self.loop = asyncio.new_event_loop()
        self._thread: Optional[Thread] = None
        self._name = name

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop thread; a no-op when already running."""
        if self.running:
            return
        if self.loop.is_closed():
            self.loop = asyncio.new_event_loop()
        self._thread = Thread(target=self._run_event_loop, name=self._name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError:
            self._thread = None
            self.loop.close()
            raise

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Schedule `callback(*args)` on the reactor from any thread."""
        self.loop.call_soon_threadsafe(callback, *args)

    def run_coroutine(self, coro: Coroutine[Any, Any, Any]) -> Future:
        """
        Schedule a coroutine on the reactor loop.

        Returns:
            concurrent.futures.Future: Future for the coroutine's eventual result.
        """
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self, timeout: float = BLEConfig.REACTOR_JOIN_TIMEOUT) -> None:
        """
        Halt the loop after the callback currently executing and join its thread.

        In-flight reads are not cancelled individually; the loop simply stops.
        """
        thread = self._thread
        if thread is None:
            return
        if not self.loop.is_closed():
            self.error_handler.safe_cleanup(
                lambda: self.loop.call_soon_threadsafe(self.loop.stop),
                "reactor stop",
            )
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("BLE reactor thread did not exit within %.1fs", timeout)
        self._thread = None

    def _run_event_loop(self) -> None:
        """
        Run the loop until stopped, then close it.

        Pending tasks are cancelled and given one pass to unwind so no
        "Task was destroyed but it is pending" warnings leak out.
        """
        asyncio.set_event_loop(self.loop)
        self.error_handler.safe_execute(
            self.loop.run_forever, error_msg="Error in event loop"
        )
        pending = [task for task in asyncio.all_tasks(self.loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            self.error_handler.safe_cleanup(
                lambda: self.loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                ),
                "pending task cancellation",
            )
        self.loop.close()
