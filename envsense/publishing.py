"""Deferred execution of pubsub publications off the BLE reactor thread."""

import logging
import queue
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class DeferredExecution:
    """Run queued callables one at a time on a lazily started daemon thread."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    def queueWork(self, runnable: Callable[[], None]) -> None:  # pylint: disable=C0103
        """Queue `runnable` for execution on the worker thread."""
        self._ensure_thread()
        self._queue.put(runnable)

    def _ensure_thread(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(
                    target=self._run, name=self.name, daemon=True
                )
                self._thread.start()

    def _run(self) -> None:
        while True:
            runnable = self._queue.get()
            try:
                runnable()
            except Exception:  # noqa: BLE001 - a bad listener must not kill the worker
                logger.exception("Unexpected error in deferred execution")
            finally:
                self._queue.task_done()


publishingThread = DeferredExecution("publishing")
