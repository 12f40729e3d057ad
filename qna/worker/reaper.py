"""Background thread that stops the QnA worker after a period of inactivity."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .process import ProcessController

logger = logging.getLogger(__name__)

# Seconds between idle checks. Values over 1s would make the idle timeout
# less precise than its one-second granularity.
DEFAULT_IDLE_POLLING = 0.3
MAX_IDLE_POLLING = 1.0


class IdleReaper:
    """
    Polls the controller and terminates the worker once it has been idle
    (and not busy) for longer than the idle timeout.

    The idle timeout is read through ``idle_timeout`` on every tick so that
    changes made on the session apply immediately.
    """

    def __init__(
        self,
        controller: ProcessController,
        idle_timeout: Callable[[], float],
        poll_interval: float = DEFAULT_IDLE_POLLING,
    ):
        if not 0 < poll_interval <= MAX_IDLE_POLLING:
            raise ValueError(
                f"poll_interval must be in (0, {MAX_IDLE_POLLING}] seconds, got {poll_interval}"
            )
        self.poll_interval = poll_interval
        self._controller = controller
        self._idle_timeout = idle_timeout

        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def ensure_running(self) -> None:
        """Start the reaper, or replace it if the previous run has finished."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                daemon=True,
                name="qna-idle-reaper",
            )
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Ask the reaper to stop and wait for it.

        Args:
            timeout: Seconds to wait, defaults to one poll interval

        Returns:
            True if the reaper thread has finished
        """
        with self._lock:
            thread, stop_event = self._thread, self._stop_event
        if thread is None:
            return True

        stop_event.set()
        if thread is threading.current_thread():
            return False
        thread.join(self.poll_interval if timeout is None else timeout)
        return not thread.is_alive()

    def _run(self, stop_event: threading.Event) -> None:
        logger.debug(f"Idle reaper started (polling every {self.poll_interval}s)")
        try:
            while not stop_event.wait(self.poll_interval):
                try:
                    self._controller.reap_if_idle(self._idle_timeout())
                except Exception as e:
                    logger.error(f"Idle check failed: {e}", exc_info=True)
        finally:
            try:
                self._controller.sweep()
            except Exception as e:
                logger.warning(f"Final idle sweep failed: {e}")
            logger.debug("Idle reaper stopped")
