"""Session - synchronous query interface over a supervised QnA process.

Responsibilities:
- Spawn the QnA process on demand and respawn it after it dies
- Serialize queries so concurrent callers never share the pipes
- Keep the idle reaper from stopping the process mid-query
- Turn every process or protocol failure into an error Result
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional, Sequence

from ..config import DEFAULT_EVALUATION_TIMEOUT, DEFAULT_IDLE_TIMEOUT
from .locator import locate_executable
from .process import ProcessController, WorkerHandle, WorkerSpawnError
from .protocol import Result, WorkerState, encode_query, read_result
from .reaper import DEFAULT_IDLE_POLLING, IdleReaper

logger = logging.getLogger(__name__)


SPAWN_ERROR = "Unable to spawn BigFix QnA process!"
CLOSED_ERROR = "QnA session is closed"


def _positive(name: str, value: float) -> float:
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


class _DeadlineReader:
    """Line source that gives the whole response one shared deadline."""

    def __init__(self, handle: WorkerHandle, timeout: float):
        self._handle = handle
        self._timeout = timeout
        self._deadline = time.monotonic() + timeout
        self.timed_out = False
        self.ended = False

    def readline(self) -> str:
        remaining = max(0.0, self._deadline - time.monotonic())
        try:
            line = self._handle.readline(timeout=remaining)
        except TimeoutError:
            self.timed_out = True
            raise TimeoutError(f"QnA evaluation timed out after {self._timeout:g}s") from None
        if line == "":
            self.ended = True
        return line


class Session:
    """
    A long-lived QnA process behind a synchronous ``query()`` call.

    Two locks are involved. ``_query_lock`` serializes whole queries (write
    plus the full response read). The controller's state lock guards the
    process handle, the busy flag and the last activity time, and is the
    only lock the idle reaper takes, so the reaper is never blocked behind
    a running query.

    Args:
        executable_path: Resolved QnA executable, located automatically if None
        version: QnA version (informational)
        args: Extra command-line arguments for the executable
        idle_timeout: Seconds of inactivity before the process is stopped
        evaluation_timeout: Seconds a query may wait for its response
        poll_interval: Seconds between idle checks, at most 1

    Raises:
        ExecutableNotFoundError: If no executable was given and none was found
        WorkerSpawnError: If the initial process could not be started
    """

    def __init__(
        self,
        executable_path: Optional[str] = None,
        version: Optional[str] = None,
        *,
        args: Sequence[str] = (),
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        evaluation_timeout: float = DEFAULT_EVALUATION_TIMEOUT,
        poll_interval: float = DEFAULT_IDLE_POLLING,
    ):
        if executable_path is None:
            located = locate_executable()
            executable_path = located.path
            version = version or located.version

        self._executable_path = str(executable_path)
        self._version = version or "unknown"
        self._idle_timeout = _positive("idle_timeout", idle_timeout)
        self._evaluation_timeout = _positive("evaluation_timeout", evaluation_timeout)

        self._query_lock = threading.Lock()
        self._close_lock = threading.Lock()
        self._closed = False

        self._controller = ProcessController(self._executable_path, args)
        self._reaper = IdleReaper(
            self._controller,
            idle_timeout=lambda: self._idle_timeout,
            poll_interval=poll_interval,
        )

        if not self._controller.ensure_live():
            raise WorkerSpawnError(SPAWN_ERROR)
        self._reaper.ensure_running()
        logger.info(
            f"QnA session ready: {self._executable_path} (version {self._version}), "
            f"idle_timeout={self._idle_timeout}s, evaluation_timeout={self._evaluation_timeout}s"
        )

    @property
    def executable_path(self) -> str:
        return self._executable_path

    @property
    def version(self) -> str:
        return self._version

    @property
    def idle_timeout(self) -> float:
        """Seconds to keep the process running while waiting for queries."""
        return self._idle_timeout

    @idle_timeout.setter
    def idle_timeout(self, value: float) -> None:
        self._idle_timeout = _positive("idle_timeout", value)

    @property
    def evaluation_timeout(self) -> float:
        """Seconds to wait for a response before the process is considered hung."""
        return self._evaluation_timeout

    @evaluation_timeout.setter
    def evaluation_timeout(self, value: float) -> None:
        self._evaluation_timeout = _positive("evaluation_timeout", value)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def state(self) -> WorkerState:
        if self._closed:
            return WorkerState.CLOSED
        return self._controller.worker_state()

    @property
    def pid(self) -> Optional[int]:
        """PID of the current QnA process, None when none is running."""
        return self._controller.pid

    def query(self, text: str) -> Result:
        """
        Evaluate one relevance expression.

        Never raises for process or protocol failures: those come back as a
        Result whose ``error`` is set.

        Args:
            text: Query to send to QnA

        Returns:
            Result of the evaluation
        """
        with self._query_lock:
            if self._closed:
                return Result.failure(text, CLOSED_ERROR)

            handle = self._controller.acquire()
            if handle is None:
                logger.warning(f"Query not evaluated: {SPAWN_ERROR}")
                return Result.failure(text, SPAWN_ERROR)
            self._reaper.ensure_running()

            try:
                reader = _DeadlineReader(handle, self._evaluation_timeout)
                handle.send(encode_query(text))
                result = read_result(reader, text)

                if reader.timed_out:
                    logger.error(
                        f"QnA process {handle.pid} did not answer within "
                        f"{self._evaluation_timeout:g}s, terminating"
                    )
                    self._controller.terminate()
                elif reader.ended:
                    logger.warning(f"QnA process {handle.pid} closed its output mid-response")
                    self._controller.terminate()
            except Exception as e:
                logger.warning(f"QnA query failed: {e}")
                result = Result.failure(text, str(e) or type(e).__name__)
            finally:
                self._controller.release()

            return result

    def status(self) -> Dict[str, Any]:
        """Session and process state for monitoring."""
        status = self._controller.status()
        status.update(
            {
                "state": self.state.value,
                "executable_path": self._executable_path,
                "version": self._version,
                "idle_timeout": self._idle_timeout,
                "evaluation_timeout": self._evaluation_timeout,
            }
        )
        return status

    def close(self) -> None:
        """Stop the process and the idle reaper. Safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        # Waits for an in-flight query, which is bounded by evaluation_timeout
        with self._query_lock:
            self._controller.terminate()
            if not self._reaper.stop():
                logger.debug("Idle reaper still running after one poll interval")
        logger.info("QnA session closed")

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


# Global session instance
_session: Optional[Session] = None
_session_lock = threading.Lock()


def get_session() -> Session:
    """
    Get or create the global Session from configuration.

    Returns:
        Global session instance

    Raises:
        ExecutableNotFoundError: If QnA cannot be located
        WorkerSpawnError: If QnA cannot be started
    """
    global _session
    with _session_lock:
        if _session is None or _session.closed:
            from ..config import (
                get_evaluation_timeout,
                get_idle_timeout,
                get_qna_args,
                get_qna_path,
            )

            executable = locate_executable(get_qna_path())
            _session = Session(
                executable.path,
                executable.version,
                args=get_qna_args(),
                idle_timeout=get_idle_timeout(),
                evaluation_timeout=get_evaluation_timeout(),
            )
        return _session


def peek_session() -> Optional[Session]:
    """The global session if one is open, without creating it."""
    with _session_lock:
        if _session is None or _session.closed:
            return None
        return _session


def shutdown_session() -> None:
    """Close and forget the global session."""
    global _session
    with _session_lock:
        session, _session = _session, None
    if session is not None:
        session.close()
