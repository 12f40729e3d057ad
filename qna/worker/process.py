"""Ownership of the single QnA worker process.

All platform-specific failure modes of a process handle (already exited,
already reaped, pipes closed, OS refusing to report status) are normalized
here into "the handle is gone": callers only ever see booleans or ``None``.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
import time
from typing import Any, Dict, Optional, Sequence

import psutil

from .protocol import WorkerState

logger = logging.getLogger(__name__)

# Seconds to wait for a killed process to be reaped
KILL_WAIT_SECONDS = 5

# OS states in which the process exists but will never answer
_UNRESPONSIVE_STATUSES = frozenset(
    {psutil.STATUS_ZOMBIE, psutil.STATUS_STOPPED, psutil.STATUS_DEAD}
)


class WorkerSpawnError(RuntimeError):
    """The QnA executable could not be started."""


class WorkerHandle:
    """
    A running QnA process with line-oriented access to its pipes.

    Stdout is drained by a daemon thread into a queue so that reads can be
    bounded by a timeout. End of stream is reported as ``""``, like
    ``readline()`` on a file.
    """

    def __init__(self, proc: subprocess.Popen):
        self.proc = proc
        self.spawned_at = time.time()
        self._lines: "queue.Queue[str]" = queue.Queue()
        self._pump = threading.Thread(
            target=self._pump_stdout,
            daemon=True,
            name=f"qna-stdout-{proc.pid}",
        )
        self._pump.start()

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.proc.returncode

    def is_alive(self) -> bool:
        """Check if the process is still running."""
        try:
            return self.proc.poll() is None
        except OSError:
            return False

    def is_responding(self) -> bool:
        """
        Liveness probe.

        A process that still exists but is a zombie or stopped counts as not
        responding. Failing to read the status at all counts the same way.
        """
        if not self.is_alive():
            return False
        try:
            status = psutil.Process(self.proc.pid).status()
        except (psutil.Error, OSError, ValueError) as e:
            logger.debug(f"Unable to probe QnA process {self.proc.pid}: {e}")
            return False
        return status not in _UNRESPONSIVE_STATUSES

    def send(self, line: str) -> None:
        """Write one request line and flush it."""
        stdin = self.proc.stdin
        if stdin is None:
            raise BrokenPipeError("QnA process has no stdin")
        stdin.write(line)
        stdin.flush()

    def readline(self, timeout: Optional[float] = None) -> str:
        """
        Next line of output, ``""`` once the stream has ended.

        Raises:
            TimeoutError: If no line arrives within ``timeout`` seconds
        """
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            raise TimeoutError(f"No output from QnA process within {timeout}s") from None
        if line == "":
            # Keep the end-of-stream marker for any later reader
            self._lines.put("")
        return line

    def kill(self) -> None:
        """Kill the process and release its pipes. Never raises."""
        try:
            if self.proc.poll() is None:
                self.proc.kill()
        except OSError as e:
            logger.debug(f"QnA process {self.proc.pid} already gone: {e}")

        try:
            self.proc.wait(timeout=KILL_WAIT_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning(f"QnA process {self.proc.pid} did not exit after kill")
        except OSError as e:
            logger.debug(f"Error waiting for QnA process {self.proc.pid}: {e}")

        if self.proc.stdin is not None:
            try:
                self.proc.stdin.close()
            except (OSError, ValueError):
                pass

        # The pump holds the stdout buffer lock while blocked in a read
        self._pump.join(timeout=1)
        if not self._pump.is_alive() and self.proc.stdout is not None:
            try:
                self.proc.stdout.close()
            except (OSError, ValueError):
                pass

    def _pump_stdout(self) -> None:
        stdout = self.proc.stdout
        try:
            if stdout is not None:
                for line in iter(stdout.readline, ""):
                    self._lines.put(line)
        except (OSError, ValueError) as e:
            logger.debug(f"QnA process {self.proc.pid} stdout closed: {e}")
        finally:
            self._lines.put("")


class ProcessController:
    """
    Owns the worker handle together with the busy flag and the last activity
    timestamp. Every read and write of those three happens under ``_lock``.

    Args:
        executable_path: Resolved path to the QnA executable
        args: Extra command-line arguments for the executable
    """

    def __init__(self, executable_path: str, args: Sequence[str] = ()):
        self.executable_path = executable_path
        self.args = tuple(args)

        self._lock = threading.RLock()
        self._handle: Optional[WorkerHandle] = None
        self._busy = False
        self._last_activity = time.monotonic()
        self._spawn_count = 0

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    @property
    def last_activity(self) -> float:
        """Monotonic timestamp of the last acquisition or completed query."""
        with self._lock:
            return self._last_activity

    @property
    def has_process(self) -> bool:
        with self._lock:
            return self._handle is not None

    @property
    def pid(self) -> Optional[int]:
        with self._lock:
            return self._handle.pid if self._handle is not None else None

    @property
    def spawn_count(self) -> int:
        with self._lock:
            return self._spawn_count

    def worker_state(self) -> WorkerState:
        """BUSY, READY or NO_PROCESS, read in one critical section."""
        with self._lock:
            if self._busy:
                return WorkerState.BUSY
            if self._handle is not None:
                return WorkerState.READY
            return WorkerState.NO_PROCESS

    def ensure_live(self) -> bool:
        """
        Make sure a responsive worker exists, spawning one if needed.

        Returns:
            True if a responsive worker exists after the call
        """
        with self._lock:
            return self._ensure_live_locked()

    def acquire(self) -> Optional[WorkerHandle]:
        """
        Get a live worker and mark the controller busy in one step.

        Returns:
            The handle to talk to, or None if no worker could be spawned
        """
        with self._lock:
            if not self._ensure_live_locked():
                return None
            self._busy = True
            return self._handle

    def release(self) -> None:
        """End of a query: clear busy and restart the idle clock."""
        with self._lock:
            self._busy = False
            self._last_activity = time.monotonic()

    def terminate(self) -> None:
        """Unconditionally kill and forget the current worker."""
        with self._lock:
            if self._handle is not None:
                logger.info(f"Terminating QnA process {self._handle.pid}")
                self._release_locked()

    def reap_if_idle(self, idle_timeout: float) -> bool:
        """
        Terminate the worker if it has been idle for ``idle_timeout`` seconds.

        Never touches a worker while a query is in flight.

        Returns:
            True if a worker was terminated
        """
        with self._lock:
            if self._handle is None or self._busy:
                return False
            idle = time.monotonic() - self._last_activity
            if idle < idle_timeout:
                return False
            logger.info(f"QnA process {self._handle.pid} idle for {idle:.1f}s, terminating")
            self._release_locked()
            return True

    def sweep(self) -> None:
        """Drop the worker if it has exited or stopped responding."""
        with self._lock:
            if not self._busy:
                self._discard_if_dead_locked()

    def status(self) -> Dict[str, Any]:
        """Snapshot of the worker state."""
        with self._lock:
            handle = self._handle
            return {
                "pid": handle.pid if handle is not None else None,
                "alive": handle.is_alive() if handle is not None else False,
                "busy": self._busy,
                "idle_seconds": round(time.monotonic() - self._last_activity, 1),
                "spawn_count": self._spawn_count,
            }

    def _ensure_live_locked(self) -> bool:
        self._discard_if_dead_locked()
        if self._handle is None:
            self._handle = self._spawn()
            if self._handle is None:
                return False
        self._last_activity = time.monotonic()
        return True

    def _discard_if_dead_locked(self) -> None:
        handle = self._handle
        if handle is None:
            return
        if not handle.is_alive():
            logger.info(
                f"QnA process {handle.pid} exited (code {handle.returncode}), releasing"
            )
            self._release_locked()
        elif not handle.is_responding():
            logger.warning(f"QnA process {handle.pid} is not responding, killing")
            self._release_locked()

    def _release_locked(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.kill()

    def _spawn(self) -> Optional[WorkerHandle]:
        cmd = [self.executable_path, *self.args]
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                shell=False,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except (OSError, ValueError) as e:
            logger.warning(f"Unable to start QnA process {self.executable_path}: {e}")
            return None

        handle = WorkerHandle(proc)
        if not handle.is_alive():
            logger.warning(
                f"QnA process exited right after start (code {handle.returncode})"
            )
            handle.kill()
            return None

        self._spawn_count += 1
        logger.info(f"Spawned QnA process {handle.pid}: {' '.join(cmd)}")
        return handle
