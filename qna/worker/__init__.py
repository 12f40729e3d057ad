"""Supervision of the BigFix QnA process.

QnA is expensive to start, so one process is kept alive between queries and
stopped after a period of inactivity.

Key components:
- session: Session facade with the synchronous query() call
- process: ProcessController owning the process handle and its state
- reaper: IdleReaper background thread stopping idle processes
- protocol: Result model and the line codec
- locator: Discovery of the QnA executable
"""

from .locator import ExecutableNotFoundError, QnaExecutable, locate_executable
from .process import ProcessController, WorkerHandle, WorkerSpawnError
from .protocol import Result, WorkerState, encode_query, read_result
from .reaper import IdleReaper
from .session import (
    Session,
    get_session,
    peek_session,
    shutdown_session,
)

__all__ = [
    "Session",
    "get_session",
    "peek_session",
    "shutdown_session",
    "ProcessController",
    "WorkerHandle",
    "WorkerSpawnError",
    "IdleReaper",
    "Result",
    "WorkerState",
    "encode_query",
    "read_result",
    "ExecutableNotFoundError",
    "QnaExecutable",
    "locate_executable",
]
