"""Result model and line codec for the QnA worker protocol.

The worker reads one relevance expression per line on stdin and answers with
a frame on stdout:

    Q: <echo of the query>      (optional)
    A: <answer>                 (zero or more)
    E: <error message>          (optional, last one wins)
    T: <evaluation time in ms>  (optional)
    <blank line>                (frame terminator)
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from functools import cached_property
from typing import Any, Dict, List, Optional, Protocol, Tuple


ECHO_PREFIX = "Q: "
FIELD_PREFIX_LENGTH = 3  # "A: ", "E: ", "T: "

CLOSED_STREAM_ERROR = "QnA process closed its output before completing the response"

# Only CR and LF end a request line; other Unicode separators are payload
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class WorkerState(str, Enum):
    """Session lifecycle states."""

    NO_PROCESS = "no_process"  # No worker running, next query spawns one
    READY = "ready"  # Worker running and idle
    BUSY = "busy"  # Query in flight, reaper must not touch the worker
    CLOSED = "closed"  # Session shut down


class LineSource(Protocol):
    """Anything with a text ``readline()``: a pipe, a StringIO, a WorkerHandle reader."""

    def readline(self) -> str: ...


@dataclass(frozen=True)
class Result:
    """Outcome of one query.

    ``error`` is the only reliable failure signal: a worker may legitimately
    answer with zero lines.
    """

    query: str
    answers: Tuple[str, ...] = ()
    error: Optional[str] = None
    eval_time_ms: int = 0

    @classmethod
    def failure(cls, query: str, message: str) -> "Result":
        """Result for a query that never got a usable response."""
        return cls(query=query, answers=(), error=message, eval_time_ms=0)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @cached_property
    def fingerprint(self) -> str:
        """SHA-256 hex digest of the query text, computed once."""
        return hashlib.sha256(self.query.encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query": self.query,
            "answers": list(self.answers),
            "error": self.error,
            "eval_time_ms": self.eval_time_ms,
            "fingerprint": self.fingerprint,
        }

    def __str__(self) -> str:
        lines = [f"Q: {self.query}"]
        lines.extend(f"A: {answer}" for answer in self.answers)
        if self.is_error:
            lines.append(f"E: {self.error}")
        lines.append(f"T: {timedelta(milliseconds=self.eval_time_ms)}")
        return "\n".join(lines) + "\n"


def encode_query(text: str) -> str:
    """Render a query as exactly one request line."""
    return _LINE_BREAK.sub(" ", text) + "\n"


def _parse_eval_time(payload: str) -> int:
    try:
        value = int(payload.strip())
    except ValueError:
        return 0
    return value if value >= 0 else 0


def read_result(stream: LineSource, query: str) -> Result:
    """
    Read one response frame from the worker and build a Result.

    Reading stops at the first blank (or whitespace-only) line. Exceptions
    raised by the stream are captured into ``error``; answers read before the
    failure are kept.

    Args:
        stream: Worker output, one ``readline()`` per protocol line
        query: The query the frame answers

    Returns:
        Parsed Result
    """
    answers: List[str] = []
    error: Optional[str] = None
    eval_time_ms = 0
    first_line = True

    try:
        while True:
            raw = stream.readline()
            if raw == "":
                error = CLOSED_STREAM_ERROR
                break

            line = raw.rstrip("\r\n")
            if first_line:
                first_line = False
                if line.startswith(ECHO_PREFIX):
                    continue

            if not line.strip():
                break

            code = line[0]
            payload = line[FIELD_PREFIX_LENGTH:]
            if code == "A":
                answers.append(payload)
            elif code == "E":
                error = payload
            elif code == "T":
                eval_time_ms = _parse_eval_time(payload)
    except Exception as e:
        error = str(e) or type(e).__name__

    return Result(
        query=query,
        answers=tuple(answers),
        error=error,
        eval_time_ms=eval_time_ms,
    )
