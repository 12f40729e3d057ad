from __future__ import annotations

import hashlib
import io

import pytest

from qna.worker.protocol import (
    CLOSED_STREAM_ERROR,
    Result,
    encode_query,
    read_result,
)


def _read(text: str, query: str = "q") -> Result:
    return read_result(io.StringIO(text), query)


def test_parses_answers_and_time() -> None:
    result = _read("Q: 2+2\nA: 4\nT: 12\n\n", "2+2")

    assert result.query == "2+2"
    assert result.answers == ("4",)
    assert result.error is None
    assert result.eval_time_ms == 12


def test_error_line_sets_error_with_no_answers() -> None:
    result = _read("E: bad syntax\n\n")

    assert result.error == "bad syntax"
    assert result.answers == ()
    assert result.is_error


def test_last_error_line_wins() -> None:
    result = _read("E: first\nE: second\n\n")

    assert result.error == "second"


def test_malformed_time_is_zero() -> None:
    result = _read("A: x\nT: notanumber\n\n")

    assert result.answers == ("x",)
    assert result.eval_time_ms == 0
    assert result.error is None


def test_negative_time_is_zero() -> None:
    assert _read("T: -5\n\n").eval_time_ms == 0


def test_answer_order_is_preserved() -> None:
    result = _read("A: one\nA: two\nA: three\n\n")

    assert result.answers == ("one", "two", "three")


def test_unknown_lines_are_ignored() -> None:
    result = _read("A: kept\nX: ignored\nsomething else\nA: also kept\n\n")

    assert result.answers == ("kept", "also kept")
    assert result.error is None


def test_echo_line_is_not_dispatched() -> None:
    # An echo starting with A/E/T must not be read as a field
    result = _read("Q: Addition of 1\nA: 2\n\n", "Addition of 1")

    assert result.answers == ("2",)


def test_whitespace_only_line_terminates_frame() -> None:
    stream = io.StringIO("A: first\n   \nA: next frame\n\n")

    result = read_result(stream, "q")

    assert result.answers == ("first",)
    assert stream.readline() == "A: next frame\n"


def test_crlf_line_endings() -> None:
    result = _read("A: 4\r\nT: 7\r\n\r\n")

    assert result.answers == ("4",)
    assert result.eval_time_ms == 7


def test_empty_answer_payload() -> None:
    assert _read("A: \n\n").answers == ("",)


def test_end_of_stream_keeps_partial_answers() -> None:
    result = _read("A: before\n")

    assert result.answers == ("before",)
    assert result.error == CLOSED_STREAM_ERROR


class _FailingStream:
    def __init__(self, lines: list[str], exc: Exception):
        self._lines = list(lines)
        self._exc = exc

    def readline(self) -> str:
        if self._lines:
            return self._lines.pop(0)
        raise self._exc


def test_stream_exception_is_captured() -> None:
    stream = _FailingStream(["A: partial\n"], OSError("pipe broke"))

    result = read_result(stream, "q")

    assert result.answers == ("partial",)
    assert result.error == "pipe broke"


def test_stream_exception_without_message_uses_class_name() -> None:
    result = read_result(_FailingStream([], TimeoutError()), "q")

    assert result.error == "TimeoutError"


def test_fingerprint_is_sha256_of_query() -> None:
    result = Result(query="names of files of folder \"c:\\\"")

    expected = hashlib.sha256('names of files of folder "c:\\"'.encode("utf-8")).hexdigest()
    assert result.fingerprint == expected


@pytest.mark.parametrize("query", ["", "2+2", "exists file \"/tmp\"", "ünïcödé"])
def test_fingerprint_depends_on_query_only(query: str) -> None:
    first = Result(query=query, answers=("a",), error=None, eval_time_ms=5)
    second = Result(query=query, answers=(), error="boom", eval_time_ms=0)

    assert first.fingerprint == second.fingerprint
    assert first.fingerprint != Result(query=query + " ").fingerprint


def test_fingerprint_is_cached() -> None:
    result = Result(query="2+2")

    assert result.fingerprint is result.fingerprint
    assert "fingerprint" in vars(result)


def test_result_is_immutable() -> None:
    result = Result(query="2+2")

    with pytest.raises(AttributeError):
        result.query = "3+3"  # type: ignore[misc]


def test_failure_result() -> None:
    result = Result.failure("q", "Unable to spawn BigFix QnA process!")

    assert result.answers == ()
    assert result.error == "Unable to spawn BigFix QnA process!"
    assert result.eval_time_ms == 0


def test_str_renders_wire_format() -> None:
    result = Result(query="2+2", answers=("4",), error="warn", eval_time_ms=1500)

    assert str(result) == "Q: 2+2\nA: 4\nE: warn\nT: 0:00:01.500000\n"


def test_to_dict() -> None:
    data = Result(query="2+2", answers=("4",), eval_time_ms=12).to_dict()

    assert data == {
        "query": "2+2",
        "answers": ["4"],
        "error": None,
        "eval_time_ms": 12,
        "fingerprint": hashlib.sha256(b"2+2").hexdigest(),
    }


def test_encode_query_is_one_line() -> None:
    assert encode_query("2+2") == "2+2\n"
    assert encode_query("a\nb\r\nc") == "a b c\n"
    assert encode_query("") == "\n"


def test_encode_query_keeps_other_separators() -> None:
    text = 'name of "a\x0cb c\x85d"'

    assert encode_query(text) == text + "\n"
    assert encode_query("a\rb") == "a b\n"
