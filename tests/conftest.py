"""Shared test fixtures."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from qna.worker import ProcessController, Session

FAKE_QNA = str(Path(__file__).parent / "fake_qna.py")


@pytest.fixture()
def make_session():
    """Build Sessions running the fake QnA script; all are closed afterwards."""
    sessions: list[Session] = []

    def _make(**kwargs) -> Session:
        kwargs.setdefault("args", [FAKE_QNA])
        session = Session(sys.executable, "test", **kwargs)
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        session.close()


@pytest.fixture()
def controller():
    """ProcessController running the fake QnA script."""
    ctrl = ProcessController(sys.executable, [FAKE_QNA])
    yield ctrl
    ctrl.terminate()


@pytest.fixture()
def clean_qna_env(monkeypatch):
    """Remove QnA-related environment variables."""
    for name in (
        "QnA",
        "QNA_PATH",
        "QNA_ARGS",
        "QNA_VERSION",
        "QNA_IDLE_TIMEOUT",
        "QNA_EVALUATION_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
