"""Application configuration for the QnA executable and session timeouts."""

import os
import shlex
from typing import List, Optional


# Environment variable names
QNA_ENV = "QnA"  # Same variable the BigFix tooling uses for the QnA install folder
QNA_PATH_ENV = "QNA_PATH"
QNA_ARGS_ENV = "QNA_ARGS"
QNA_VERSION_ENV = "QNA_VERSION"
QNA_IDLE_TIMEOUT_ENV = "QNA_IDLE_TIMEOUT"
QNA_EVALUATION_TIMEOUT_ENV = "QNA_EVALUATION_TIMEOUT"

# Seconds to wait for the QnA process to answer before considering it hung
DEFAULT_EVALUATION_TIMEOUT = 60

# Seconds of inactivity before the QnA process is stopped
DEFAULT_IDLE_TIMEOUT = 300


def _get_env_int(name: str, default: int) -> int:
    """
    Get an environment variable as a positive integer.

    Args:
        name: Variable name
        default: Value used when the variable is unset, invalid or not positive

    Returns:
        Parsed value or default
    """
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        parsed = int(value)
    except (ValueError, TypeError):
        return default
    return parsed if parsed > 0 else default


def get_qna_path() -> Optional[str]:
    """
    Get the configured QnA location with priority order:
    1. QnA environment variable (file or install folder)
    2. QNA_PATH environment variable
    3. None (let the locator search)

    Returns:
        Configured path with environment references expanded, or None
    """
    for name in (QNA_ENV, QNA_PATH_ENV):
        value = os.getenv(name)
        if value and value.strip():
            return os.path.expandvars(value.strip())
    return None


def get_qna_args() -> List[str]:
    """Extra command-line arguments for the QnA executable (QNA_ARGS)."""
    value = os.getenv(QNA_ARGS_ENV, "")
    if not value.strip():
        return []
    return shlex.split(value, posix=os.name != "nt")


def get_qna_version() -> str:
    """
    Get the QnA version string.

    The version is informational only. It comes from QNA_VERSION when set,
    otherwise "unknown".
    """
    return os.getenv(QNA_VERSION_ENV, "").strip() or "unknown"


def get_idle_timeout() -> int:
    """Seconds of inactivity before the worker is stopped (QNA_IDLE_TIMEOUT)."""
    return _get_env_int(QNA_IDLE_TIMEOUT_ENV, DEFAULT_IDLE_TIMEOUT)


def get_evaluation_timeout() -> int:
    """Seconds a single query may wait for a response (QNA_EVALUATION_TIMEOUT)."""
    return _get_env_int(QNA_EVALUATION_TIMEOUT_ENV, DEFAULT_EVALUATION_TIMEOUT)
