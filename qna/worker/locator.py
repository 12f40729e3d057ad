"""Discovery of the BigFix QnA executable."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..config import get_qna_path, get_qna_version

logger = logging.getLogger(__name__)


# Default name of the QnA executable inside an install folder
DEFAULT_QNA_EXECUTABLE = "qna.exe" if sys.platform == "win32" else "qna"

# Where the BigFix client (which ships QnA alongside it) installs on Linux/macOS
BESCLIENT_DIRS = ("/opt/BESClient/bin", "/Library/BESAgent/BESAgent.app/Contents/MacOS")

# Registry keys holding the BigFix client folder on Windows
_BESCLIENT_REGISTRY_KEYS = (
    r"SOFTWARE\Wow6432Node\BigFix\EnterpriseClient",
    r"SOFTWARE\BigFix\EnterpriseClient",
)


class ExecutableNotFoundError(FileNotFoundError):
    """No usable QnA executable could be found."""


@dataclass(frozen=True)
class QnaExecutable:
    """A resolved QnA executable."""

    path: str
    version: str


def _candidate(location: str) -> Optional[Path]:
    """Resolve a file or install folder to an executable QnA path."""
    path = Path(os.path.expandvars(os.path.expanduser(location)))
    if path.is_dir():
        path = path / DEFAULT_QNA_EXECUTABLE
    if path.is_file() and os.access(path, os.X_OK):
        return path.resolve()
    return None


def _bigfix_client_folder() -> Optional[str]:
    """Folder of the installed BigFix client, if any."""
    if sys.platform != "win32":
        for folder in BESCLIENT_DIRS:
            if os.path.isdir(folder):
                return folder
        return None

    import winreg

    for key_path in _BESCLIENT_REGISTRY_KEYS:
        try:
            with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, key_path) as key:
                value, _ = winreg.QueryValueEx(key, "EnterpriseClientFolder")
        except OSError:
            continue
        if value:
            return str(value)
    return None


def _search_paths() -> List[str]:
    """
    Locations to search, in priority order:
    1. QnA / QNA_PATH environment variables
    2. Current working directory
    3. BigFix client install folder
    4. Every PATH entry
    """
    paths: List[Optional[str]] = [
        get_qna_path(),
        os.getcwd(),
        _bigfix_client_folder(),
    ]
    paths.extend(os.getenv("PATH", "").split(os.pathsep))
    return [p for p in paths if p and p.strip()]


def locate_executable(path: Optional[str] = None) -> QnaExecutable:
    """
    Resolve the QnA executable.

    Args:
        path: Explicit executable or install folder. When given, no other
              location is searched.

    Returns:
        Resolved executable and its version

    Raises:
        ExecutableNotFoundError: If no executable qualifies
    """
    if path is not None and path.strip():
        found = _candidate(path)
        if found is None:
            raise ExecutableNotFoundError(f"QnA executable not found at {path}")
        return QnaExecutable(path=str(found), version=get_qna_version())

    for location in _search_paths():
        found = _candidate(location)
        if found is not None:
            logger.debug(f"Found QnA executable at {found}")
            return QnaExecutable(path=str(found), version=get_qna_version())

    raise ExecutableNotFoundError("Unable to locate the BigFix QnA executable")
