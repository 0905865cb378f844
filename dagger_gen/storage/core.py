"""Storage initialization and path helpers."""

import re
from pathlib import Path

_data_dir: Path | None = None

# Session ids become file and directory names under sessions/.
_SAFE_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")


def init_storage(data_dir: Path) -> None:
    global _data_dir
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    sessions_dir().mkdir(exist_ok=True)


def data_dir() -> Path:
    if _data_dir is None:
        raise RuntimeError("Call init_storage() before using storage")
    return _data_dir


def sessions_dir() -> Path:
    return data_dir() / "sessions"


def check_session_id(session_id: str) -> str:
    """Reject ids that are not a single plain path component."""
    if not _SAFE_ID.fullmatch(session_id):
        raise ValueError(f"Invalid session id: {session_id!r}")
    return session_id


def session_path(session_id: str) -> Path:
    return sessions_dir() / f"{check_session_id(session_id)}.json"


def session_child_dir(session_id: str) -> Path:
    return sessions_dir() / check_session_id(session_id)
