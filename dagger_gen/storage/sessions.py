"""Session snapshot files: one JSON document per authoring session."""

import json
import logging
import shutil
from datetime import datetime, timezone
from typing import Any

from .core import session_child_dir, session_path, sessions_dir

logger = logging.getLogger(__name__)


class PersistenceError(RuntimeError):
    """A snapshot could not be written."""


def save_snapshot(session_id: str, snapshot: dict[str, Any]) -> None:
    """Write a snapshot, replacing any previous one for the session."""
    path = session_path(session_id)
    tmp = path.with_suffix(".json.tmp")
    data = {**snapshot, "saved_at": datetime.now(timezone.utc).isoformat()}
    try:
        tmp.write_text(json.dumps(data, indent=2))
        tmp.replace(path)
    except OSError as e:
        raise PersistenceError(f"Could not save session {session_id}: {e}") from e
    logger.debug("Saved snapshot %s", session_id)


def load_snapshot(session_id: str) -> dict[str, Any] | None:
    path = session_path(session_id)
    if not path.is_file():
        return None
    return json.loads(path.read_text())


def list_sessions() -> list[dict[str, Any]]:
    """Summaries of every stored session, newest save first."""
    results = []
    for path in sessions_dir().glob("*.json"):
        data = json.loads(path.read_text())
        session = data.get("session") or {}
        results.append({
            "session_id": session.get("session_id") or path.stem,
            "adventure_name": session.get("adventure_name", ""),
            "current_stage": session.get("current_stage", "setup"),
            "saved_at": data.get("saved_at", ""),
        })
    results.sort(key=lambda s: s["saved_at"], reverse=True)
    return results


def delete_session(session_id: str) -> bool:
    """Remove a session's snapshot and message log. Returns whether anything existed."""
    path = session_path(session_id)
    child_dir = session_child_dir(session_id)
    root = sessions_dir().resolve()
    if path.resolve().parent != root or child_dir.resolve().parent != root:
        raise ValueError(f"Session {session_id!r} resolves outside {root}")
    found = False
    if path.is_file():
        path.unlink()
        found = True
    if child_dir.is_dir():
        shutil.rmtree(child_dir)
        found = True
    return found
