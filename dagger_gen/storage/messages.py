"""Conversation storage (append-only log per session)."""

import json
from pathlib import Path
from typing import Any

from .core import session_child_dir


def _messages_path(session_id: str) -> Path:
    return session_child_dir(session_id) / "messages.json"


def get_messages(session_id: str) -> list[dict[str, Any]]:
    """Load messages for a session. Returns [] if none exist."""
    path = _messages_path(session_id)
    if not path.is_file():
        return []
    return json.loads(path.read_text())


def append_messages(session_id: str, messages: list[dict[str, Any]]) -> None:
    """Append messages to a session's conversation log."""
    path = _messages_path(session_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    existing = get_messages(session_id)
    existing.extend(messages)
    path.write_text(json.dumps(existing, indent=2))


def clear_messages(session_id: str) -> None:
    path = _messages_path(session_id)
    if path.is_file():
        path.unlink()
