"""File-based JSON storage for authoring sessions.

Data layout:
  data/
    sessions/
      <session_id>.json    Session snapshot (session fields, dials, content)
      <session_id>/        Child resources:
        messages.json      Conversation log (append-only)
    config.json            App settings (LLM connections, role assignments,
                           compression budgets, autosave delay)

Snapshots are whole-document writes through a temp file; a failed write
raises PersistenceError and leaves the previous snapshot in place.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates: llm_connections replaced wholesale,
compression merged key-by-key, scalars overwritten.
"""

# Re-export all public symbols so `from dagger_gen import storage` works.

from .core import (  # noqa: F401
    check_session_id,
    data_dir,
    init_storage,
    session_child_dir,
    session_path,
    sessions_dir,
)

from .sessions import (  # noqa: F401
    PersistenceError,
    delete_session,
    list_sessions,
    load_snapshot,
    save_snapshot,
)

from .messages import (  # noqa: F401
    append_messages,
    clear_messages,
    get_messages,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)
