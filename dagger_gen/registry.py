"""In-process registry of live SessionContexts, wired to storage."""

from __future__ import annotations

import logging

from . import storage
from .context import SessionContext, from_snapshot
from .models import ConversationMessage
from .persistence import DEFAULT_DELAY_SECONDS, DebouncedSaver
from .session import is_session_id

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Creates, loads and forgets sessions.

    Every context handed out is wired so that state changes queue a debounced
    snapshot save and new conversation messages are appended to the log
    immediately.
    """

    def __init__(self, autosave_delay: float = DEFAULT_DELAY_SECONDS) -> None:
        self._autosave_delay = autosave_delay
        self._contexts: dict[str, SessionContext] = {}
        self._savers: dict[str, DebouncedSaver] = {}

    def _wire(self, ctx: SessionContext) -> SessionContext:
        session_id = ctx.session_id
        if session_id is None:
            raise ValueError("Cannot register a session without an id")
        saver = DebouncedSaver(
            lambda snapshot: storage.save_snapshot(session_id, snapshot),
            delay=self._autosave_delay,
        )
        ctx.on_change = lambda c: saver.queue(c.snapshot())
        ctx.on_message = _append_message
        self._contexts[session_id] = ctx
        self._savers[session_id] = saver
        return ctx

    def create(self, name: str = "") -> SessionContext:
        ctx = self._wire(SessionContext.new(name))
        storage.append_messages(ctx.session_id, [
            m.model_dump(mode="json") for m in ctx.state.conversation
        ])
        self._savers[ctx.session_id].queue(ctx.snapshot())
        logger.info("Created session %s (%s)", ctx.session_id, ctx.state.session.adventure_name or "unnamed")
        return ctx

    def get(self, session_id: str) -> SessionContext | None:
        if not is_session_id(session_id):
            return None
        ctx = self._contexts.get(session_id)
        if ctx is not None:
            return ctx
        snapshot = storage.load_snapshot(session_id)
        if snapshot is None:
            return None
        conversation = [ConversationMessage.model_validate(m) for m in storage.get_messages(session_id)]
        logger.debug("Loaded session %s from disk", session_id)
        return self._wire(SessionContext(from_snapshot(snapshot, conversation)))

    def flush(self, session_id: str) -> bool:
        saver = self._savers.get(session_id)
        return saver.flush() if saver else False

    def flush_all(self) -> None:
        for saver in self._savers.values():
            saver.flush()

    def delete(self, session_id: str) -> bool:
        if not is_session_id(session_id):
            logger.warning("Refusing to delete malformed session id %r", session_id)
            return False
        saver = self._savers.pop(session_id, None)
        if saver is not None:
            saver.cancel()
        in_memory = self._contexts.pop(session_id, None) is not None
        on_disk = storage.delete_session(session_id)
        return in_memory or on_disk


def _append_message(ctx: SessionContext, message: ConversationMessage) -> None:
    storage.append_messages(ctx.session_id, [message.model_dump(mode="json")])
