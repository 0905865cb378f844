"""SessionContext: the single owner of one authoring session's state.

All session state (stage machine, dials, content pipeline, conversation) lives
in an immutable AdventureState. Mutations are pure transition functions from
dagger_gen.session / dials / pipeline applied through the context:

    ctx.update_content(pipeline.confirm_scene, "scene-1")
    ctx.set_dial("tone", "grim")          → True, or False if rejected

Each transition replaces the state in one assignment, so readers never see a
half-applied change, then notifies `on_change` (wired to the debounced saver
by the registry). Transitions that raise leave the state untouched.

The context also carries the per-turn bookkeeping the chat runner needs: the
one-turn-at-a-time `is_streaming` guard and a queue of UI events produced by
tool handlers, drained into the turn's event stream.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from . import dials as dial_ops
from . import session as session_ops
from .dials import DialSet, DialValidationError, migrate_dials
from .events import ChatEvent, session_stage
from .models import ConversationMessage, MessageRole
from .pipeline import PERSISTED_FIELDS, ContentState, can_leave_stage, initialize_scenes_from_outline
from .session import Session, Stage

logger = logging.getLogger(__name__)

T = TypeVar("T")

SNAPSHOT_VERSION = 2


class AdventureState(BaseModel):
    session: Session = Field(default_factory=Session)
    dials: DialSet = Field(default_factory=DialSet)
    content: ContentState = Field(default_factory=ContentState)
    conversation: list[ConversationMessage] = Field(default_factory=list)


class TurnInProgressError(RuntimeError):
    """A new user turn was submitted while the previous one is still streaming."""


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

def to_snapshot(state: AdventureState) -> dict[str, Any]:
    """Persisted form of a session. The conversation is stored separately."""
    return {
        "version": SNAPSHOT_VERSION,
        "session": state.session.model_dump(mode="json"),
        "dials": state.dials.model_dump(mode="json"),
        "content": state.content.model_dump(mode="json", include=set(PERSISTED_FIELDS)),
    }


def from_snapshot(
    data: dict[str, Any], conversation: list[ConversationMessage] | None = None,
) -> AdventureState:
    """Rebuild state from a snapshot of any version. Dials go through migration."""
    content_data = {k: v for k, v in (data.get("content") or {}).items() if k in PERSISTED_FIELDS}
    return AdventureState(
        session=Session.model_validate(data.get("session") or {}),
        dials=migrate_dials(data.get("dials")),
        content=ContentState.model_validate(content_data),
        conversation=list(conversation or []),
    )


# ---------------------------------------------------------------------------
# SessionContext
# ---------------------------------------------------------------------------

class SessionContext:
    def __init__(
        self,
        state: AdventureState | None = None,
        *,
        on_change: Callable[[SessionContext], None] | None = None,
        on_message: Callable[[SessionContext, ConversationMessage], None] | None = None,
    ) -> None:
        self._state = state or AdventureState()
        self.on_change = on_change
        self.on_message = on_message
        self._streaming = False
        self._events: list[ChatEvent] = []

    @classmethod
    def new(cls, name: str = "", **kwargs: Any) -> SessionContext:
        session, conversation = session_ops.init_session(name)
        return cls(AdventureState(session=session, conversation=conversation), **kwargs)

    # -- State access ---------------------------------------------------------

    @property
    def state(self) -> AdventureState:
        return self._state

    @property
    def session_id(self) -> str | None:
        return self._state.session.session_id

    @property
    def stage(self) -> Stage:
        return self._state.session.current_stage

    def snapshot(self) -> dict[str, Any]:
        return to_snapshot(self._state)

    def _commit(self, state: AdventureState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(self)

    # -- Generic transitions --------------------------------------------------

    def update_session(self, fn: Callable[..., Session], *args: Any) -> Session:
        session = fn(self._state.session, *args)
        self._commit(self._state.model_copy(update={"session": session}))
        return session

    def update_dials(self, fn: Callable[..., DialSet], *args: Any) -> DialSet:
        dials = fn(self._state.dials, *args)
        self._commit(self._state.model_copy(update={"dials": dials}))
        return dials

    def update_content(self, fn: Callable[..., ContentState], *args: Any) -> ContentState:
        content = fn(self._state.content, *args)
        self._commit(self._state.model_copy(update={"content": content}))
        return content

    def reset(self) -> None:
        """Blank state, as after reset(): no session, default dials, no content."""
        self._events.clear()
        self._commit(AdventureState())

    # -- Dials (boolean results) ----------------------------------------------

    def _try_dials(self, fn: Callable[..., DialSet], *args: Any) -> bool:
        try:
            self.update_dials(fn, *args)
        except DialValidationError as e:
            logger.warning("Rejected dial write: %s", e)
            return False
        return True

    def set_dial(self, dial_id: str, value: Any) -> bool:
        return self._try_dials(dial_ops.set_dial_value, dial_id, value)

    def confirm_dial(self, dial_id: str) -> bool:
        return self._try_dials(dial_ops.confirm_dial, dial_id)

    def unconfirm_dial(self, dial_id: str) -> bool:
        return self._try_dials(dial_ops.unconfirm_dial, dial_id)

    def reset_dial(self, dial_id: str) -> bool:
        return self._try_dials(dial_ops.reset_dial, dial_id)

    def add_theme(self, theme: str) -> bool:
        return self._try_dials(dial_ops.add_theme, theme)

    def remove_theme(self, theme: str) -> bool:
        return self._try_dials(dial_ops.remove_theme, theme)

    # -- Stage navigation -----------------------------------------------------

    def can_leave_current_stage(self) -> bool:
        return can_leave_stage(self.stage, self._state.dials, self._state.content)

    def set_stage(self, stage: Stage) -> None:
        if stage == self.stage:
            return
        self.update_session(session_ops.set_stage, stage)
        self._on_enter(stage)

    def advance(self) -> bool:
        """Move to the next stage if the current one's gate holds."""
        target = session_ops.next_stage(self.stage)
        if target is None or not self.can_leave_current_stage():
            return False
        self.set_stage(target)
        return True

    def go_back(self) -> bool:
        if not session_ops.can_go_back(self._state.session):
            return False
        self.update_session(session_ops.go_to_previous_stage)
        self.queue_event(session_stage(self.session_id, self.stage))
        return True

    def _on_enter(self, stage: Stage) -> None:
        if stage == "scenes" and self._state.content.outline is not None:
            self.update_content(initialize_scenes_from_outline)
        self.queue_event(session_stage(self.session_id, stage))

    # -- Conversation ---------------------------------------------------------

    def append_message(self, role: MessageRole, content: str, message_id: str | None = None) -> ConversationMessage:
        kwargs: dict[str, Any] = {"role": role, "content": content}
        if message_id:
            kwargs["id"] = message_id
        message = ConversationMessage(**kwargs)
        self._state = self._state.model_copy(
            update={"conversation": [*self._state.conversation, message]}
        )
        if self.on_message is not None:
            self.on_message(self, message)
        return message

    # -- Turn bookkeeping -----------------------------------------------------

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    def begin_turn(self) -> None:
        if self._streaming:
            raise TurnInProgressError(f"Session {self.session_id} already has a turn in progress")
        self._streaming = True
        self._events.clear()

    def end_turn(self) -> None:
        self._streaming = False

    def queue_event(self, event: ChatEvent) -> None:
        """Hold a UI event for the current turn's stream. Outside a turn there is no stream."""
        if self._streaming:
            self._events.append(event)

    def drain_events(self) -> list[ChatEvent]:
        events, self._events = self._events, []
        return events
