"""Authoring session state machine.

Stages run in a fixed order:

    setup → dial-tuning → frame → outline → scenes → npcs → adversaries
          → items → echoes → complete

`set_stage` records the stage being left in `stage_history`, so
`go_to_previous_stage` can walk back the path the user actually took. The
state machine never checks whether a stage's content is complete; that is
the job of the gating predicates in `dagger_gen.pipeline.gates`.
"""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Literal, get_args

from pydantic import BaseModel, Field

from .models import ConversationMessage, utcnow

Stage = Literal[
    "setup",
    "dial-tuning",
    "frame",
    "outline",
    "scenes",
    "npcs",
    "adversaries",
    "items",
    "echoes",
    "complete",
]

STAGES: tuple[Stage, ...] = get_args(Stage)

_SESSION_ID = re.compile(r"[0-9a-f]{32}")

WELCOME_MESSAGE = (
    "Welcome, storyteller! Let's shape your adventure together. "
    "First, tell me about your table: how many players are in your party, "
    "what tier are their characters, and how long do you want the session to run?"
)


class Session(BaseModel):
    session_id: str | None = None
    adventure_name: str = ""
    created_at: datetime | None = None
    current_stage: Stage = "setup"
    stage_history: list[Stage] = Field(default_factory=list)
    external_conversation_id: str | None = None


def is_session_id(value: str) -> bool:
    """Whether `value` has the shape of an id issued by init_session (uuid4 hex)."""
    return _SESSION_ID.fullmatch(value) is not None


def init_session(name: str = "") -> tuple[Session, list[ConversationMessage]]:
    """Start a fresh session. Returns the session and its seeded conversation."""
    session = Session(
        session_id=uuid.uuid4().hex,
        adventure_name=name.strip(),
        created_at=utcnow(),
        current_stage="dial-tuning",
        stage_history=["setup"],
    )
    welcome = ConversationMessage(role="assistant", content=WELCOME_MESSAGE)
    return session, [welcome]


def set_stage(session: Session, stage: Stage) -> Session:
    if stage == session.current_stage:
        return session
    return session.model_copy(update={
        "current_stage": stage,
        "stage_history": [*session.stage_history, session.current_stage],
    })


def go_to_previous_stage(session: Session) -> Session:
    if not session.stage_history:
        return session
    *rest, previous = session.stage_history
    return session.model_copy(update={"current_stage": previous, "stage_history": rest})


def reset_session() -> Session:
    return Session()


def set_adventure_name(session: Session, name: str) -> Session:
    return session.model_copy(update={"adventure_name": name.strip()})


def set_external_conversation_id(session: Session, conversation_id: str | None) -> Session:
    return session.model_copy(update={"external_conversation_id": conversation_id})


# -- Selectors ---------------------------------------------------------------

def has_active_session(session: Session) -> bool:
    return session.session_id is not None


def can_go_back(session: Session) -> bool:
    return bool(session.stage_history)


def stage_index(stage: Stage) -> int:
    return STAGES.index(stage)


def next_stage(stage: Stage) -> Stage | None:
    i = stage_index(stage)
    return STAGES[i + 1] if i + 1 < len(STAGES) else None


def is_complete(session: Session) -> bool:
    return session.current_stage == "complete"
