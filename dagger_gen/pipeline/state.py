"""ContentState: everything the content stages produce, plus per-stage flags."""

from __future__ import annotations

import time
from typing import Literal

from pydantic import BaseModel, Field

from ..idset import OrderedIdSet
from ..models import (
    Adversary,
    CompiledNPC,
    Echo,
    EchoCategory,
    Frame,
    Item,
    ItemCategory,
    Outline,
    Scene,
    SelectedAdversary,
    SelectedItem,
)

StageKey = Literal["frame", "outline", "scene", "npc", "adversary", "item", "echo"]

MIN_QUANTITY = 1
MAX_QUANTITY = 10


class StageError(RuntimeError):
    """A failure or disallowed operation scoped to one content stage."""

    def __init__(self, stage: StageKey, message: str) -> None:
        self.stage = stage
        super().__init__(message)


class GenerationError(StageError):
    """The LLM call for a stage failed or returned unusable output."""


class AdversaryFilters(BaseModel):
    tier: int | None = None
    type: str | None = None
    search: str = ""


class ItemFilters(BaseModel):
    tier: int | None = None
    category: ItemCategory | None = None
    search: str = ""


class ContentState(BaseModel):
    # Frame
    available_frames: list[Frame] = Field(default_factory=list)
    selected_frame: Frame | None = None
    frame_confirmed: bool = False
    frame_loading: bool = False
    frame_error: str | None = None

    # Outline
    outline: Outline | None = None
    outline_loading: bool = False
    outline_error: str | None = None

    # Scenes
    scenes: list[Scene] = Field(default_factory=list)
    current_scene_id: str | None = None
    scene_loading: bool = False
    scene_error: str | None = None
    scene_streaming_content: str | None = None

    # NPCs
    npcs: list[CompiledNPC] = Field(default_factory=list)
    confirmed_npc_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    refining_npc_id: str | None = None
    npc_loading: bool = False
    npc_error: str | None = None
    npc_streaming_content: str | None = None

    # Adversaries (identity: adversary name)
    available_adversaries: list[Adversary] = Field(default_factory=list)
    selected_adversaries: list[SelectedAdversary] = Field(default_factory=list)
    confirmed_adversary_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    adversary_filters: AdversaryFilters = Field(default_factory=AdversaryFilters)
    adversary_loading: bool = False
    adversary_error: str | None = None

    # Items (identity: "<category>:<name>")
    available_items: list[Item] = Field(default_factory=list)
    selected_items: list[SelectedItem] = Field(default_factory=list)
    confirmed_item_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    item_filters: ItemFilters = Field(default_factory=ItemFilters)
    item_loading: bool = False
    item_error: str | None = None

    # Echoes
    echoes: list[Echo] = Field(default_factory=list)
    confirmed_echo_ids: OrderedIdSet = Field(default_factory=OrderedIdSet)
    active_echo_category: EchoCategory = "complications"
    echo_loading: bool = False
    echo_error: str | None = None
    echo_streaming_content: str | None = None


# Fields written to a persisted snapshot; catalogs and transient flags are not.
PERSISTED_FIELDS: frozenset[str] = frozenset({
    "selected_frame",
    "frame_confirmed",
    "outline",
    "scenes",
    "current_scene_id",
    "npcs",
    "confirmed_npc_ids",
    "selected_adversaries",
    "confirmed_adversary_ids",
    "selected_items",
    "confirmed_item_ids",
    "echoes",
    "confirmed_echo_ids",
})


def now_ms() -> int:
    return int(time.time() * 1000)


def clamp_quantity(quantity: int) -> int:
    return max(MIN_QUANTITY, min(MAX_QUANTITY, quantity))


def set_loading(content: ContentState, stage: StageKey, loading: bool) -> ContentState:
    """Toggle a stage's loading flag. Starting a load clears its previous error."""
    update: dict[str, object] = {f"{stage}_loading": loading}
    if loading:
        update[f"{stage}_error"] = None
    return content.model_copy(update=update)


def set_error(content: ContentState, stage: StageKey, error: str | None) -> ContentState:
    """Record a stage error; always ends that stage's loading state."""
    return content.model_copy(update={f"{stage}_error": error, f"{stage}_loading": False})


def reset_content() -> ContentState:
    return ContentState()
