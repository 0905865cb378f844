"""Content domain models.

Everything the pipeline stages produce or consume: frames, outlines, scene
drafts, compiled NPCs, selected adversaries and items, echoes, and the
conversation messages exchanged with the model. Pydantic validates at every
boundary (tool input, LLM output, persisted snapshots, API bodies).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

SceneType = Literal["combat", "exploration", "social", "puzzle", "revelation", "mixed"]
SceneStatus = Literal["pending", "generating", "draft", "confirmed"]
NPCRole = Literal["ally", "neutral", "quest-giver", "antagonist", "bystander"]
ItemCategory = Literal["item", "weapon", "armor", "consumable"]
EchoCategory = Literal["complications", "rumors", "discoveries", "intrusions", "wonders"]
MessageRole = Literal["user", "assistant"]

ECHO_CATEGORIES: tuple[EchoCategory, ...] = (
    "complications", "rumors", "discoveries", "intrusions", "wonders",
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def timestamp() -> str:
    """Current time as an ISO 8601 string."""
    return utcnow().isoformat()


# ---------------------------------------------------------------------------
# Conversation
# ---------------------------------------------------------------------------

class ConversationMessage(BaseModel):
    """One entry of the append-only conversation log."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)


# ---------------------------------------------------------------------------
# Frame
# ---------------------------------------------------------------------------

class Frame(BaseModel):
    """The adventure premise: a catalog frame or a custom one."""

    id: str
    name: str
    description: str = ""
    themes: list[str] = Field(default_factory=list)
    typical_adversaries: list[str] = Field(default_factory=list)
    lore: str = ""
    is_custom: bool = False


class FrameDraft(BaseModel):
    """User- or model-authored frame content before it gets an id."""

    name: str
    description: str = ""
    themes: list[str] = Field(default_factory=list)
    typical_adversaries: list[str] = Field(default_factory=list)
    lore: str = ""


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------

class SceneBrief(BaseModel):
    id: str = ""
    scene_number: int
    title: str
    description: str = ""
    key_elements: list[str] = Field(default_factory=list)
    location: str | None = None
    characters: list[str] | None = None
    scene_type: SceneType | None = None


class Outline(BaseModel):
    id: str
    title: str
    summary: str = ""
    scenes: list[SceneBrief]
    is_confirmed: bool = False
    created_at: str
    updated_at: str


class OutlineDraft(BaseModel):
    """Outline content as produced by the model, before ids and timestamps."""

    title: str
    summary: str = ""
    scenes: list[SceneBrief] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------

class ExtractedNPC(BaseModel):
    name: str
    role: str = ""
    scene_id: str = ""
    description: str | None = None


class ExtractedAdversary(BaseModel):
    name: str
    type: str = ""
    tier: int = 1
    scene_id: str = ""
    notes: str | None = None


class ExtractedItem(BaseModel):
    name: str
    suggested_tier: int = 1
    scene_id: str = ""
    description: str | None = None


class ExtractedEntities(BaseModel):
    npcs: list[ExtractedNPC] = Field(default_factory=list)
    adversaries: list[ExtractedAdversary] = Field(default_factory=list)
    items: list[ExtractedItem] = Field(default_factory=list)


class KeyMoment(BaseModel):
    title: str
    description: str = ""


class SceneDraft(BaseModel):
    scene_id: str
    scene_number: int
    title: str
    introduction: str = ""
    key_moments: list[KeyMoment] = Field(default_factory=list)
    resolution: str = ""
    tier_guidance: str = ""
    tone_notes: str | None = None
    is_climactic: bool = False
    combat_notes: str | None = None
    environment_details: str | None = None
    discovery_opportunities: list[str] | None = None
    social_challenges: str | None = None
    puzzle_details: str | None = None
    revelation_content: str | None = None
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)


class Scene(BaseModel):
    brief: SceneBrief
    draft: SceneDraft | None = None
    status: SceneStatus = "pending"
    confirmed_at: str | None = None


# ---------------------------------------------------------------------------
# NPCs
# ---------------------------------------------------------------------------

class NPCExtractionContext(BaseModel):
    scene_id: str
    context: str = ""


class CompiledNPC(BaseModel):
    id: str
    name: str
    role: NPCRole = "neutral"
    description: str = ""
    appearance: str = ""
    personality: str = ""
    motivations: list[str] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)
    scene_appearances: list[str] = Field(default_factory=list)
    extracted_from: list[NPCExtractionContext] = Field(default_factory=list)
    is_confirmed: bool = False
    created_at: str = Field(default_factory=timestamp)
    updated_at: str = Field(default_factory=timestamp)


# ---------------------------------------------------------------------------
# Adversaries & items (catalog entries are opaque beyond their identity)
# ---------------------------------------------------------------------------

class Adversary(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    tier: int = 1
    type: str = ""


class SelectedAdversary(BaseModel):
    adversary: Adversary
    quantity: int = Field(default=1, ge=1, le=10)
    assigned_scenes: list[str] | None = None
    notes: str | None = None


class ItemData(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str
    tier: int | None = None


class Item(BaseModel):
    category: ItemCategory
    data: ItemData

    @property
    def key(self) -> str:
        return item_key(self.category, self.data.name)


class SelectedItem(BaseModel):
    item: Item
    quantity: int = Field(default=1, ge=1, le=10)
    assigned_scenes: list[str] | None = None
    notes: str | None = None


def item_key(category: str, name: str) -> str:
    """Identity of an item: same-named entries differ across categories."""
    return f"{category}:{name}"


# ---------------------------------------------------------------------------
# Echoes
# ---------------------------------------------------------------------------

class Echo(BaseModel):
    id: str
    category: EchoCategory
    title: str
    content: str = ""
    is_confirmed: bool = False
