"""Tools the chat model can call to record authoring decisions.

Each tool has a definition sent to the model ({name, description,
inputSchema}), a pydantic input model, the stages where it is offered, and a
handler that applies the decision to a SessionContext. Handlers queue the
panel/UI events the client needs; the chat runner drains them into the turn's
event stream right after the tool's tool:end.

    dispatch_tool(ctx, "set_dial", {"dial_id": "tone", "value": "grim"})
    → ({"dial_id": "tone", "value": "grim", "confirmed": True}, False)

Rejected input never raises out of dispatch_tool: it comes back as
({"error": ...}, True) so the model can read the reason and try again.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .context import SessionContext
from .dials import DialId, dials_summary
from .events import panel_update, ui_ready
from .models import (
    CompiledNPC,
    Echo,
    EchoCategory,
    ExtractedEntities,
    FrameDraft,
    ItemCategory,
    KeyMoment,
    NPCRole,
    OutlineDraft,
    SceneDraft,
    item_key,
)
from .pipeline import (
    AdversaryFilters,
    ItemFilters,
    StageError,
    add_echo,
    add_npc,
    confirm_scene,
    filtered_adversaries,
    filtered_items,
    reorder_scene_briefs,
    select_adversary,
    select_frame,
    select_item,
    set_custom_frame_draft,
    set_outline,
    set_scene_draft,
)
from .pipeline.state import now_ms
from .session import STAGES, Stage, set_adventure_name

logger = logging.getLogger(__name__)


class ToolError(ValueError):
    """Tool input the handler refuses."""


class ToolDefinition(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")


@dataclass(frozen=True)
class _Tool:
    definition: ToolDefinition
    input_model: type[BaseModel]
    handler: Callable[[SessionContext, Any], Any]
    stages: tuple[Stage, ...]


_TOOLS: dict[str, _Tool] = {}


def tool(
    name: str, description: str, input_model: type[BaseModel], stages: tuple[Stage, ...] = STAGES,
) -> Callable:
    def decorator(fn: Callable[[SessionContext, Any], Any]) -> Callable:
        _TOOLS[name] = _Tool(
            definition=ToolDefinition(
                name=name, description=description, input_schema=input_model.model_json_schema(),
            ),
            input_model=input_model,
            handler=fn,
            stages=stages,
        )
        return fn
    return decorator


def tools_for_stage(stage: Stage) -> list[ToolDefinition]:
    return [t.definition for t in _TOOLS.values() if stage in t.stages]


def all_tools() -> list[ToolDefinition]:
    return [t.definition for t in _TOOLS.values()]


def dispatch_tool(ctx: SessionContext, name: str, args: dict[str, Any]) -> tuple[Any, bool]:
    """Run a tool against the session. Returns (result, is_error)."""
    entry = _TOOLS.get(name)
    if entry is None:
        return {"error": f"Unknown tool: {name}"}, True
    if ctx.stage not in entry.stages:
        return {"error": f"{name} is not available during the {ctx.stage} stage"}, True
    try:
        result = entry.handler(ctx, entry.input_model.model_validate(args))
    except (ValueError, StageError) as e:
        logger.warning("Tool %s rejected: %s", name, e)
        return {"error": str(e)}, True
    logger.debug("Tool %s ok", name)
    return result, False


# ---------------------------------------------------------------------------
# Input models
# ---------------------------------------------------------------------------

class SignalReadyInput(BaseModel):
    stage: Stage
    summary: str


class SuggestAdventureNameInput(BaseModel):
    name: str = Field(min_length=1)
    reason: str = ""


class SetDialInput(BaseModel):
    dial_id: DialId
    value: Any = None
    confirm: bool = True


class SceneDraftInput(BaseModel):
    scene_id: str
    introduction: str
    key_moments: list[KeyMoment] = Field(default_factory=list)
    resolution: str = ""
    tier_guidance: str = ""
    extracted_entities: ExtractedEntities = Field(default_factory=ExtractedEntities)


class NPCInput(BaseModel):
    name: str = Field(min_length=1)
    role: NPCRole = "neutral"
    description: str = ""
    appearance: str = ""
    personality: str = ""
    motivations: list[str] = Field(default_factory=list)
    connections: list[str] = Field(default_factory=list)
    scene_appearances: list[str] = Field(default_factory=list)


class EchoInput(BaseModel):
    category: EchoCategory
    title: str = Field(min_length=1)
    content: str = ""


class SelectFrameInput(BaseModel):
    frame_id: str


class SceneIdInput(BaseModel):
    scene_id: str


class QueryAdversariesInput(BaseModel):
    tier: int | None = None
    type: str | None = None
    search: str = ""
    limit: int = Field(default=5, ge=1, le=50)


class SelectAdversaryInput(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=10)


class QueryItemsInput(BaseModel):
    tier: int | None = None
    category: ItemCategory | None = None
    search: str = ""
    limit: int = Field(default=5, ge=1, le=50)


class SelectItemInput(BaseModel):
    category: ItemCategory
    name: str = Field(min_length=1)
    quantity: int = Field(default=1, ge=1, le=10)


class ReorderScenesInput(BaseModel):
    scene_ids: list[str]


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

@tool(
    "signal_ready",
    "Tell the storyteller the current stage is complete and they can move on.",
    SignalReadyInput,
)
def _signal_ready(ctx: SessionContext, args: SignalReadyInput) -> dict[str, Any]:
    if args.stage != ctx.stage:
        raise ToolError(f"The session is in the {ctx.stage} stage, not {args.stage}")
    if not ctx.can_leave_current_stage():
        raise ToolError(f"The {ctx.stage} stage still has unconfirmed decisions")
    ctx.queue_event(ui_ready(args.stage, args.summary))
    return {"ready": True, "stage": args.stage}


@tool(
    "suggest_adventure_name",
    "Propose a name for the adventure.",
    SuggestAdventureNameInput,
)
def _suggest_adventure_name(ctx: SessionContext, args: SuggestAdventureNameInput) -> dict[str, Any]:
    session = ctx.update_session(set_adventure_name, args.name)
    ctx.queue_event(panel_update("adventure_name", {"name": session.adventure_name, "reason": args.reason}))
    return {"name": session.adventure_name}


@tool(
    "set_dial",
    "Set one adventure dial (party_size, party_tier, scene_count, session_length, tone, "
    "pillar_balance, npc_density, lethality, emotional_register, themes).",
    SetDialInput,
    stages=("dial-tuning",),
)
def _set_dial(ctx: SessionContext, args: SetDialInput) -> dict[str, Any]:
    if not ctx.set_dial(args.dial_id, args.value):
        raise ToolError(f"{args.value!r} is not a valid value for {args.dial_id}")
    if args.confirm:
        ctx.confirm_dial(args.dial_id)
    summary = dials_summary(ctx.state.dials)
    ctx.queue_event(panel_update("dials", summary))
    value = ctx.state.dials.model_dump(mode="json")[args.dial_id]
    return {"dial_id": args.dial_id, "value": value, "confirmed": args.dial_id in ctx.state.dials.confirmed_dials}


@tool(
    "set_frame",
    "Record a custom adventure frame: the premise, setting, themes and lore.",
    FrameDraft,
    stages=("frame",),
)
def _set_frame(ctx: SessionContext, args: FrameDraft) -> dict[str, Any]:
    content = ctx.update_content(set_custom_frame_draft, args)
    frame = content.selected_frame.model_dump(mode="json")
    ctx.queue_event(panel_update("frame", frame))
    return {"frame_id": frame["id"]}


@tool(
    "set_outline",
    "Record the adventure outline as an ordered list of scene briefs.",
    OutlineDraft,
    stages=("outline",),
)
def _set_outline(ctx: SessionContext, args: OutlineDraft) -> dict[str, Any]:
    outline = ctx.update_content(set_outline, args).outline
    ctx.queue_event(panel_update("outline", outline.model_dump(mode="json")))
    return {"outline_id": outline.id, "scene_ids": [s.id for s in outline.scenes]}


@tool(
    "set_scene_draft",
    "Record the draft of one scene from the outline.",
    SceneDraftInput,
    stages=("scenes",),
)
def _set_scene_draft(ctx: SessionContext, args: SceneDraftInput) -> dict[str, Any]:
    scene = next((s for s in ctx.state.content.scenes if s.brief.id == args.scene_id), None)
    if scene is None:
        raise ToolError(f"Unknown scene: {args.scene_id}")
    draft = SceneDraft(
        scene_number=scene.brief.scene_number,
        title=scene.brief.title,
        **args.model_dump(),
    )
    ctx.update_content(set_scene_draft, draft)
    ctx.queue_event(panel_update("scene", draft.model_dump(mode="json")))
    return {"scene_id": args.scene_id, "status": "draft"}


@tool(
    "add_npc",
    "Add or replace an NPC in the adventure's cast.",
    NPCInput,
    stages=("npcs",),
)
def _add_npc(ctx: SessionContext, args: NPCInput) -> dict[str, Any]:
    npc = CompiledNPC(id=f"npc-{now_ms()}-{uuid.uuid4().hex[:6]}", **args.model_dump())
    content = ctx.update_content(add_npc, npc)
    ctx.queue_event(panel_update("npcs", [n.model_dump(mode="json") for n in content.npcs]))
    return {"npc_id": npc.id}


@tool(
    "add_echo",
    "Add an echo: a complication, rumor, discovery, intrusion or wonder for the table.",
    EchoInput,
    stages=("echoes",),
)
def _add_echo(ctx: SessionContext, args: EchoInput) -> dict[str, Any]:
    echo = Echo(id=f"echo-{now_ms()}-{uuid.uuid4().hex[:6]}", **args.model_dump())
    content = ctx.update_content(add_echo, echo)
    ctx.queue_event(panel_update("echoes", [e.model_dump(mode="json") for e in content.echoes]))
    return {"echo_id": echo.id}


@tool(
    "select_frame",
    "Choose one of the catalog frames offered to the storyteller, by id.",
    SelectFrameInput,
    stages=("frame",),
)
def _select_frame(ctx: SessionContext, args: SelectFrameInput) -> dict[str, Any]:
    frame = next((f for f in ctx.state.content.available_frames if f.id == args.frame_id), None)
    if frame is None:
        raise ToolError(f"Unknown frame: {args.frame_id}")
    content = ctx.update_content(select_frame, frame)
    ctx.queue_event(panel_update("frame", content.selected_frame.model_dump(mode="json")))
    return {"frame_id": frame.id, "name": frame.name}


@tool(
    "reorder_scenes",
    "Change the order of the outline's scenes. List every scene id in the new order.",
    ReorderScenesInput,
    stages=("outline",),
)
def _reorder_scenes(ctx: SessionContext, args: ReorderScenesInput) -> dict[str, Any]:
    outline = ctx.update_content(reorder_scene_briefs, args.scene_ids).outline
    ctx.queue_event(panel_update("outline", outline.model_dump(mode="json")))
    return {"scene_ids": [s.id for s in outline.scenes]}


@tool(
    "confirm_scene",
    "Mark a drafted scene as confirmed once the storyteller approves it.",
    SceneIdInput,
    stages=("scenes",),
)
def _confirm_scene(ctx: SessionContext, args: SceneIdInput) -> dict[str, Any]:
    content = ctx.update_content(confirm_scene, args.scene_id)
    scene = next(s for s in content.scenes if s.brief.id == args.scene_id)
    ctx.queue_event(panel_update("scene", {"scene_id": args.scene_id, "status": scene.status}))
    confirmed = sum(1 for s in content.scenes if s.status == "confirmed")
    return {"scene_id": args.scene_id, "status": scene.status, "confirmed": confirmed, "total": len(content.scenes)}


@tool(
    "query_adversaries",
    "Search the adversary catalog by tier, type or name.",
    QueryAdversariesInput,
    stages=("scenes", "adversaries"),
)
def _query_adversaries(ctx: SessionContext, args: QueryAdversariesInput) -> dict[str, Any]:
    filters = AdversaryFilters(tier=args.tier, type=args.type, search=args.search)
    matches = filtered_adversaries(ctx.state.content.model_copy(update={"adversary_filters": filters}))
    return {
        "adversaries": [a.model_dump(mode="json") for a in matches[:args.limit]],
        "total": len(matches),
    }


@tool(
    "select_adversary",
    "Add a catalog adversary to the encounter roster, or raise its quantity.",
    SelectAdversaryInput,
    stages=("adversaries",),
)
def _select_adversary(ctx: SessionContext, args: SelectAdversaryInput) -> dict[str, Any]:
    adversary = next((a for a in ctx.state.content.available_adversaries if a.name == args.name), None)
    if adversary is None:
        raise ToolError(f"No adversary named {args.name!r} in the catalog")
    content = ctx.update_content(select_adversary, adversary, args.quantity)
    ctx.queue_event(panel_update(
        "adversaries", [s.model_dump(mode="json") for s in content.selected_adversaries],
    ))
    entry = next(s for s in content.selected_adversaries if s.adversary.name == args.name)
    return {"name": args.name, "quantity": entry.quantity}


@tool(
    "query_items",
    "Search the item catalog by tier, category or name.",
    QueryItemsInput,
    stages=("scenes", "items"),
)
def _query_items(ctx: SessionContext, args: QueryItemsInput) -> dict[str, Any]:
    filters = ItemFilters(tier=args.tier, category=args.category, search=args.search)
    matches = filtered_items(ctx.state.content.model_copy(update={"item_filters": filters}))
    return {
        "items": [i.model_dump(mode="json") for i in matches[:args.limit]],
        "total": len(matches),
    }


@tool(
    "select_item",
    "Add a catalog item to the adventure's rewards, or raise its quantity.",
    SelectItemInput,
    stages=("items",),
)
def _select_item(ctx: SessionContext, args: SelectItemInput) -> dict[str, Any]:
    key = item_key(args.category, args.name)
    item = next((i for i in ctx.state.content.available_items if i.key == key), None)
    if item is None:
        raise ToolError(f"No {args.category} named {args.name!r} in the catalog")
    content = ctx.update_content(select_item, item, args.quantity)
    ctx.queue_event(panel_update("items", [s.model_dump(mode="json") for s in content.selected_items]))
    entry = next(s for s in content.selected_items if s.item.key == key)
    return {"key": key, "quantity": entry.quantity}
