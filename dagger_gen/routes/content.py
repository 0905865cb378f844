"""Content pipeline endpoints: frame, outline, scenes, NPCs, adversaries, items, echoes.

Every endpoint operates on one session and returns its full state. Refused
transitions (a locked frame, a confirmed scene) answer 409; a failed LLM call
answers 502 after the stage's error field has been recorded.
"""

from typing import Any

from fastapi import APIRouter, Request

from dagger_gen import pipeline
from dagger_gen.models import Adversary, EchoCategory, Frame, FrameDraft, Item, OutlineDraft, SceneDraft
from dagger_gen.pipeline import generation

from .deps import apply_content, get_generation_llm, get_session_ctx, session_view, stage_http_error
from .models import (
    EchoGenerateBody,
    FeedbackBody,
    ItemQuantityBody,
    ItemRef,
    QuantityBody,
    SelectAdversaryBody,
    SelectItemBody,
)

router = APIRouter(prefix="/sessions/{session_id}")


# -- Frame --------------------------------------------------------------------

@router.put("/frames")
async def set_available_frames(request: Request, session_id: str, body: list[Frame]):
    """Replace the frame catalog offered to the user."""
    return apply_content(get_session_ctx(request, session_id), pipeline.set_available_frames, body)


@router.post("/frame/select")
async def select_frame(request: Request, session_id: str, body: Frame):
    return apply_content(get_session_ctx(request, session_id), pipeline.select_frame, body)


@router.post("/frame/custom")
async def custom_frame(request: Request, session_id: str, body: FrameDraft):
    """Use a user-written frame instead of a catalog one."""
    return apply_content(get_session_ctx(request, session_id), pipeline.set_custom_frame_draft, body)


@router.post("/frame/confirm")
async def confirm_frame(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_frame)


@router.delete("/frame")
async def clear_frame(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.clear_frame)


# -- Outline ------------------------------------------------------------------

@router.post("/outline/generate")
async def generate_outline(request: Request, session_id: str, body: FeedbackBody):
    """Generate (or regenerate with feedback) the scene outline."""
    ctx = get_session_ctx(request, session_id)
    llm = get_generation_llm(request)
    try:
        await generation.generate_outline(ctx, llm, body.feedback)
    except pipeline.StageError as e:
        raise stage_http_error(e)
    return session_view(ctx)


@router.put("/outline")
async def set_outline(request: Request, session_id: str, body: OutlineDraft):
    """Store a hand-written outline."""
    return apply_content(get_session_ctx(request, session_id), pipeline.set_outline, body)


@router.patch("/outline/scenes/{scene_id}")
async def update_scene_brief(request: Request, session_id: str, scene_id: str, body: dict[str, Any]):
    return apply_content(get_session_ctx(request, session_id), pipeline.update_scene_brief, scene_id, body)


@router.post("/outline/confirm")
async def confirm_outline(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_outline)


@router.delete("/outline")
async def clear_outline(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.clear_outline)


# -- Scenes -------------------------------------------------------------------

@router.post("/scenes/init")
async def initialize_scenes(request: Request, session_id: str):
    """Create one pending scene per outline brief, keeping existing drafts."""
    return apply_content(get_session_ctx(request, session_id), pipeline.initialize_scenes_from_outline)


@router.post("/scenes/next")
async def next_scene(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.navigate_to_next_scene)


@router.post("/scenes/previous")
async def previous_scene(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.navigate_to_previous_scene)


@router.post("/scenes/confirm-all")
async def confirm_all_scenes(request: Request, session_id: str):
    """Confirm every scene that has a draft."""
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_all_scenes)


@router.post("/scenes/{scene_id}/current")
async def set_current_scene(request: Request, session_id: str, scene_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.set_current_scene, scene_id)


@router.post("/scenes/{scene_id}/generate")
async def generate_scene(request: Request, session_id: str, scene_id: str, body: FeedbackBody):
    """Draft (or redraft with feedback) one scene."""
    ctx = get_session_ctx(request, session_id)
    llm = get_generation_llm(request)
    try:
        await generation.generate_scene(ctx, llm, scene_id, body.feedback)
    except pipeline.StageError as e:
        raise stage_http_error(e)
    return session_view(ctx)


@router.put("/scenes/{scene_id}/draft")
async def set_scene_draft(request: Request, session_id: str, scene_id: str, body: SceneDraft):
    """Store an edited draft for a scene that is not yet confirmed."""
    draft = body.model_copy(update={"scene_id": scene_id})
    return apply_content(get_session_ctx(request, session_id), pipeline.set_scene_draft, draft)


@router.post("/scenes/{scene_id}/confirm")
async def confirm_scene(request: Request, session_id: str, scene_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_scene, scene_id)


@router.post("/scenes/{scene_id}/reset")
async def reset_scene(request: Request, session_id: str, scene_id: str):
    """Drop a scene's draft and return it to pending."""
    return apply_content(get_session_ctx(request, session_id), pipeline.reset_scene, scene_id)


# -- NPCs ---------------------------------------------------------------------

@router.post("/npcs/compile")
async def compile_npcs(request: Request, session_id: str):
    """Compile the NPCs mentioned across confirmed scenes."""
    ctx = get_session_ctx(request, session_id)
    llm = get_generation_llm(request)
    try:
        await generation.compile_npcs(ctx, llm)
    except pipeline.StageError as e:
        raise stage_http_error(e)
    return session_view(ctx)


@router.post("/npcs/confirm-all")
async def confirm_all_npcs(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_all_npcs)


@router.patch("/npcs/{npc_id}")
async def update_npc(request: Request, session_id: str, npc_id: str, body: dict[str, Any]):
    return apply_content(get_session_ctx(request, session_id), pipeline.update_npc, npc_id, body)


@router.post("/npcs/{npc_id}/confirm")
async def confirm_npc(request: Request, session_id: str, npc_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_npc, npc_id)


# -- Adversaries --------------------------------------------------------------

@router.put("/adversaries/available")
async def set_available_adversaries(request: Request, session_id: str, body: list[Adversary]):
    """Replace the adversary catalog."""
    return apply_content(get_session_ctx(request, session_id), pipeline.set_available_adversaries, body)


@router.get("/adversaries/available")
async def list_available_adversaries(request: Request, session_id: str):
    """The catalog after the session's adversary filters are applied."""
    ctx = get_session_ctx(request, session_id)
    return [a.model_dump(mode="json") for a in pipeline.filtered_adversaries(ctx.state.content)]


@router.put("/adversaries/filters")
async def set_adversary_filters(request: Request, session_id: str, body: pipeline.AdversaryFilters):
    return apply_content(get_session_ctx(request, session_id), pipeline.set_adversary_filters, body)


@router.post("/adversaries")
async def select_adversary(request: Request, session_id: str, body: SelectAdversaryBody):
    """Add an adversary to the selection; selecting it again adds to its quantity."""
    return apply_content(
        get_session_ctx(request, session_id), pipeline.select_adversary, body.adversary, body.quantity,
    )


@router.post("/adversaries/confirm-all")
async def confirm_all_adversaries(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_all_adversaries)


@router.patch("/adversaries/{name}")
async def update_adversary_quantity(request: Request, session_id: str, name: str, body: QuantityBody):
    """Set a selected adversary's quantity (clamped to 1..10)."""
    return apply_content(
        get_session_ctx(request, session_id), pipeline.update_adversary_quantity, name, body.quantity,
    )


@router.delete("/adversaries/{name}")
async def deselect_adversary(request: Request, session_id: str, name: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.deselect_adversary, name)


@router.post("/adversaries/{name}/confirm")
async def confirm_adversary(request: Request, session_id: str, name: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_adversary, name)


# -- Items --------------------------------------------------------------------

@router.put("/items/available")
async def set_available_items(request: Request, session_id: str, body: list[Item]):
    """Replace the item catalog."""
    return apply_content(get_session_ctx(request, session_id), pipeline.set_available_items, body)


@router.get("/items/available")
async def list_available_items(request: Request, session_id: str):
    ctx = get_session_ctx(request, session_id)
    return [i.model_dump(mode="json") for i in pipeline.filtered_items(ctx.state.content)]


@router.put("/items/filters")
async def set_item_filters(request: Request, session_id: str, body: pipeline.ItemFilters):
    return apply_content(get_session_ctx(request, session_id), pipeline.set_item_filters, body)


@router.post("/items")
async def select_item(request: Request, session_id: str, body: SelectItemBody):
    return apply_content(get_session_ctx(request, session_id), pipeline.select_item, body.item, body.quantity)


@router.patch("/items")
async def update_item_quantity(request: Request, session_id: str, body: ItemQuantityBody):
    return apply_content(
        get_session_ctx(request, session_id),
        pipeline.update_item_quantity, body.category, body.name, body.quantity,
    )


@router.post("/items/remove")
async def deselect_item(request: Request, session_id: str, body: ItemRef):
    return apply_content(get_session_ctx(request, session_id), pipeline.deselect_item, body.category, body.name)


@router.post("/items/confirm")
async def confirm_item(request: Request, session_id: str, body: ItemRef):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_item, body.category, body.name)


@router.post("/items/confirm-all")
async def confirm_all_items(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_all_items)


# -- Echoes -------------------------------------------------------------------

@router.post("/echoes/generate")
async def generate_echoes(request: Request, session_id: str, body: EchoGenerateBody):
    """Generate echoes for one category (defaults to the active tab)."""
    ctx = get_session_ctx(request, session_id)
    llm = get_generation_llm(request)
    try:
        await generation.generate_echoes(ctx, llm, body.category, body.count)
    except pipeline.StageError as e:
        raise stage_http_error(e)
    return session_view(ctx)


@router.put("/echoes/category/{category}")
async def set_active_echo_category(request: Request, session_id: str, category: EchoCategory):
    return apply_content(get_session_ctx(request, session_id), pipeline.set_active_echo_category, category)


@router.post("/echoes/confirm-all")
async def confirm_all_echoes(request: Request, session_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_all_echoes)


@router.patch("/echoes/{echo_id}")
async def update_echo(request: Request, session_id: str, echo_id: str, body: dict[str, Any]):
    return apply_content(get_session_ctx(request, session_id), pipeline.update_echo, echo_id, body)


@router.post("/echoes/{echo_id}/confirm")
async def confirm_echo(request: Request, session_id: str, echo_id: str):
    return apply_content(get_session_ctx(request, session_id), pipeline.confirm_echo, echo_id)
