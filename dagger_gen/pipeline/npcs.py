"""NPC stage: characters compiled from the confirmed scene drafts."""

from __future__ import annotations

from typing import Any

from ..idset import OrderedIdSet
from ..models import CompiledNPC, ExtractedNPC, timestamp
from .state import ContentState


def set_npcs(content: ContentState, npcs: list[CompiledNPC]) -> ContentState:
    ids = [n.id for n in npcs]
    return content.model_copy(update={
        "npcs": npcs,
        "confirmed_npc_ids": content.confirmed_npc_ids.intersect(ids),
        "npc_loading": False,
        "npc_error": None,
        "npc_streaming_content": None,
    })


def add_npc(content: ContentState, npc: CompiledNPC) -> ContentState:
    others = [n for n in content.npcs if n.id != npc.id]
    return content.model_copy(update={
        "npcs": [*others, npc],
        "confirmed_npc_ids": content.confirmed_npc_ids.discard(npc.id),
    })


def update_npc(content: ContentState, npc_id: str, changes: dict[str, Any]) -> ContentState:
    """Apply field edits to one NPC. Confirmation only changes through confirm_npc."""
    npcs = [
        CompiledNPC.model_validate({
            **n.model_dump(), **changes, "id": n.id, "updated_at": timestamp(),
            "is_confirmed": n.id in content.confirmed_npc_ids,
        })
        if n.id == npc_id else n
        for n in content.npcs
    ]
    return content.model_copy(update={"npcs": npcs, "refining_npc_id": None})


def confirm_npc(content: ContentState, npc_id: str) -> ContentState:
    if not any(n.id == npc_id for n in content.npcs):
        return content
    npcs = [
        n.model_copy(update={"is_confirmed": True}) if n.id == npc_id else n
        for n in content.npcs
    ]
    return content.model_copy(update={
        "npcs": npcs,
        "confirmed_npc_ids": content.confirmed_npc_ids.add(npc_id),
    })


def confirm_all_npcs(content: ContentState) -> ContentState:
    npcs = [n.model_copy(update={"is_confirmed": True}) for n in content.npcs]
    return content.model_copy(update={
        "npcs": npcs,
        "confirmed_npc_ids": OrderedIdSet(n.id for n in npcs),
    })


def set_refining_npc_id(content: ContentState, npc_id: str | None) -> ContentState:
    return content.model_copy(update={"refining_npc_id": npc_id})


def append_npc_streaming_content(content: ContentState, chunk: str) -> ContentState:
    return content.model_copy(update={
        "npc_streaming_content": (content.npc_streaming_content or "") + chunk,
    })


def clear_npcs(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "npcs": [],
        "confirmed_npc_ids": OrderedIdSet(),
        "refining_npc_id": None,
        "npc_loading": False,
        "npc_error": None,
        "npc_streaming_content": None,
    })


def collect_scene_npcs(content: ContentState) -> list[ExtractedNPC]:
    """NPC mentions from confirmed scene drafts, merged by name (first mention wins)."""
    seen: dict[str, ExtractedNPC] = {}
    for scene in content.scenes:
        if scene.status != "confirmed" or scene.draft is None:
            continue
        for npc in scene.draft.extracted_entities.npcs:
            key = npc.name.strip().lower()
            if key not in seen:
                seen[key] = npc.model_copy(update={"scene_id": npc.scene_id or scene.brief.id})
    return list(seen.values())
