"""Outline stage: the ordered scene briefs."""

from __future__ import annotations

from typing import Any

from ..models import Outline, OutlineDraft, SceneBrief, timestamp
from .state import ContentState, StageError, now_ms


def set_outline(content: ContentState, draft: OutlineDraft) -> ContentState:
    """Store a freshly generated or edited outline, unconfirmed.

    Briefs without an id get `scene-<ms>-<index>`.
    """
    ms = now_ms()
    now = timestamp()
    scenes = [
        brief if brief.id else brief.model_copy(update={"id": f"scene-{ms}-{i}"})
        for i, brief in enumerate(draft.scenes)
    ]
    outline = Outline(
        id=f"outline-{ms}",
        title=draft.title,
        summary=draft.summary,
        scenes=scenes,
        is_confirmed=False,
        created_at=now,
        updated_at=now,
    )
    return content.model_copy(update={
        "outline": outline,
        "outline_loading": False,
        "outline_error": None,
    })


def update_scene_brief(
    content: ContentState, scene_id: str, changes: dict[str, Any],
) -> ContentState:
    if content.outline is None:
        return content
    scenes = [
        SceneBrief.model_validate({**b.model_dump(), **changes, "id": b.id})
        if b.id == scene_id else b
        for b in content.outline.scenes
    ]
    outline = content.outline.model_copy(update={"scenes": scenes, "updated_at": timestamp()})
    return content.model_copy(update={"outline": outline})


def reorder_scene_briefs(content: ContentState, order: list[str]) -> ContentState:
    """Put the briefs in `order` (every brief id exactly once) and renumber them from 1."""
    if content.outline is None:
        raise StageError("outline", "No outline to reorder")
    if content.outline.is_confirmed:
        raise StageError("outline", "Outline is confirmed; clear it before reordering")
    by_id = {b.id: b for b in content.outline.scenes}
    if sorted(order) != sorted(by_id):
        raise StageError("outline", "Order must list every scene id exactly once")
    scenes = [by_id[scene_id].model_copy(update={"scene_number": i}) for i, scene_id in enumerate(order, 1)]
    outline = content.outline.model_copy(update={"scenes": scenes, "updated_at": timestamp()})
    return content.model_copy(update={"outline": outline})


def confirm_outline(content: ContentState) -> ContentState:
    if content.outline is None:
        return content
    outline = content.outline.model_copy(update={"is_confirmed": True, "updated_at": timestamp()})
    return content.model_copy(update={"outline": outline})


def clear_outline(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "outline": None,
        "outline_loading": False,
        "outline_error": None,
    })
