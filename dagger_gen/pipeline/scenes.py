"""Scene stage: per-scene drafting sub-machine.

    pending → generating → draft → confirmed

A draft can be regenerated or resubmitted any number of times and stays a
draft; it never falls back to pending. Confirmed scenes are terminal: only
`reset_scene` takes one back to pending.
"""

from __future__ import annotations

from collections.abc import Callable

from ..models import Scene, SceneDraft, timestamp
from .state import ContentState, StageError


def _find(content: ContentState, scene_id: str) -> Scene:
    for scene in content.scenes:
        if scene.brief.id == scene_id:
            return scene
    raise StageError("scene", f"Unknown scene: {scene_id}")


def _replace(
    content: ContentState, scene_id: str, fn: Callable[[Scene], Scene],
) -> list[Scene]:
    return [fn(s) if s.brief.id == scene_id else s for s in content.scenes]


def initialize_scenes_from_outline(content: ContentState) -> ContentState:
    """Build one scene per outline brief. Scenes already drafted keep their state."""
    if content.outline is None:
        raise StageError("scene", "No outline to build scenes from")
    existing = {s.brief.id: s for s in content.scenes}
    scenes = [
        existing[b.id].model_copy(update={"brief": b}) if b.id in existing else Scene(brief=b)
        for b in content.outline.scenes
    ]
    current = content.current_scene_id
    if current not in {s.brief.id for s in scenes}:
        current = scenes[0].brief.id if scenes else None
    return content.model_copy(update={"scenes": scenes, "current_scene_id": current})


def set_current_scene(content: ContentState, scene_id: str) -> ContentState:
    _find(content, scene_id)
    return content.model_copy(update={"current_scene_id": scene_id})


def start_scene_generation(content: ContentState, scene_id: str) -> ContentState:
    scene = _find(content, scene_id)
    if scene.status == "confirmed":
        raise StageError("scene", f"Scene {scene_id} is confirmed; reset it to regenerate")
    return content.model_copy(update={
        "scenes": _replace(content, scene_id, lambda s: s.model_copy(update={"status": "generating"})),
        "current_scene_id": scene_id,
        "scene_loading": True,
        "scene_error": None,
        "scene_streaming_content": "",
    })


def append_scene_streaming_content(content: ContentState, chunk: str) -> ContentState:
    return content.model_copy(update={
        "scene_streaming_content": (content.scene_streaming_content or "") + chunk,
    })


def set_scene_draft(content: ContentState, draft: SceneDraft) -> ContentState:
    scene = _find(content, draft.scene_id)
    if scene.status == "confirmed":
        raise StageError("scene", f"Scene {draft.scene_id} is confirmed; reset it to redraft")
    return content.model_copy(update={
        "scenes": _replace(
            content, draft.scene_id,
            lambda s: s.model_copy(update={"draft": draft, "status": "draft"}),
        ),
        "scene_loading": False,
        "scene_error": None,
        "scene_streaming_content": None,
    })


def fail_scene_generation(content: ContentState, scene_id: str, error: str) -> ContentState:
    """Record a generation failure and put the scene back where it was."""

    def restore(s: Scene) -> Scene:
        if s.status != "generating":
            return s
        return s.model_copy(update={"status": "draft" if s.draft else "pending"})

    return content.model_copy(update={
        "scenes": _replace(content, scene_id, restore),
        "scene_loading": False,
        "scene_error": error,
        "scene_streaming_content": None,
    })


def confirm_scene(content: ContentState, scene_id: str) -> ContentState:
    scene = _find(content, scene_id)
    if scene.status == "confirmed":
        return content
    if scene.status != "draft":
        raise StageError("scene", f"Scene {scene_id} has no draft to confirm")
    confirmed_at = timestamp()
    return content.model_copy(update={
        "scenes": _replace(
            content, scene_id,
            lambda s: s.model_copy(update={"status": "confirmed", "confirmed_at": confirmed_at}),
        ),
    })


def reset_scene(content: ContentState, scene_id: str) -> ContentState:
    _find(content, scene_id)
    return content.model_copy(update={
        "scenes": _replace(
            content, scene_id,
            lambda s: Scene(brief=s.brief),
        ),
    })


def confirm_all_scenes(content: ContentState) -> ContentState:
    """Confirm every drafted scene; pending and generating scenes are left alone."""
    confirmed_at = timestamp()
    scenes = [
        s.model_copy(update={"status": "confirmed", "confirmed_at": confirmed_at})
        if s.status == "draft" else s
        for s in content.scenes
    ]
    return content.model_copy(update={"scenes": scenes})


def _step(content: ContentState, delta: int) -> ContentState:
    ids = [s.brief.id for s in content.scenes]
    if content.current_scene_id not in ids:
        return content
    i = ids.index(content.current_scene_id) + delta
    if not 0 <= i < len(ids):
        return content
    return content.model_copy(update={"current_scene_id": ids[i]})


def navigate_to_next_scene(content: ContentState) -> ContentState:
    return _step(content, 1)


def navigate_to_previous_scene(content: ContentState) -> ContentState:
    return _step(content, -1)


def clear_scenes(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "scenes": [],
        "current_scene_id": None,
        "scene_loading": False,
        "scene_error": None,
        "scene_streaming_content": None,
    })


def current_scene(content: ContentState) -> Scene | None:
    for scene in content.scenes:
        if scene.brief.id == content.current_scene_id:
            return scene
    return None


def confirmed_scene_count(content: ContentState) -> int:
    return sum(1 for s in content.scenes if s.status == "confirmed")
