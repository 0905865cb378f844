"""Frame stage: choosing or authoring the adventure premise."""

from __future__ import annotations

from ..models import Frame, FrameDraft
from .state import ContentState, StageError, now_ms


def set_available_frames(content: ContentState, frames: list[Frame]) -> ContentState:
    return content.model_copy(update={"available_frames": frames, "frame_loading": False})


def _ensure_unlocked(content: ContentState) -> None:
    if content.frame_confirmed and content.selected_frame is not None:
        raise StageError("frame", "Frame is confirmed; clear it before choosing another")


def select_frame(content: ContentState, frame: Frame) -> ContentState:
    _ensure_unlocked(content)
    return content.model_copy(update={
        "selected_frame": frame,
        "frame_confirmed": False,
        "frame_error": None,
    })


def set_custom_frame_draft(content: ContentState, draft: FrameDraft) -> ContentState:
    _ensure_unlocked(content)
    frame = Frame(id=f"custom-{now_ms()}", is_custom=True, **draft.model_dump())
    return content.model_copy(update={
        "selected_frame": frame,
        "frame_confirmed": False,
        "frame_error": None,
    })


def confirm_frame(content: ContentState) -> ContentState:
    if content.selected_frame is None:
        return content
    return content.model_copy(update={"frame_confirmed": True})


def clear_frame(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "selected_frame": None,
        "frame_confirmed": False,
        "frame_loading": False,
        "frame_error": None,
    })
