"""Stage-gating predicates.

Pure functions over the current collections. Each answers "may the session
leave this stage?"; none of them mutates anything.
"""

from __future__ import annotations

from collections.abc import Callable

from ..dials import DialSet, required_dials_complete
from ..session import Stage
from .state import ContentState


def can_proceed_to_outline(content: ContentState) -> bool:
    return content.selected_frame is not None and content.frame_confirmed


def can_proceed_to_scenes(content: ContentState) -> bool:
    return content.outline is not None and content.outline.is_confirmed


def can_proceed_to_npcs(content: ContentState) -> bool:
    return bool(content.scenes) and all(s.status == "confirmed" for s in content.scenes)


def can_proceed_to_adversaries(content: ContentState) -> bool:
    return bool(content.npcs) and all(n.id in content.confirmed_npc_ids for n in content.npcs)


def can_proceed_to_items(content: ContentState) -> bool:
    return bool(content.selected_adversaries) and all(
        s.adversary.name in content.confirmed_adversary_ids
        for s in content.selected_adversaries
    )


def can_proceed_to_echoes(content: ContentState) -> bool:
    return bool(content.selected_items) and all(
        s.item.key in content.confirmed_item_ids for s in content.selected_items
    )


def can_complete(content: ContentState) -> bool:
    """Echoes are optional, but any that exist must be confirmed."""
    return all(e.id in content.confirmed_echo_ids for e in content.echoes)


def can_leave_stage(stage: Stage, dials: DialSet, content: ContentState) -> bool:
    """Gate for moving forward out of `stage`."""
    if stage == "setup":
        return True
    if stage == "dial-tuning":
        return required_dials_complete(dials)
    if stage == "complete":
        return False
    return _CONTENT_GATES[stage](content)


_CONTENT_GATES = {
    "frame": can_proceed_to_outline,
    "outline": can_proceed_to_scenes,
    "scenes": can_proceed_to_npcs,
    "npcs": can_proceed_to_adversaries,
    "adversaries": can_proceed_to_items,
    "items": can_proceed_to_echoes,
    "echoes": can_complete,
}


def gate_for_stage(stage: Stage) -> Callable[[DialSet, ContentState], bool]:
    return lambda dials, content: can_leave_stage(stage, dials, content)
