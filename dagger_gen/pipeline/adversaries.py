"""Adversary stage: selecting catalog adversaries with quantities."""

from __future__ import annotations

from ..idset import OrderedIdSet
from ..models import Adversary, SelectedAdversary
from .state import AdversaryFilters, ContentState, clamp_quantity


def set_available_adversaries(content: ContentState, adversaries: list[Adversary]) -> ContentState:
    return content.model_copy(update={
        "available_adversaries": adversaries,
        "adversary_loading": False,
    })


def select_adversary(
    content: ContentState, adversary: Adversary, quantity: int = 1,
) -> ContentState:
    """Add an adversary, or raise the quantity of one already selected."""
    selected = list(content.selected_adversaries)
    for i, entry in enumerate(selected):
        if entry.adversary.name == adversary.name:
            selected[i] = entry.model_copy(
                update={"quantity": clamp_quantity(entry.quantity + quantity)}
            )
            break
    else:
        selected.append(SelectedAdversary(adversary=adversary, quantity=clamp_quantity(quantity)))
    return content.model_copy(update={"selected_adversaries": selected})


def deselect_adversary(content: ContentState, name: str) -> ContentState:
    return content.model_copy(update={
        "selected_adversaries": [
            s for s in content.selected_adversaries if s.adversary.name != name
        ],
        "confirmed_adversary_ids": content.confirmed_adversary_ids.discard(name),
    })


def update_adversary_quantity(content: ContentState, name: str, quantity: int) -> ContentState:
    return content.model_copy(update={
        "selected_adversaries": [
            s.model_copy(update={"quantity": clamp_quantity(quantity)})
            if s.adversary.name == name else s
            for s in content.selected_adversaries
        ],
    })


def confirm_adversary(content: ContentState, name: str) -> ContentState:
    if not any(s.adversary.name == name for s in content.selected_adversaries):
        return content
    return content.model_copy(update={
        "confirmed_adversary_ids": content.confirmed_adversary_ids.add(name),
    })


def confirm_all_adversaries(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "confirmed_adversary_ids": OrderedIdSet(
            s.adversary.name for s in content.selected_adversaries
        ),
    })


def set_adversary_filters(content: ContentState, filters: AdversaryFilters) -> ContentState:
    return content.model_copy(update={"adversary_filters": filters})


def clear_adversaries(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "selected_adversaries": [],
        "confirmed_adversary_ids": OrderedIdSet(),
        "adversary_loading": False,
        "adversary_error": None,
    })


def filtered_adversaries(content: ContentState) -> list[Adversary]:
    f = content.adversary_filters
    search = f.search.strip().lower()
    return [
        a for a in content.available_adversaries
        if (f.tier is None or a.tier == f.tier)
        and (f.type is None or a.type == f.type)
        and (not search or search in a.name.lower())
    ]
