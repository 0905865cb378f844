"""Item stage: like adversaries, but keyed by (category, name)."""

from __future__ import annotations

from ..idset import OrderedIdSet
from ..models import Item, SelectedItem, item_key
from .state import ContentState, ItemFilters, clamp_quantity


def set_available_items(content: ContentState, items: list[Item]) -> ContentState:
    return content.model_copy(update={"available_items": items, "item_loading": False})


def select_item(content: ContentState, item: Item, quantity: int = 1) -> ContentState:
    selected = list(content.selected_items)
    for i, entry in enumerate(selected):
        if entry.item.key == item.key:
            selected[i] = entry.model_copy(
                update={"quantity": clamp_quantity(entry.quantity + quantity)}
            )
            break
    else:
        selected.append(SelectedItem(item=item, quantity=clamp_quantity(quantity)))
    return content.model_copy(update={"selected_items": selected})


def deselect_item(content: ContentState, category: str, name: str) -> ContentState:
    key = item_key(category, name)
    return content.model_copy(update={
        "selected_items": [s for s in content.selected_items if s.item.key != key],
        "confirmed_item_ids": content.confirmed_item_ids.discard(key),
    })


def update_item_quantity(
    content: ContentState, category: str, name: str, quantity: int,
) -> ContentState:
    key = item_key(category, name)
    return content.model_copy(update={
        "selected_items": [
            s.model_copy(update={"quantity": clamp_quantity(quantity)}) if s.item.key == key else s
            for s in content.selected_items
        ],
    })


def confirm_item(content: ContentState, category: str, name: str) -> ContentState:
    key = item_key(category, name)
    if not any(s.item.key == key for s in content.selected_items):
        return content
    return content.model_copy(update={"confirmed_item_ids": content.confirmed_item_ids.add(key)})


def confirm_all_items(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "confirmed_item_ids": OrderedIdSet(s.item.key for s in content.selected_items),
    })


def set_item_filters(content: ContentState, filters: ItemFilters) -> ContentState:
    return content.model_copy(update={"item_filters": filters})


def clear_items(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "selected_items": [],
        "confirmed_item_ids": OrderedIdSet(),
        "item_loading": False,
        "item_error": None,
    })


def filtered_items(content: ContentState) -> list[Item]:
    f = content.item_filters
    search = f.search.strip().lower()
    return [
        i for i in content.available_items
        if (f.category is None or i.category == f.category)
        and (f.tier is None or i.data.tier == f.tier)
        and (not search or search in i.data.name.lower())
    ]
