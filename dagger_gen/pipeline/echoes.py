"""Echo stage: table-ready complications, rumors, discoveries, intrusions, wonders."""

from __future__ import annotations

from typing import Any

from ..idset import OrderedIdSet
from ..models import Echo, EchoCategory
from .state import ContentState


def set_echoes(content: ContentState, echoes: list[Echo]) -> ContentState:
    return content.model_copy(update={
        "echoes": echoes,
        "confirmed_echo_ids": content.confirmed_echo_ids.intersect(e.id for e in echoes),
        "echo_loading": False,
        "echo_error": None,
        "echo_streaming_content": None,
    })


def add_echo(content: ContentState, echo: Echo) -> ContentState:
    others = [e for e in content.echoes if e.id != echo.id]
    return content.model_copy(update={
        "echoes": [*others, echo],
        "confirmed_echo_ids": content.confirmed_echo_ids.discard(echo.id),
    })


def update_echo(content: ContentState, echo_id: str, changes: dict[str, Any]) -> ContentState:
    echoes = [
        Echo.model_validate({
            **e.model_dump(), **changes, "id": e.id, "is_confirmed": e.id in content.confirmed_echo_ids,
        })
        if e.id == echo_id else e
        for e in content.echoes
    ]
    return content.model_copy(update={"echoes": echoes})


def confirm_echo(content: ContentState, echo_id: str) -> ContentState:
    if not any(e.id == echo_id for e in content.echoes):
        return content
    return content.model_copy(update={
        "echoes": [
            e.model_copy(update={"is_confirmed": True}) if e.id == echo_id else e
            for e in content.echoes
        ],
        "confirmed_echo_ids": content.confirmed_echo_ids.add(echo_id),
    })


def confirm_all_echoes(content: ContentState) -> ContentState:
    echoes = [e.model_copy(update={"is_confirmed": True}) for e in content.echoes]
    return content.model_copy(update={
        "echoes": echoes,
        "confirmed_echo_ids": OrderedIdSet(e.id for e in echoes),
    })


def set_active_echo_category(content: ContentState, category: EchoCategory) -> ContentState:
    return content.model_copy(update={"active_echo_category": category})


def append_echo_streaming_content(content: ContentState, chunk: str) -> ContentState:
    return content.model_copy(update={
        "echo_streaming_content": (content.echo_streaming_content or "") + chunk,
    })


def clear_echoes(content: ContentState) -> ContentState:
    return content.model_copy(update={
        "echoes": [],
        "confirmed_echo_ids": OrderedIdSet(),
        "echo_loading": False,
        "echo_error": None,
        "echo_streaming_content": None,
    })


def echoes_by_category(content: ContentState, category: EchoCategory) -> list[Echo]:
    return [e for e in content.echoes if e.category == category]
