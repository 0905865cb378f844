"""Conversation context compression.

Bounds the history sent to the model on each call with three budgets:

  recent_window         last W messages, kept verbatim
  max_total_messages    overall cap N; the oldest non-recent messages drop first
  max_compressed_length per-message cap C for the non-recent messages

Older messages that survive are truncated to C characters (C-3 plus "...")
and prefixed with a marker so the model knows they are paraphrased memory.
C bounds the message body only: with the default marker a compressed message
is up to C + 26 characters long. Messages that already carry the marker, and
the placeholder below, pass through unchanged, so compressing an assembled
list again returns the same list.

If the assembled list would start with an assistant message, a synthetic user
placeholder is prepended; nothing is reordered to achieve that. When the list
is already at the total cap, the oldest compressed messages give way to the
placeholder until the first kept message is a user one. That extra drop keeps
the total cap strict, so a 45-message history that starts with a user message
ends up with 16 dropped, 19 compressed and 29 sent rather than 15, 20 and 30.
Assistant-first histories (the usual case, since sessions open with a
greeting) come out at 15, 20 and 30.

Counts satisfy: dropped_count + compressed_count + len(recent) == original_count.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Literal

from pydantic import BaseModel, Field

from .models import ConversationMessage

logger = logging.getLogger(__name__)

RECENT_WINDOW_SIZE = 10
MAX_TOTAL_MESSAGES = 30
MAX_COMPRESSED_LENGTH = 200
COMPRESSION_MARKER = "[earlier in conversation]"
SESSION_STARTED_PLACEHOLDER = "[Session started]"


class CompressionSettings(BaseModel):
    recent_window: int = Field(default=RECENT_WINDOW_SIZE, ge=1)
    max_total_messages: int = Field(default=MAX_TOTAL_MESSAGES, ge=1)
    max_compressed_length: int = Field(default=MAX_COMPRESSED_LENGTH, ge=4)
    marker: str = COMPRESSION_MARKER


class ContextMessage(BaseModel):
    """A message as sent to the model: role and content only."""

    role: Literal["user", "assistant"]
    content: str


class CompressedHistory(BaseModel):
    messages: list[ContextMessage]
    compressed_count: int = 0
    dropped_count: int = 0
    original_count: int = 0


def truncate(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[: limit - 3] + "..."


def _compressed_content(content: str, settings: CompressionSettings) -> str:
    # Output of an earlier pass is already in its final form.
    if content == SESSION_STARTED_PLACEHOLDER or content.startswith(settings.marker + " "):
        return content
    return f"{settings.marker} {truncate(content, settings.max_compressed_length)}"


def compress_conversation_history(
    history: Sequence[ConversationMessage | ContextMessage],
    settings: CompressionSettings | None = None,
) -> CompressedHistory:
    """Compress `history` (which must not include the in-flight user turn)."""
    settings = settings or CompressionSettings()
    original_count = len(history)
    if not history:
        return CompressedHistory(messages=[])

    recent_size = min(settings.recent_window, original_count)
    recent = list(history[original_count - recent_size:])
    older = list(history[: original_count - recent_size])

    older_budget = max(settings.max_total_messages - len(recent), 0)
    dropped = 0
    if len(older) > older_budget:
        dropped = len(older) - older_budget
        older = older[dropped:]
    # The placeholder counts against the total cap; make room from the older side.
    while older and len(older) + len(recent) >= settings.max_total_messages \
            and older[0].role != "user":
        older = older[1:]
        dropped += 1

    messages = [ContextMessage(role=m.role, content=_compressed_content(m.content, settings)) for m in older]
    messages.extend(ContextMessage(role=m.role, content=m.content) for m in recent)

    if messages[0].role != "user":
        messages.insert(0, ContextMessage(role="user", content=SESSION_STARTED_PLACEHOLDER))

    if dropped:
        logger.debug(
            "Compressed history: %d original, %d dropped, %d compressed",
            original_count, dropped, len(older),
        )
    return CompressedHistory(
        messages=messages,
        compressed_count=len(older),
        dropped_count=dropped,
        original_count=original_count,
    )
