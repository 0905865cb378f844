"""Chat event protocol.

One user turn produces this sequence:

    chat:start(messageId)
    ( chat:delta(messageId, content)
    | tool:start(toolUseId, toolName, input) ... tool:end(toolUseId, toolName, result, isError)
    | panel:update(panel, data)
    | ui:ready(stage, summary)
    | session:stage(sessionId, stage) )*
    chat:end(messageId, inputTokens, outputTokens)  |  error(code, message)

Every tool:start is closed by its tool:end before the terminal event. Events
travel as NDJSON lines `{"type": ..., "data": {...}}` with camelCase data keys.

Producer side: EventChannel (bounded queue + cancellation token), checked by
TurnProtocol as events are sent. Consumer side: StreamAccumulator rebuilds
the assistant message from deltas and drops it if the turn fails.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, ValidationError

from .models import ConversationMessage

logger = logging.getLogger(__name__)

EventType = Literal[
    "chat:start",
    "chat:delta",
    "chat:end",
    "tool:start",
    "tool:end",
    "panel:update",
    "ui:ready",
    "session:stage",
    "error",
]

EVENT_TYPES: tuple[str, ...] = get_args(EventType)
TERMINAL_TYPES = frozenset({"chat:end", "error"})

DEFAULT_CHANNEL_SIZE = 64


class ProtocolError(Exception):
    """An event that is malformed or out of order for the current turn."""


class TurnCancelled(Exception):
    """The consumer went away; the producer should stop without finalizing."""


class ChatEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: EventType
    data: dict[str, Any]

    def to_ndjson(self) -> str:
        return json.dumps({"type": self.type, "data": self.data}) + "\n"


def parse_event_line(line: str) -> ChatEvent:
    try:
        return ChatEvent.model_validate_json(line)
    except ValidationError as e:
        raise ProtocolError(f"Malformed event: {line[:80]!r}") from e


# -- Constructors --------------------------------------------------------------

def chat_start(message_id: str) -> ChatEvent:
    return ChatEvent(type="chat:start", data={"messageId": message_id})


def chat_delta(message_id: str, content: str) -> ChatEvent:
    return ChatEvent(type="chat:delta", data={"messageId": message_id, "content": content})


def chat_end(message_id: str, input_tokens: int = 0, output_tokens: int = 0) -> ChatEvent:
    return ChatEvent(type="chat:end", data={
        "messageId": message_id,
        "inputTokens": input_tokens,
        "outputTokens": output_tokens,
    })


def tool_start(tool_use_id: str, tool_name: str, input: dict[str, Any]) -> ChatEvent:
    return ChatEvent(type="tool:start", data={
        "toolUseId": tool_use_id,
        "toolName": tool_name,
        "input": input,
    })


def tool_end(tool_use_id: str, tool_name: str, result: Any, is_error: bool = False) -> ChatEvent:
    return ChatEvent(type="tool:end", data={
        "toolUseId": tool_use_id,
        "toolName": tool_name,
        "result": result,
        "isError": is_error,
    })


def panel_update(panel: str, data: Any) -> ChatEvent:
    return ChatEvent(type="panel:update", data={"panel": panel, "data": data})


def ui_ready(stage: str, summary: str) -> ChatEvent:
    return ChatEvent(type="ui:ready", data={"stage": stage, "summary": summary})


def session_stage(session_id: str | None, stage: str) -> ChatEvent:
    return ChatEvent(type="session:stage", data={"sessionId": session_id, "stage": stage})


def error_event(code: str, message: str) -> ChatEvent:
    return ChatEvent(type="error", data={"code": code, "message": message})


# -- Producer-side ordering check ---------------------------------------------

class TurnProtocol:
    """Validates the event order of one turn as it is produced."""

    def __init__(self) -> None:
        self.message_id: str | None = None
        self.open_tools: dict[str, str] = {}
        self.finished = False

    def check(self, event: ChatEvent) -> None:
        if self.finished:
            raise ProtocolError(f"{event.type} after the turn already ended")

        if event.type == "error":
            if self.open_tools:
                raise ProtocolError(f"error sent with open tool uses: {sorted(self.open_tools)}")
            self.finished = True
            return

        if event.type == "chat:start":
            if self.message_id is not None:
                raise ProtocolError("Second chat:start in one turn")
            self.message_id = event.data["messageId"]
            return

        if self.message_id is None:
            raise ProtocolError(f"{event.type} before chat:start")

        if event.type in ("chat:delta", "chat:end"):
            if event.data.get("messageId") != self.message_id:
                raise ProtocolError(f"{event.type} for foreign message {event.data.get('messageId')}")

        if event.type == "tool:start":
            tool_id = event.data["toolUseId"]
            if tool_id in self.open_tools:
                raise ProtocolError(f"Duplicate tool:start for {tool_id}")
            self.open_tools[tool_id] = event.data["toolName"]
        elif event.type == "tool:end":
            tool_id = event.data["toolUseId"]
            if tool_id not in self.open_tools:
                raise ProtocolError(f"tool:end without tool:start for {tool_id}")
            del self.open_tools[tool_id]
        elif event.type == "chat:end":
            if self.open_tools:
                raise ProtocolError(f"Turn ended with open tool uses: {sorted(self.open_tools)}")
            self.finished = True


# -- Channel -------------------------------------------------------------------

class EventChannel:
    """Bounded single-producer, single-consumer event queue for one turn.

    `send` waits when the consumer falls behind. The consumer calls `cancel`
    when it goes away; the producer's next `send` then raises TurnCancelled.
    """

    _CLOSED = None

    def __init__(self, maxsize: int = DEFAULT_CHANNEL_SIZE) -> None:
        self._queue: asyncio.Queue[ChatEvent | None] = asyncio.Queue(maxsize)
        self.cancelled = asyncio.Event()
        self.protocol = TurnProtocol()
        self._closed = False

    async def send(self, event: ChatEvent) -> None:
        if self.cancelled.is_set():
            raise TurnCancelled()
        self.protocol.check(event)
        await self._queue.put(event)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self.cancelled.is_set():
            await self._queue.put(self._CLOSED)

    def cancel(self) -> None:
        self.cancelled.set()

    async def __aiter__(self) -> AsyncIterator[ChatEvent]:
        while True:
            event = await self._queue.get()
            if event is self._CLOSED:
                return
            yield event


# -- Consumer-side accumulation ------------------------------------------------

class StreamAccumulator:
    """Rebuilds assistant messages from a stream of events.

    Deltas are buffered per messageId; tool and UI events may arrive between
    them. A message is finalized only on chat:end. An error event or cancel()
    throws away whatever was buffered.
    """

    def __init__(self) -> None:
        self._buffers: dict[str, list[str]] = {}
        self.messages: list[ConversationMessage] = []
        self.tool_events: list[ChatEvent] = []
        self.ui_events: list[ChatEvent] = []
        self.errors: list[dict[str, Any]] = []
        self.usage: dict[str, int] = {"inputTokens": 0, "outputTokens": 0}

    @property
    def in_progress(self) -> bool:
        return bool(self._buffers)

    def partial(self, message_id: str) -> str:
        return "".join(self._buffers.get(message_id, []))

    def feed(self, event: ChatEvent) -> ConversationMessage | None:
        """Apply one event; returns the message finalized by it, if any."""
        data = event.data
        if event.type == "chat:start":
            self._buffers[data["messageId"]] = []
        elif event.type == "chat:delta":
            buf = self._buffers.get(data["messageId"])
            if buf is None:
                raise ProtocolError(f"Delta for unknown message {data['messageId']}")
            buf.append(data["content"])
        elif event.type == "chat:end":
            parts = self._buffers.pop(data["messageId"], None)
            if parts is None:
                raise ProtocolError(f"chat:end for unknown message {data['messageId']}")
            self.usage["inputTokens"] += data.get("inputTokens", 0)
            self.usage["outputTokens"] += data.get("outputTokens", 0)
            message = ConversationMessage(
                id=data["messageId"], role="assistant", content="".join(parts),
            )
            self.messages.append(message)
            return message
        elif event.type in ("tool:start", "tool:end"):
            self.tool_events.append(event)
        elif event.type == "error":
            self.errors.append(data)
            self.cancel()
        else:
            self.ui_events.append(event)
        return None

    def cancel(self) -> None:
        if self._buffers:
            logger.debug("Discarding %d partial message(s)", len(self._buffers))
        self._buffers.clear()
