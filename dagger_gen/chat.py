"""Chat turn runner: one user message in, one ordered event stream out.

    channel = EventChannel()
    task = asyncio.create_task(run_chat_turn(ctx, "Four players, tier 2", model, channel))
    async for event in channel:
        ...

The runner is the channel's only producer. It stores the user message,
compresses the earlier history, streams the model's reply as chat:delta
events, and runs any tool calls between model rounds (tool:start, the
handler, tool:end, then whatever panel/UI events the handler queued). A turn
ends with chat:end, after which the assistant message is stored, or with an
error event, in which case nothing is stored for the assistant. If the
consumer cancels, the partial reply is dropped the same way.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from .compression import CompressionSettings, compress_conversation_history
from .context import SessionContext, TurnInProgressError
from .events import (
    EventChannel,
    ProtocolError,
    TurnCancelled,
    chat_delta,
    chat_end,
    chat_start,
    error_event,
    tool_end,
    tool_start,
)
from .llm import (
    ChatModel,
    LLMError,
    TextChunk,
    ToolCallChunk,
    UsageChunk,
    assistant_tool_message,
    tool_result_message,
)
from .prompts import PromptError, build_system_prompt
from .tools import dispatch_tool, tools_for_stage

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5

# Sent in place of a user message when the client opens a fresh session.
GREETING_TRIGGER = "[The storyteller has opened the Codex and is ready to begin.]"


async def run_chat_turn(
    ctx: SessionContext,
    message: str,
    model: ChatModel,
    channel: EventChannel,
    *,
    compression: CompressionSettings | None = None,
    max_tool_rounds: int = MAX_TOOL_ROUNDS,
    turn_started: bool = False,
) -> None:
    """Produce one turn's events into `channel`, then close it.

    Raises TurnInProgressError (after closing the channel, before emitting
    anything) if the session is already streaming a turn. A caller that has
    already claimed the turn with `ctx.begin_turn()` passes `turn_started=True`;
    the runner then owns it and releases it when done.
    """
    if not turn_started:
        try:
            ctx.begin_turn()
        except TurnInProgressError:
            await channel.close()
            raise
    message_id = uuid.uuid4().hex
    try:
        history = list(ctx.state.conversation)
        if message != GREETING_TRIGGER:
            ctx.append_message("user", message)
        compressed = compress_conversation_history(history, compression)
        messages: list[dict[str, Any]] = [m.model_dump() for m in compressed.messages]
        messages.append({"role": "user", "content": message})

        await channel.send(chat_start(message_id))
        text, usage = await _stream_rounds(ctx, model, channel, messages, message_id, max_tool_rounds)
        await channel.send(chat_end(message_id, usage[0], usage[1]))
        ctx.append_message("assistant", text, message_id=message_id)
        logger.info(
            "Turn %s finished: %d chars, %d in / %d out tokens",
            message_id, len(text), usage[0], usage[1],
        )
    except TurnCancelled:
        logger.info("Turn %s cancelled by client; partial reply discarded", message_id)
    except LLMError as e:
        logger.warning("Turn %s failed: %s", message_id, e)
        await _send_error(channel, e.code, str(e))
    except ProtocolError as e:
        logger.warning("Turn %s broke the event protocol: %s", message_id, e)
        await _send_error(channel, "PROTOCOL_ERROR", str(e))
    except PromptError as e:
        logger.warning("Turn %s could not build its prompt: %s", message_id, e)
        await _send_error(channel, "SERVER_ERROR", str(e))
    except Exception:
        # Headers are already sent; the error event is the only way to report it.
        logger.exception("Turn %s crashed", message_id)
        await _send_error(channel, "SERVER_ERROR", "Internal error while processing the turn")
    finally:
        ctx.end_turn()
        await channel.close()


async def _send_error(channel: EventChannel, code: str, message: str) -> None:
    if channel.cancelled.is_set() or channel.protocol.finished:
        return
    await channel.send(error_event(code, message))


async def _stream_rounds(
    ctx: SessionContext,
    model: ChatModel,
    channel: EventChannel,
    messages: list[dict[str, Any]],
    message_id: str,
    max_tool_rounds: int,
) -> tuple[str, tuple[int, int]]:
    """Alternate model rounds and tool rounds until the model stops calling tools."""
    parts: list[str] = []
    input_tokens = output_tokens = 0

    for round_no in range(max_tool_rounds + 1):
        system = build_system_prompt(ctx.state)
        tools = [t.model_dump() for t in tools_for_stage(ctx.stage)]
        round_text: list[str] = []
        calls: list[ToolCallChunk] = []

        async for chunk in model.stream_chat(messages, system, tools):
            if channel.cancelled.is_set():
                raise TurnCancelled()
            if isinstance(chunk, TextChunk):
                round_text.append(chunk.text)
                await channel.send(chat_delta(message_id, chunk.text))
            elif isinstance(chunk, ToolCallChunk):
                calls.append(chunk)
            elif isinstance(chunk, UsageChunk):
                input_tokens += chunk.input_tokens
                output_tokens += chunk.output_tokens

        parts.extend(round_text)
        if not calls:
            break
        if round_no == max_tool_rounds:
            logger.warning("Turn %s hit the tool round limit (%d)", message_id, max_tool_rounds)
            break

        messages = [*messages, assistant_tool_message("".join(round_text), calls)]
        for call in calls:
            result = await _run_tool(ctx, channel, call)
            messages.append(tool_result_message(call.id, result))

    return "".join(parts), (input_tokens, output_tokens)


async def _run_tool(ctx: SessionContext, channel: EventChannel, call: ToolCallChunk) -> Any:
    await channel.send(tool_start(call.id, call.name, call.input))
    try:
        result, is_error = dispatch_tool(ctx, call.name, call.input)
    except Exception as e:
        # Close the tool use so the terminal error event is legal.
        await channel.send(tool_end(call.id, call.name, {"error": f"{type(e).__name__}: {e}"}, True))
        raise
    await channel.send(tool_end(call.id, call.name, result, is_error))
    for event in ctx.drain_events():
        await channel.send(event)
    return result
