"""Streaming chat endpoint: one POST, one NDJSON stream of turn events."""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from dagger_gen import storage
from dagger_gen.chat import run_chat_turn
from dagger_gen.compression import CompressionSettings
from dagger_gen.context import TurnInProgressError
from dagger_gen.events import EventChannel

from .deps import get_chat_model, get_session_ctx
from .models import ChatBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/chat")
async def chat(request: Request, body: ChatBody):
    """Run one chat turn and stream its events as newline-delimited JSON.

    Returns 409 while another turn for the same session is still streaming.
    Errors after the stream has started arrive as an `error` event.
    """
    ctx = get_session_ctx(request, body.session_id)
    model = get_chat_model(request)
    config = storage.get_config()
    compression = CompressionSettings.model_validate(config["compression"])
    # The turn is claimed before the runner task is scheduled.
    try:
        ctx.begin_turn()
    except TurnInProgressError:
        raise HTTPException(409, "A turn is already in progress for this session")

    channel = EventChannel()
    task = asyncio.create_task(run_chat_turn(
        ctx, body.message, model, channel, turn_started=True,
        compression=compression,
        max_tool_rounds=config["max_tool_rounds"],
    ))

    async def event_stream():
        try:
            async for event in channel:
                yield event.to_ndjson()
        finally:
            if not task.done():
                logger.info("Client left mid-turn for session %s", ctx.session_id)
                channel.cancel()
                task.cancel()

    return StreamingResponse(event_stream(), media_type="application/x-ndjson")
