"""Shared lookups for route handlers: registry, session, LLM clients."""

from typing import Any, Callable

from fastapi import HTTPException, Request

from dagger_gen import storage
from dagger_gen.context import SessionContext
from dagger_gen.llm import LLM, ChatModel, chat_model_from_config, generation_llm_from_config
from dagger_gen.pipeline import ContentState, GenerationError, StageError, can_leave_stage
from dagger_gen.registry import SessionRegistry


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_session_ctx(request: Request, session_id: str) -> SessionContext:
    ctx = get_registry(request).get(session_id)
    if ctx is None:
        raise HTTPException(404, "Session not found")
    return ctx


def get_generation_llm(request: Request) -> LLM:
    """The app-level override (tests, demo) wins over the configured connection."""
    llm = getattr(request.app.state, "generation_llm", None)
    if llm is None:
        llm = generation_llm_from_config(storage.get_config())
    if llm is None:
        raise HTTPException(400, "Generation connection not assigned")
    return llm


def get_chat_model(request: Request) -> ChatModel:
    model = getattr(request.app.state, "chat_model", None)
    if model is None:
        model = chat_model_from_config(storage.get_config())
    if model is None:
        raise HTTPException(400, "Chat connection not assigned")
    return model


def session_view(ctx: SessionContext) -> dict[str, Any]:
    """Full client-facing state, including catalogs and per-stage flags."""
    state = ctx.state
    return {
        "session": state.session.model_dump(mode="json"),
        "dials": state.dials.model_dump(mode="json"),
        "content": state.content.model_dump(mode="json"),
        "can_advance": can_leave_stage(state.session.current_stage, state.dials, state.content),
        "is_streaming": ctx.is_streaming,
    }


def apply_content(
    ctx: SessionContext, fn: Callable[..., ContentState], *args: Any,
) -> dict[str, Any]:
    """Run a content transition; a refused transition becomes 409, bad fields 422."""
    try:
        ctx.update_content(fn, *args)
    except StageError as e:
        raise HTTPException(409, str(e))
    except ValueError as e:
        raise HTTPException(422, str(e))
    return session_view(ctx)


def stage_http_error(e: StageError) -> HTTPException:
    """502 when the LLM failed, 409 when the stage was not ready."""
    if isinstance(e, GenerationError):
        return HTTPException(502, str(e))
    return HTTPException(409, str(e))
