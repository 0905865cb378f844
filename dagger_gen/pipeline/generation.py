"""LLM-backed generation runners for the content stages.

Each runner checks its gate, marks the stage loading, renders a prompt,
calls the LLM (streaming into the stage's buffer when the client supports
`stream`), parses the JSON reply and commits the result.

Failure handling is the same for every stage: the stage's `<stage>_error` is
set, its loading flag cleared, and StageError is raised to the caller. Data
already confirmed upstream is never touched, and a scene that was generating
goes back to the status it had before. There is no automatic retry.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ..llm import LLM, LLMError
from ..models import (
    CompiledNPC,
    Echo,
    EchoCategory,
    NPCExtractionContext,
    Outline,
    OutlineDraft,
    Scene,
    SceneDraft,
)
from ..prompts import (
    ECHO_PROMPT,
    NPC_PROMPT,
    OUTLINE_PROMPT,
    SCENE_PROMPT,
    PromptError,
    build_context,
    render_prompt,
    scene_context,
)
from .echoes import append_echo_streaming_content, set_echoes
from .gates import can_proceed_to_npcs, can_proceed_to_outline, can_proceed_to_scenes
from .npcs import append_npc_streaming_content, collect_scene_npcs, set_npcs
from .outline import set_outline
from .scenes import (
    append_scene_streaming_content,
    fail_scene_generation,
    set_scene_draft,
    start_scene_generation,
)
from .state import GenerationError, StageError, StageKey, now_ms, set_error, set_loading

if TYPE_CHECKING:
    from ..context import SessionContext

logger = logging.getLogger(__name__)

DEFAULT_ECHO_COUNT = 3


def parse_json_output(text: str) -> Any:
    """Parse JSON from LLM output, stripping markdown fences and surrounding chatter."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(cleaned[start:end + 1])


async def _complete(
    llm: LLM, stage: str, prompt: str, on_chunk: Callable[[str], Any] | None = None,
) -> str:
    stream = getattr(llm, "stream", None)
    if stream is None:
        return await llm(stage, prompt)
    parts: list[str] = []
    async for chunk in stream(stage, prompt):
        parts.append(chunk)
        if on_chunk is not None:
            on_chunk(chunk)
    return "".join(parts)


def _describe(stage: StageKey, error: Exception) -> str:
    if isinstance(error, LLMError):
        return str(error)
    if isinstance(error, ValidationError):
        return f"Model returned an invalid {stage}: {error.error_count()} field error(s)"
    if isinstance(error, json.JSONDecodeError):
        return f"Model returned malformed {stage} JSON"
    return str(error)


def _fail(ctx: SessionContext, stage: StageKey, error: Exception) -> GenerationError:
    message = _describe(stage, error)
    logger.warning("%s generation failed: %s", stage, message)
    ctx.update_content(set_error, stage, message)
    return GenerationError(stage, message)


_GENERATION_ERRORS = (LLMError, PromptError, ValueError, KeyError, TypeError, AttributeError)


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------

async def generate_outline(ctx: SessionContext, llm: LLM, feedback: str | None = None) -> Outline:
    if not can_proceed_to_outline(ctx.state.content):
        raise StageError("outline", "Confirm a frame before generating an outline")

    ctx.update_content(set_loading, "outline", True)
    try:
        prompt = render_prompt(OUTLINE_PROMPT, build_context(ctx.state, feedback=feedback))
        text = await _complete(llm, "outline", prompt)
        draft = OutlineDraft.model_validate(parse_json_output(text))
    except _GENERATION_ERRORS as e:
        raise _fail(ctx, "outline", e) from e

    content = ctx.update_content(set_outline, draft)
    logger.info("Outline generated: %s (%d scenes)", draft.title, len(draft.scenes))
    return content.outline


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------

def _fill_scene_ids(data: dict[str, Any], scene_id: str) -> dict[str, Any]:
    entities = data.get("extracted_entities") or {}
    for kind in ("npcs", "adversaries", "items"):
        for entry in entities.get(kind) or []:
            if isinstance(entry, dict):
                entry.setdefault("scene_id", scene_id)
    return data


async def generate_scene(
    ctx: SessionContext, llm: LLM, scene_id: str, feedback: str | None = None,
) -> Scene:
    if not can_proceed_to_scenes(ctx.state.content):
        raise StageError("scene", "Confirm the outline before drafting scenes")

    content = ctx.update_content(start_scene_generation, scene_id)
    brief = next(s.brief for s in content.scenes if s.brief.id == scene_id)

    try:
        prompt = render_prompt(SCENE_PROMPT, scene_context(ctx.state, brief, feedback))
        text = await _complete(
            llm, "scene", prompt,
            on_chunk=lambda c: ctx.update_content(append_scene_streaming_content, c),
        )
        data = parse_json_output(text)
        if not isinstance(data, dict):
            raise ValueError("Model returned a scene that is not a JSON object")
        draft = SceneDraft.model_validate({
            **_fill_scene_ids(data, brief.id),
            "scene_id": brief.id,
            "scene_number": brief.scene_number,
            "title": data.get("title") or brief.title,
        })
    except _GENERATION_ERRORS as e:
        message = _describe("scene", e)
        logger.warning("scene generation failed for %s: %s", scene_id, message)
        ctx.update_content(fail_scene_generation, scene_id, message)
        raise GenerationError("scene", message) from e

    try:
        content = ctx.update_content(set_scene_draft, draft)
    except StageError as e:
        # The scene was removed or confirmed while the model was running.
        logger.warning("scene %s could not take its draft: %s", scene_id, e)
        ctx.update_content(fail_scene_generation, scene_id, str(e))
        raise
    return next(s for s in content.scenes if s.brief.id == scene_id)


# ---------------------------------------------------------------------------
# NPCs
# ---------------------------------------------------------------------------

async def compile_npcs(ctx: SessionContext, llm: LLM) -> list[CompiledNPC]:
    """Turn the NPC mentions of every confirmed scene into full NPCs."""
    if not can_proceed_to_npcs(ctx.state.content):
        raise StageError("npc", "Confirm every scene before compiling NPCs")

    candidates = collect_scene_npcs(ctx.state.content)
    if not candidates:
        ctx.update_content(set_npcs, [])
        return []

    ctx.update_content(set_loading, "npc", True)
    try:
        prompt = render_prompt(NPC_PROMPT, build_context(
            ctx.state, candidates=[c.model_dump(mode="json") for c in candidates],
        ))
        text = await _complete(
            llm, "npc", prompt,
            on_chunk=lambda c: ctx.update_content(append_npc_streaming_content, c),
        )
        entries = parse_json_output(text)["npcs"]
        by_name = {c.name.strip().lower(): c for c in candidates}
        ms, batch = now_ms(), uuid.uuid4().hex[:6]
        npcs = []
        for i, entry in enumerate(entries):
            source = by_name.get(str(entry.get("name", "")).strip().lower())
            extracted = [NPCExtractionContext(scene_id=source.scene_id, context=source.description or "")] \
                if source else []
            npcs.append(CompiledNPC.model_validate({
                **entry, "id": f"npc-{ms}-{i}-{batch}", "extracted_from": extracted,
            }))
    except _GENERATION_ERRORS as e:
        raise _fail(ctx, "npc", e) from e

    ctx.update_content(set_npcs, npcs)
    logger.info("Compiled %d NPCs from %d mentions", len(npcs), len(candidates))
    return npcs


# ---------------------------------------------------------------------------
# Echoes
# ---------------------------------------------------------------------------

async def generate_echoes(
    ctx: SessionContext,
    llm: LLM,
    category: EchoCategory | None = None,
    count: int = DEFAULT_ECHO_COUNT,
) -> list[Echo]:
    """Generate echoes for one category, appended after all existing echoes (any category)."""
    if not can_proceed_to_scenes(ctx.state.content):
        raise StageError("echo", "Confirm the outline before generating echoes")

    category = category or ctx.state.content.active_echo_category
    ctx.update_content(set_loading, "echo", True)
    try:
        prompt = render_prompt(ECHO_PROMPT, build_context(ctx.state, category=category, count=count))
        text = await _complete(
            llm, "echo", prompt,
            on_chunk=lambda c: ctx.update_content(append_echo_streaming_content, c),
        )
        ms, batch = now_ms(), uuid.uuid4().hex[:6]
        new = [
            Echo.model_validate({**entry, "id": f"echo-{ms}-{i}-{batch}", "category": category})
            for i, entry in enumerate(parse_json_output(text)["echoes"])
        ]
    except _GENERATION_ERRORS as e:
        raise _fail(ctx, "echo", e) from e

    ctx.update_content(set_echoes, [*ctx.state.content.echoes, *new])
    return new
