"""Tests for dagger_gen.pipeline.generation with stub LLMs."""

import json

import pytest

from dagger_gen.context import SessionContext
from dagger_gen.llm import LLMError
from dagger_gen.pipeline import ContentState, GenerationError, StageError, select_frame
from dagger_gen.pipeline.generation import (
    compile_npcs,
    generate_echoes,
    generate_outline,
    generate_scene,
    parse_json_output,
)

from factories import frame, with_confirmed_scenes, with_frame, with_outline


class StubLLM:
    """Returns canned responses per stage and records prompts."""

    def __init__(self, responses: dict[str, str | Exception]) -> None:
        self.responses = responses
        self.calls: list[tuple[str, str]] = []

    async def __call__(self, stage: str, prompt: str) -> str:
        self.calls.append((stage, prompt))
        response = self.responses[stage]
        if isinstance(response, Exception):
            raise response
        return response


class StreamingStubLLM(StubLLM):
    async def stream(self, stage: str, prompt: str):
        text = await self(stage, prompt)
        for i in range(0, len(text), 7):
            yield text[i:i + 7]


OUTLINE_JSON = json.dumps({
    "title": "Roots of Rot",
    "summary": "A blight spreads.",
    "scenes": [
        {"scene_number": 1, "title": "The Village", "description": "Sick crops", "scene_type": "social"},
        {"scene_number": 2, "title": "The Grove", "description": "Twisted trees", "scene_type": "combat"},
    ],
})

SCENE_JSON = json.dumps({
    "introduction": "Fog clings to the fields.",
    "key_moments": [{"title": "The Elder Speaks", "description": "She knows more."}],
    "resolution": "The party heads north.",
    "tier_guidance": "Tier 1 threats",
    "extracted_entities": {
        "npcs": [{"name": "Elder Mara", "role": "quest-giver", "description": "Village elder"}],
        "adversaries": [{"name": "Blight Hound", "type": "Minion", "tier": 1}],
        "items": [],
    },
})


def _ctx(content) -> SessionContext:
    ctx = SessionContext.new("Test")
    ctx.update_content(lambda _c: content)
    return ctx


# ---------------------------------------------------------------------------
# parse_json_output
# ---------------------------------------------------------------------------

class TestParseJson:
    def test_plain(self) -> None:
        assert parse_json_output('{"a": 1}') == {"a": 1}

    def test_fenced(self) -> None:
        assert parse_json_output('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_chatter(self) -> None:
        assert parse_json_output('Here you go: {"a": {"b": 2}} Enjoy!') == {"a": {"b": 2}}

    def test_garbage_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_json_output("no json here")


# ---------------------------------------------------------------------------
# Outline
# ---------------------------------------------------------------------------

class TestGenerateOutline:
    async def test_success(self) -> None:
        ctx = _ctx(with_frame())
        llm = StubLLM({"outline": OUTLINE_JSON})
        outline = await generate_outline(ctx, llm)
        assert outline.title == "Roots of Rot"
        assert len(outline.scenes) == 2
        assert all(b.id for b in outline.scenes)
        assert not outline.is_confirmed
        assert not ctx.state.content.outline_loading
        assert "The Witherwild" in llm.calls[0][1]

    async def test_feedback_reaches_prompt(self) -> None:
        llm = StubLLM({"outline": OUTLINE_JSON})
        await generate_outline(_ctx(with_frame()), llm, feedback="More undead please")
        assert "More undead please" in llm.calls[0][1]

    async def test_gate_blocks_without_llm_call(self) -> None:
        ctx = _ctx(select_frame(ContentState(), frame()))
        llm = StubLLM({"outline": OUTLINE_JSON})
        with pytest.raises(StageError) as exc:
            await generate_outline(ctx, llm)
        assert not isinstance(exc.value, GenerationError)
        assert llm.calls == []
        assert ctx.state.content.outline_error is None

    async def test_llm_error_recorded(self) -> None:
        ctx = _ctx(with_frame())
        llm = StubLLM({"outline": LLMError("Rate limited", "RATE_LIMIT")})
        with pytest.raises(GenerationError):
            await generate_outline(ctx, llm)
        assert ctx.state.content.outline_error == "Rate limited"
        assert not ctx.state.content.outline_loading
        assert ctx.state.content.outline is None

    async def test_malformed_json_recorded(self) -> None:
        ctx = _ctx(with_frame())
        with pytest.raises(GenerationError):
            await generate_outline(ctx, StubLLM({"outline": "Sorry, I can't."}))
        assert ctx.state.content.outline_error
        assert ctx.state.content.frame_confirmed

    async def test_invalid_outline_recorded(self) -> None:
        ctx = _ctx(with_frame())
        with pytest.raises(GenerationError):
            await generate_outline(ctx, StubLLM({"outline": '{"title": "No scenes", "scenes": []}'}))
        assert "invalid outline" in ctx.state.content.outline_error


# ---------------------------------------------------------------------------
# Scenes
# ---------------------------------------------------------------------------

class TestGenerateScene:
    async def test_success(self) -> None:
        ctx = _ctx(with_outline(2))
        scene = await generate_scene(ctx, StubLLM({"scene": SCENE_JSON}), "s1")
        assert scene.status == "draft"
        assert scene.draft.title == "Scene 1"
        assert scene.draft.scene_id == "s1"
        assert scene.draft.extracted_entities.npcs[0].scene_id == "s1"
        assert not ctx.state.content.scene_loading

    async def test_streaming_fills_buffer_then_clears(self) -> None:
        ctx = _ctx(with_outline(2))
        seen: list[str] = []
        ctx.on_change = lambda c: seen.append(c.state.content.scene_streaming_content or "")
        await generate_scene(ctx, StreamingStubLLM({"scene": SCENE_JSON}), "s2")
        assert any(s and SCENE_JSON.startswith(s) for s in seen)
        assert ctx.state.content.scene_streaming_content is None

    async def test_failure_restores_status(self) -> None:
        ctx = _ctx(with_outline(2))
        with pytest.raises(GenerationError):
            await generate_scene(ctx, StubLLM({"scene": LLMError("boom", "TIMEOUT")}), "s1")
        scene = ctx.state.content.scenes[0]
        assert scene.status == "pending"
        assert ctx.state.content.scene_error == "boom"

    async def test_requires_confirmed_outline(self) -> None:
        with pytest.raises(StageError):
            await generate_scene(_ctx(with_frame()), StubLLM({"scene": SCENE_JSON}), "s1")

    async def test_confirmed_scene_refused(self) -> None:
        ctx = _ctx(with_confirmed_scenes(1))
        llm = StubLLM({"scene": SCENE_JSON})
        with pytest.raises(StageError):
            await generate_scene(ctx, llm, "s1")
        assert llm.calls == []
        assert ctx.state.content.scenes[0].status == "confirmed"

    async def test_scene_removed_mid_generation(self) -> None:
        ctx = _ctx(with_outline(2))

        class RemovingLLM(StubLLM):
            async def __call__(self, stage: str, prompt: str) -> str:
                ctx.update_content(lambda c: c.model_copy(update={"scenes": c.scenes[1:]}))
                return await super().__call__(stage, prompt)

        with pytest.raises(StageError, match="Unknown scene"):
            await generate_scene(ctx, RemovingLLM({"scene": SCENE_JSON}), "s1")
        assert not ctx.state.content.scene_loading
        assert "Unknown scene" in ctx.state.content.scene_error
        assert [s.brief.id for s in ctx.state.content.scenes] == ["s2"]


# ---------------------------------------------------------------------------
# NPCs
# ---------------------------------------------------------------------------

class TestCompileNPCs:
    async def test_success(self) -> None:
        ctx = _ctx(with_confirmed_scenes(2, npcs=["Mara", "Oskar"]))
        llm = StubLLM({"npc": json.dumps({"npcs": [
            {"name": "Mara", "role": "ally", "personality": "Stern"},
            {"name": "Oskar", "role": "antagonist"},
        ]})})
        npcs = await compile_npcs(ctx, llm)
        assert [n.name for n in npcs] == ["Mara", "Oskar"]
        assert npcs[0].extracted_from[0].scene_id == "s1"
        assert npcs[0].id != npcs[1].id
        assert not ctx.state.content.confirmed_npc_ids
        assert "Mara" in llm.calls[0][1]

    async def test_no_candidates_skips_llm(self) -> None:
        ctx = _ctx(with_confirmed_scenes(1))
        llm = StubLLM({})
        assert await compile_npcs(ctx, llm) == []
        assert llm.calls == []

    async def test_requires_confirmed_scenes(self) -> None:
        with pytest.raises(StageError):
            await compile_npcs(_ctx(with_outline(1)), StubLLM({}))

    async def test_bad_shape_recorded(self) -> None:
        ctx = _ctx(with_confirmed_scenes(1, npcs=["Mara"]))
        with pytest.raises(GenerationError):
            await compile_npcs(ctx, StubLLM({"npc": '{"characters": []}'}))
        assert ctx.state.content.npc_error
        assert ctx.state.content.scenes[0].status == "confirmed"


# ---------------------------------------------------------------------------
# Echoes
# ---------------------------------------------------------------------------

class TestGenerateEchoes:
    async def test_appends_in_active_category(self) -> None:
        ctx = _ctx(with_outline(1))
        llm = StubLLM({"echo": json.dumps({"echoes": [
            {"title": "Collapsed Bridge", "content": "The way is cut."},
            {"title": "Sudden Storm"},
        ]})})
        new = await generate_echoes(ctx, llm)
        assert [e.category for e in new] == ["complications", "complications"]
        again = await generate_echoes(ctx, llm, category="rumors", count=2)
        assert [e.category for e in again] == ["rumors", "rumors"]
        assert len(ctx.state.content.echoes) == 4
        assert len({e.id for e in ctx.state.content.echoes}) == 4

    async def test_requires_outline(self) -> None:
        with pytest.raises(StageError):
            await generate_echoes(_ctx(with_frame()), StubLLM({}))

    async def test_failure_keeps_existing(self) -> None:
        ctx = _ctx(with_outline(1))
        ok = StubLLM({"echo": json.dumps({"echoes": [{"title": "A"}]})})
        await generate_echoes(ctx, ok)
        with pytest.raises(GenerationError):
            await generate_echoes(ctx, StubLLM({"echo": "nope"}))
        assert len(ctx.state.content.echoes) == 1
        assert ctx.state.content.echo_error
