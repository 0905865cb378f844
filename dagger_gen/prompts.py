"""Handlebars prompt rendering for generation stages and chat turns."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pybars

from .dials import dials_summary

if TYPE_CHECKING:
    from .context import AdventureState
    from .models import SceneBrief


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


# ── Custom Handlebars helpers ────────────────────────────


def _helper_take(this, options, items, count):
    """{{#take array N}}...{{/take}}: iterate over the first N items."""
    result = []
    for item in list(items)[:int(count)]:
        result.extend(options["fn"](item))
    return result


def _helper_last(this, options, items, count):
    """{{#last array N}}...{{/last}}: iterate over the last N items."""
    result = []
    for item in list(items)[-int(count):]:
        result.extend(options["fn"](item))
    return result


def _helper_join(this, items, separator=", "):
    """{{join array ", "}}: items joined into one string."""
    return separator.join(str(i) for i in (items or []))


_HELPERS: dict[str, Callable] = {
    "take": _helper_take,
    "last": _helper_last,
    "join": _helper_join,
}


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context, helpers=_HELPERS))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Templates ────────────────────────────────────────────

_ADVENTURE_BLOCK = """\
Party: {{dials.concrete.party_size}} players, tier {{dials.concrete.party_tier}}.
Session length: {{dials.concrete.session_length}}.
{{#if dials.conceptual.tone}}Tone: {{dials.conceptual.tone}}.
{{/if}}{{#if dials.conceptual.lethality}}Lethality: {{dials.conceptual.lethality}}.
{{/if}}{{#if dials.conceptual.npc_density}}NPC density: {{dials.conceptual.npc_density}}.
{{/if}}{{#if dials.conceptual.emotional_register}}Emotional register: {{dials.conceptual.emotional_register}}.
{{/if}}{{#if dials.conceptual.pillar_balance}}Pillar priority: {{dials.conceptual.pillar_balance.primary}} > {{dials.conceptual.pillar_balance.secondary}} > {{dials.conceptual.pillar_balance.tertiary}}.
{{/if}}{{#if dials.conceptual.themes}}Themes: {{join dials.conceptual.themes ", "}}.
{{/if}}{{#if frame}}
Frame: {{{frame.name}}}
{{{frame.description}}}
{{#if frame.lore}}Lore: {{{frame.lore}}}
{{/if}}{{/if}}"""

OUTLINE_PROMPT = _ADVENTURE_BLOCK + """
Write an outline for a one-shot adventure with exactly {{dials.concrete.scene_count}} scenes.
{{#if feedback}}
Revise the previous outline with this feedback: {{{feedback}}}
{{/if}}
Respond with JSON only:
{"title": "...", "summary": "...", "scenes": [{"scene_number": 1, "title": "...", \
"description": "...", "key_elements": ["..."], "scene_type": "combat|exploration|social|puzzle|revelation|mixed"}]}
"""

SCENE_PROMPT = _ADVENTURE_BLOCK + """
Outline: {{{outline.title}}}. {{{outline.summary}}}
{{#each previous_scenes}}Scene {{scene_number}} ({{{title}}}): {{{introduction}}}
{{/each}}
Draft scene {{scene.scene_number}}: {{{scene.title}}}
{{{scene.description}}}
{{#if scene.key_elements}}Key elements: {{join scene.key_elements ", "}}
{{/if}}{{#if feedback}}
Revise the previous draft with this feedback: {{{feedback}}}
{{/if}}
Respond with JSON only:
{"introduction": "...", "key_moments": [{"title": "...", "description": "..."}], \
"resolution": "...", "tier_guidance": "...", "is_climactic": false, \
"extracted_entities": {"npcs": [{"name": "...", "role": "...", "description": "..."}], \
"adversaries": [{"name": "...", "type": "...", "tier": 1}], "items": [{"name": "...", "suggested_tier": 1}]} }
"""

NPC_PROMPT = _ADVENTURE_BLOCK + """
These characters appear in the confirmed scenes:
{{#each candidates}}- {{{name}}} ({{role}}, scene {{scene_id}}){{#if description}}: {{{description}}}{{/if}}
{{/each}}
Compile each into a full NPC. Respond with JSON only:
{"npcs": [{"name": "...", "role": "ally|neutral|quest-giver|antagonist|bystander", \
"description": "...", "appearance": "...", "personality": "...", "motivations": ["..."], \
"connections": ["..."], "scene_appearances": ["<scene id>"]}]}
"""

ECHO_PROMPT = _ADVENTURE_BLOCK + """
Outline: {{{outline.title}}}. {{{outline.summary}}}
Write {{count}} echoes in the "{{category}}" category: short table-ready prompts the \
storyteller can drop into play.
Respond with JSON only:
{"echoes": [{"title": "...", "content": "..."}]}
"""

SYSTEM_PROMPT = """\
You are the Codex, a collaborative assistant helping a storyteller author a \
one-shot tabletop adventure{{#if adventure_name}} called "{{{adventure_name}}}"{{/if}}.

Current stage: {{stage}}.
{{{stage_guidance}}}

{{{adventure}}}
Use the tools to record decisions. When the stage's work is complete, call \
signal_ready with a short summary. Keep replies brief and conversational.
"""

STAGE_GUIDANCE: dict[str, str] = {
    "setup": "Greet the storyteller and learn what adventure they have in mind.",
    "dial-tuning": (
        "Help the storyteller set the adventure dials: party size, tier, scene count, "
        "session length, then tone, pillar balance, NPC density, lethality, emotional "
        "register and up to three themes. Record each choice with set_dial."
    ),
    "frame": (
        "Help choose or write the adventure frame (premise and setting). Record a catalog "
        "frame with select_frame or a custom one with set_frame."
    ),
    "outline": "Shape the scene outline. Record it with set_outline; rearrange it with reorder_scenes.",
    "scenes": (
        "Draft each scene in turn. Record drafts with set_scene_draft and confirm_scene "
        "once approved. query_adversaries and query_items find tier-appropriate content."
    ),
    "npcs": "Flesh out the adventure's NPCs. Record them with add_npc.",
    "adversaries": "Help pick adversaries and their numbers for the encounters. Record them with select_adversary.",
    "items": "Help pick rewards and equipment for the party. Record them with select_item.",
    "echoes": "Write echoes: complications, rumors, discoveries, intrusions, wonders. Record them with add_echo.",
    "complete": "The adventure is finished. Answer questions about it.",
}


# ── Context building ─────────────────────────────────────


def build_context(state: AdventureState, **extra: Any) -> dict[str, Any]:
    """Template variables shared by every generation prompt."""
    content = state.content
    ctx: dict[str, Any] = {
        "adventure_name": state.session.adventure_name,
        "dials": dials_summary(state.dials),
        "frame": content.selected_frame.model_dump(mode="json") if content.selected_frame else None,
        "outline": content.outline.model_dump(mode="json") if content.outline else None,
    }
    ctx.update(extra)
    return ctx


def scene_context(state: AdventureState, brief: SceneBrief, feedback: str | None = None) -> dict[str, Any]:
    previous = [
        {
            "scene_number": s.brief.scene_number,
            "title": s.brief.title,
            "introduction": s.draft.introduction if s.draft else s.brief.description,
        }
        for s in state.content.scenes
        if s.brief.scene_number < brief.scene_number and s.status == "confirmed"
    ]
    return build_context(
        state,
        scene=brief.model_dump(mode="json"),
        previous_scenes=previous,
        feedback=feedback,
    )


def build_system_prompt(state: AdventureState) -> str:
    stage = state.session.current_stage
    return render_prompt(SYSTEM_PROMPT, {
        "adventure_name": state.session.adventure_name,
        "stage": stage,
        "stage_guidance": STAGE_GUIDANCE[stage],
        "adventure": render_prompt(_ADVENTURE_BLOCK, build_context(state)),
    })
