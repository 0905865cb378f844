"""Tests for dagger_gen.tools: stage-scoped tool dispatch."""

from dagger_gen.context import SessionContext
from dagger_gen.pipeline import (
    ContentState,
    set_available_adversaries,
    set_available_frames,
    set_available_items,
    set_outline,
    set_scene_draft,
)
from dagger_gen.tools import all_tools, dispatch_tool, tools_for_stage

from factories import (
    adversary,
    frame,
    item,
    outline_draft,
    scene_draft,
    with_confirmed_scenes,
    with_frame,
    with_outline,
)


def _ctx(stage: str = "dial-tuning", content=None) -> SessionContext:
    ctx = SessionContext.new("Test")
    if content is not None:
        ctx.update_content(lambda _c: content)
    ctx.set_stage(stage)
    ctx.begin_turn()
    return ctx


class TestCatalog:
    def test_all_tools_listed(self) -> None:
        names = {t.name for t in all_tools()}
        assert {"signal_ready", "suggest_adventure_name", "set_dial", "set_frame",
                "set_outline", "set_scene_draft", "add_npc", "add_echo"} <= names

    def test_stage_scoping(self) -> None:
        names = {t.name for t in tools_for_stage("dial-tuning")}
        assert "set_dial" in names
        assert "add_npc" not in names
        assert "add_npc" in {t.name for t in tools_for_stage("npcs")}

    def test_definition_serializes_with_alias(self) -> None:
        d = tools_for_stage("dial-tuning")[0].model_dump(by_alias=True)
        assert set(d) == {"name", "description", "inputSchema"}
        assert d["inputSchema"]["type"] == "object"


class TestDispatch:
    def test_unknown_tool(self) -> None:
        result, is_error = dispatch_tool(_ctx(), "launch_rockets", {})
        assert is_error
        assert "Unknown tool" in result["error"]

    def test_wrong_stage(self) -> None:
        result, is_error = dispatch_tool(_ctx("dial-tuning"), "add_echo", {"category": "rumors", "title": "X"})
        assert is_error
        assert "not available" in result["error"]

    def test_invalid_input(self) -> None:
        _, is_error = dispatch_tool(_ctx(), "set_dial", {"dial_id": "mood", "value": 1})
        assert is_error


class TestSetDial:
    def test_sets_and_confirms(self) -> None:
        ctx = _ctx()
        result, is_error = dispatch_tool(ctx, "set_dial", {"dial_id": "tone", "value": "grim"})
        assert not is_error
        assert result == {"dial_id": "tone", "value": "grim", "confirmed": True}
        assert ctx.state.dials.tone == "grim"
        events = ctx.drain_events()
        assert events[0].type == "panel:update"
        assert events[0].data["panel"] == "dials"

    def test_without_confirm(self) -> None:
        ctx = _ctx()
        result, _ = dispatch_tool(ctx, "set_dial", {"dial_id": "lethality", "value": "brutal", "confirm": False})
        assert result["confirmed"] is False

    def test_out_of_domain(self) -> None:
        ctx = _ctx()
        result, is_error = dispatch_tool(ctx, "set_dial", {"dial_id": "party_size", "value": 9})
        assert is_error
        assert ctx.state.dials.party_size == 4
        assert ctx.drain_events() == []


class TestSignalReady:
    def test_ready_when_gate_holds(self) -> None:
        ctx = _ctx()
        result, is_error = dispatch_tool(ctx, "signal_ready", {"stage": "dial-tuning", "summary": "Dials set"})
        assert not is_error
        assert result["ready"]
        assert [e.type for e in ctx.drain_events()] == ["ui:ready"]

    def test_refused_when_gate_fails(self) -> None:
        ctx = _ctx("frame")
        _, is_error = dispatch_tool(ctx, "signal_ready", {"stage": "frame", "summary": "?"})
        assert is_error
        assert ctx.drain_events() == []

    def test_refused_for_other_stage(self) -> None:
        _, is_error = dispatch_tool(_ctx(), "signal_ready", {"stage": "frame", "summary": "?"})
        assert is_error


class TestContentTools:
    def test_suggest_name(self) -> None:
        ctx = _ctx()
        dispatch_tool(ctx, "suggest_adventure_name", {"name": "  Ashes of Emberfall ", "reason": "fiery"})
        assert ctx.state.session.adventure_name == "Ashes of Emberfall"

    def test_set_frame(self) -> None:
        ctx = _ctx("frame")
        result, is_error = dispatch_tool(ctx, "set_frame", {"name": "Glass Sea", "lore": "Shards"})
        assert not is_error
        assert ctx.state.content.selected_frame.is_custom
        assert result["frame_id"] == ctx.state.content.selected_frame.id

    def test_set_frame_refused_when_locked(self) -> None:
        ctx = _ctx("frame", with_frame())
        result, is_error = dispatch_tool(ctx, "set_frame", {"name": "Other"})
        assert is_error
        assert "confirmed" in result["error"]

    def test_set_outline(self) -> None:
        ctx = _ctx("outline", with_frame())
        result, is_error = dispatch_tool(ctx, "set_outline", {
            "title": "Roots", "scenes": [{"scene_number": 1, "title": "Start"}],
        })
        assert not is_error
        assert result["scene_ids"] == [ctx.state.content.outline.scenes[0].id]

    def test_set_scene_draft(self) -> None:
        ctx = _ctx("scenes", with_outline(2))
        result, is_error = dispatch_tool(ctx, "set_scene_draft", {"scene_id": "s2", "introduction": "Rain."})
        assert not is_error
        scene = ctx.state.content.scenes[1]
        assert scene.status == "draft"
        assert scene.draft.title == "Scene 2"

    def test_set_scene_draft_unknown_scene(self) -> None:
        _, is_error = dispatch_tool(_ctx("scenes", with_outline(1)), "set_scene_draft",
                                    {"scene_id": "s9", "introduction": "x"})
        assert is_error

    def test_add_npc(self) -> None:
        ctx = _ctx("npcs", with_confirmed_scenes(1))
        result, is_error = dispatch_tool(ctx, "add_npc", {"name": "Oskar", "role": "antagonist"})
        assert not is_error
        assert ctx.state.content.npcs[0].id == result["npc_id"]
        assert result["npc_id"] not in ctx.state.content.confirmed_npc_ids

    def test_add_echo(self) -> None:
        ctx = _ctx("echoes")
        first, _ = dispatch_tool(ctx, "add_echo", {"category": "wonders", "title": "A Singing Stone"})
        second, _ = dispatch_tool(ctx, "add_echo", {"category": "wonders", "title": "Another"})
        assert first["echo_id"] != second["echo_id"]
        assert len(ctx.state.content.echoes) == 2


class TestSelectionTools:
    def test_select_frame_from_catalog(self) -> None:
        content = set_available_frames(ContentState(), [frame("Glass Sea"), frame("Ember Court")])
        ctx = _ctx("frame", content)
        result, is_error = dispatch_tool(ctx, "select_frame", {"frame_id": "frame-ember-court"})
        assert not is_error
        assert result == {"frame_id": "frame-ember-court", "name": "Ember Court"}
        assert ctx.state.content.selected_frame.name == "Ember Court"
        assert not ctx.state.content.frame_confirmed
        assert ctx.drain_events()[0].data["panel"] == "frame"

    def test_select_frame_unknown_id(self) -> None:
        ctx = _ctx("frame", set_available_frames(ContentState(), [frame()]))
        result, is_error = dispatch_tool(ctx, "select_frame", {"frame_id": "frame-nowhere"})
        assert is_error
        assert "Unknown frame" in result["error"]
        assert ctx.state.content.selected_frame is None

    def test_reorder_scenes(self) -> None:
        ctx = _ctx("outline", set_outline(with_frame(), outline_draft(3)))
        result, is_error = dispatch_tool(ctx, "reorder_scenes", {"scene_ids": ["s3", "s1", "s2"]})
        assert not is_error
        assert result["scene_ids"] == ["s3", "s1", "s2"]
        assert [b.scene_number for b in ctx.state.content.outline.scenes] == [1, 2, 3]

    def test_reorder_scenes_needs_every_id(self) -> None:
        ctx = _ctx("outline", set_outline(with_frame(), outline_draft(3)))
        _, is_error = dispatch_tool(ctx, "reorder_scenes", {"scene_ids": ["s3", "s1"]})
        assert is_error
        assert [b.id for b in ctx.state.content.outline.scenes] == ["s1", "s2", "s3"]

    def test_confirm_scene(self) -> None:
        content = with_outline(2)
        content = set_scene_draft(content, scene_draft("s1"))
        ctx = _ctx("scenes", content)
        result, is_error = dispatch_tool(ctx, "confirm_scene", {"scene_id": "s1"})
        assert not is_error
        assert result == {"scene_id": "s1", "status": "confirmed", "confirmed": 1, "total": 2}
        assert ctx.state.content.scenes[0].status == "confirmed"

    def test_confirm_scene_without_draft(self) -> None:
        ctx = _ctx("scenes", with_outline(2))
        result, is_error = dispatch_tool(ctx, "confirm_scene", {"scene_id": "s2"})
        assert is_error
        assert "no draft" in result["error"]
        assert ctx.state.content.scenes[1].status == "pending"

    def test_query_adversaries(self) -> None:
        content = set_available_adversaries(ContentState(), [
            adversary("Bramble Wolf", tier=1), adversary("Ash Drake", tier=3, type="Solo"),
            adversary("Grave Wolf", tier=1, type="Horde"),
        ])
        ctx = _ctx("adversaries", content)
        result, _ = dispatch_tool(ctx, "query_adversaries", {"tier": 1, "search": "wolf", "limit": 1})
        assert result["total"] == 2
        assert [a["name"] for a in result["adversaries"]] == ["Bramble Wolf"]
        assert ctx.state.content.adversary_filters.tier is None

    def test_select_adversary_stacks_quantity(self) -> None:
        ctx = _ctx("adversaries", set_available_adversaries(ContentState(), [adversary()]))
        dispatch_tool(ctx, "select_adversary", {"name": "Bramble Wolf", "quantity": 2})
        result, is_error = dispatch_tool(ctx, "select_adversary", {"name": "Bramble Wolf"})
        assert not is_error
        assert result == {"name": "Bramble Wolf", "quantity": 3}
        assert len(ctx.state.content.selected_adversaries) == 1
        assert "Bramble Wolf" not in ctx.state.content.confirmed_adversary_ids

    def test_select_adversary_not_in_catalog(self) -> None:
        ctx = _ctx("adversaries", set_available_adversaries(ContentState(), [adversary()]))
        _, is_error = dispatch_tool(ctx, "select_adversary", {"name": "Lich"})
        assert is_error
        assert ctx.state.content.selected_adversaries == []

    def test_select_item_by_category(self) -> None:
        content = set_available_items(ContentState(), [item("Rope", "item"), item("Rope", "weapon")])
        ctx = _ctx("items", content)
        result, is_error = dispatch_tool(ctx, "select_item", {"category": "weapon", "name": "Rope"})
        assert not is_error
        assert result == {"key": "weapon:Rope", "quantity": 1}
        assert [s.item.key for s in ctx.state.content.selected_items] == ["weapon:Rope"]

    def test_query_items(self) -> None:
        content = set_available_items(ContentState(), [item("Rope"), item("Longsword", "weapon", tier=2)])
        result, _ = dispatch_tool(_ctx("items", content), "query_items", {"category": "weapon"})
        assert [i["data"]["name"] for i in result["items"]] == ["Longsword"]

    def test_selection_tools_stage_scoped(self) -> None:
        assert "select_adversary" in {t.name for t in tools_for_stage("adversaries")}
        assert "select_adversary" not in {t.name for t in tools_for_stage("items")}
        assert "select_item" in {t.name for t in tools_for_stage("items")}
        assert "query_items" in {t.name for t in tools_for_stage("scenes")}
        assert "select_frame" not in {t.name for t in tools_for_stage("outline")}
