"""End-to-end tests for the HTTP API with stub LLM clients."""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from dagger_gen.app import create_app
from dagger_gen.llm import LLMError, TextChunk, ToolCallChunk, UsageChunk

TEST_DATA_DIR = Path("data-tests")

OUTLINE_JSON = json.dumps({
    "title": "Roots of Rot",
    "summary": "A blight spreads.",
    "scenes": [
        {"scene_number": 1, "title": "The Village"},
        {"scene_number": 2, "title": "The Grove"},
        {"scene_number": 3, "title": "The Heart"},
    ],
})


class StubLLM:
    def __init__(self, response: str | Exception) -> None:
        self.response = response

    async def __call__(self, stage: str, prompt: str) -> str:
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


class StubChatModel:
    def __init__(self, rounds: list[list]) -> None:
        self.rounds = list(rounds)

    async def stream_chat(self, messages, system, tools):
        for chunk in self.rounds.pop(0) if self.rounds else [TextChunk(text="")]:
            yield chunk


@pytest.fixture
def app():
    return create_app(TEST_DATA_DIR, autosave_delay=0)


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def session_id(client: TestClient) -> str:
    resp = client.post("/api/sessions", json={"name": "Ashfall"})
    assert resp.status_code == 200
    return resp.json()["session"]["session_id"]


def _url(session_id: str, path: str = "") -> str:
    return f"/api/sessions/{session_id}{path}"


def _confirm_concrete_dials(client: TestClient, session_id: str) -> None:
    for dial_id in ("party_size", "party_tier", "scene_count", "session_length"):
        assert client.post(_url(session_id, f"/dials/{dial_id}/confirm")).status_code == 200


def _events(resp) -> list[dict]:
    return [json.loads(line) for line in resp.text.splitlines() if line.strip()]


# ---------------------------------------------------------------------------
# Health, settings, tools
# ---------------------------------------------------------------------------

class TestSettings:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_settings_roundtrip(self, client: TestClient) -> None:
        assert client.get("/api/settings").json()["max_tool_rounds"] == 5
        resp = client.patch("/api/settings", json={"compression": {"recent_window": 4}})
        assert resp.json()["compression"]["recent_window"] == 4
        assert client.get("/api/settings").json()["compression"]["max_total_messages"] == 30

    def test_tools_by_stage(self, client: TestClient) -> None:
        names = {t["name"] for t in client.get("/api/tools", params={"stage": "npcs"}).json()}
        assert "add_npc" in names
        assert "set_dial" not in names
        assert "inputSchema" in client.get("/api/tools").json()[0]

    def test_tools_unknown_stage(self, client: TestClient) -> None:
        assert client.get("/api/tools", params={"stage": "epilogue"}).status_code == 422


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

class TestSessions:
    def test_create(self, client: TestClient) -> None:
        data = client.post("/api/sessions", json={"name": "Ashfall"}).json()
        assert data["session"]["adventure_name"] == "Ashfall"
        assert data["session"]["current_stage"] == "dial-tuning"
        assert data["can_advance"] is True
        assert data["is_streaming"] is False

    def test_list_and_get(self, client: TestClient, session_id: str) -> None:
        listed = client.get("/api/sessions").json()
        assert [s["session_id"] for s in listed] == [session_id]
        assert client.get(_url(session_id)).json()["session"]["adventure_name"] == "Ashfall"

    def test_get_missing(self, client: TestClient) -> None:
        resp = client.get(_url("nope"))
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Session not found"

    def test_rename(self, client: TestClient, session_id: str) -> None:
        resp = client.patch(_url(session_id), json={"name": "Cinderfall"})
        assert resp.json()["session"]["adventure_name"] == "Cinderfall"

    def test_messages_start_with_welcome(self, client: TestClient, session_id: str) -> None:
        messages = client.get(_url(session_id, "/messages")).json()
        assert [m["role"] for m in messages] == ["assistant"]

    def test_reload_from_disk(self, client: TestClient, session_id: str) -> None:
        client.put(_url(session_id, "/dials/tone"), json={"value": "grim"})
        fresh = TestClient(create_app(TEST_DATA_DIR, autosave_delay=0))
        assert fresh.get(_url(session_id)).json()["dials"]["tone"] == "grim"

    def test_delete(self, client: TestClient, session_id: str) -> None:
        assert client.delete(_url(session_id)).json() == {"ok": True}
        assert client.get(_url(session_id)).status_code == 404
        assert client.delete(_url(session_id)).status_code == 404

    @pytest.mark.parametrize("bad", ["%2E", "%2E%2E", "..%2Fconfig"])
    def test_delete_dot_ids_touch_nothing(self, client: TestClient, session_id: str, bad: str) -> None:
        assert client.delete(f"/api/sessions/{bad}").status_code == 404
        assert client.get(_url(session_id)).status_code == 200
        assert (TEST_DATA_DIR / "sessions" / f"{session_id}.json").is_file()
        assert client.get("/api/settings").status_code == 200


# ---------------------------------------------------------------------------
# Stage navigation and dials
# ---------------------------------------------------------------------------

class TestStagesAndDials:
    def test_advance_blocked_until_dials_confirmed(self, client: TestClient, session_id: str) -> None:
        client.post(_url(session_id, "/dials/scene_count/unconfirm"))
        resp = client.post(_url(session_id, "/advance"))
        assert resp.status_code == 400
        assert "dial-tuning" in resp.json()["detail"]

        _confirm_concrete_dials(client, session_id)
        data = client.post(_url(session_id, "/advance")).json()
        assert data["session"]["current_stage"] == "frame"

        data = client.post(_url(session_id, "/back")).json()
        assert data["session"]["current_stage"] == "dial-tuning"

    def test_jump_to_stage(self, client: TestClient, session_id: str) -> None:
        data = client.post(_url(session_id, "/stage"), json={"stage": "echoes"}).json()
        assert data["session"]["current_stage"] == "echoes"

    def test_set_dial(self, client: TestClient, session_id: str) -> None:
        data = client.put(_url(session_id, "/dials/party_size"), json={"value": 3}).json()
        assert data["dials"]["party_size"] == 3

    def test_set_dial_invalid_value(self, client: TestClient, session_id: str) -> None:
        assert client.put(_url(session_id, "/dials/party_size"), json={"value": 9}).status_code == 422

    def test_unknown_dial(self, client: TestClient, session_id: str) -> None:
        assert client.put(_url(session_id, "/dials/mood"), json={"value": 1}).status_code == 404

    def test_confirm_and_reset(self, client: TestClient, session_id: str) -> None:
        client.put(_url(session_id, "/dials/tone"), json={"value": "grim"})
        data = client.post(_url(session_id, "/dials/tone/confirm")).json()
        assert "tone" in data["dials"]["confirmed_dials"]
        data = client.post(_url(session_id, "/dials/tone/unconfirm")).json()
        assert "tone" not in data["dials"]["confirmed_dials"]
        data = client.post(_url(session_id, "/dials/tone/reset")).json()
        assert data["dials"]["tone"] is None

    def test_reset_all(self, client: TestClient, session_id: str) -> None:
        client.put(_url(session_id, "/dials/party_size"), json={"value": 2})
        data = client.post(_url(session_id, "/dials/reset")).json()
        assert data["dials"]["party_size"] == 4

    def test_themes(self, client: TestClient, session_id: str) -> None:
        for theme in ("redemption", "legacy", "survival"):
            assert client.post(_url(session_id, "/themes"), json={"theme": theme}).status_code == 200
        assert client.post(_url(session_id, "/themes"), json={"theme": "identity"}).status_code == 422
        data = client.delete(_url(session_id, "/themes/legacy")).json()
        assert data["dials"]["themes"] == ["redemption", "survival"]


# ---------------------------------------------------------------------------
# Content pipeline
# ---------------------------------------------------------------------------

class TestFrameAndOutline:
    def test_custom_frame_locks_after_confirm(self, client: TestClient, session_id: str) -> None:
        client.post(_url(session_id, "/frame/custom"), json={"name": "Drowned Bells"})
        data = client.post(_url(session_id, "/frame/confirm")).json()
        assert data["content"]["frame_confirmed"] is True
        resp = client.post(_url(session_id, "/frame/select"), json={"id": "f2", "name": "Other"})
        assert resp.status_code == 409

    def test_generate_outline(self, app, client: TestClient, session_id: str) -> None:
        app.state.generation_llm = StubLLM(OUTLINE_JSON)
        client.post(_url(session_id, "/frame/custom"), json={"name": "Drowned Bells"})
        client.post(_url(session_id, "/frame/confirm"))

        data = client.post(_url(session_id, "/outline/generate"), json={}).json()
        assert data["content"]["outline"]["title"] == "Roots of Rot"
        assert len(data["content"]["outline"]["scenes"]) == 3

        data = client.post(_url(session_id, "/outline/confirm")).json()
        assert data["content"]["outline"]["is_confirmed"] is True

    def test_generate_outline_without_frame(self, app, client: TestClient, session_id: str) -> None:
        app.state.generation_llm = StubLLM(OUTLINE_JSON)
        assert client.post(_url(session_id, "/outline/generate"), json={}).status_code == 409

    def test_generate_outline_llm_failure(self, app, client: TestClient, session_id: str) -> None:
        app.state.generation_llm = StubLLM(LLMError("Cannot connect", "NETWORK_ERROR"))
        client.post(_url(session_id, "/frame/custom"), json={"name": "Drowned Bells"})
        client.post(_url(session_id, "/frame/confirm"))

        assert client.post(_url(session_id, "/outline/generate"), json={}).status_code == 502
        content = client.get(_url(session_id)).json()["content"]
        assert content["outline_error"]
        assert content["outline_loading"] is False

    def test_no_generation_connection(self, client: TestClient, session_id: str) -> None:
        resp = client.post(_url(session_id, "/outline/generate"), json={})
        assert resp.status_code == 400
        assert resp.json()["detail"] == "Generation connection not assigned"


class TestSelections:
    def test_adversaries(self, client: TestClient, session_id: str) -> None:
        catalog = [{"name": "Bramble Wolf", "tier": 1, "type": "Bruiser"}, {"name": "Rot Knight", "tier": 2, "type": "Leader"}]
        client.put(_url(session_id, "/adversaries/available"), json=catalog)
        client.put(_url(session_id, "/adversaries/filters"), json={"tier": 2})
        available = client.get(_url(session_id, "/adversaries/available")).json()
        assert [a["name"] for a in available] == ["Rot Knight"]

        client.post(_url(session_id, "/adversaries"), json={"adversary": catalog[0], "quantity": 2})
        data = client.patch(_url(session_id, "/adversaries/Bramble Wolf"), json={"quantity": 50}).json()
        assert data["content"]["selected_adversaries"][0]["quantity"] == 10

        data = client.post(_url(session_id, "/adversaries/Bramble Wolf/confirm")).json()
        assert data["content"]["confirmed_adversary_ids"] == ["Bramble Wolf"]
        data = client.delete(_url(session_id, "/adversaries/Bramble Wolf")).json()
        assert data["content"]["selected_adversaries"] == []
        assert data["content"]["confirmed_adversary_ids"] == []

    def test_items(self, client: TestClient, session_id: str) -> None:
        rope = {"category": "item", "data": {"name": "Rope", "tier": 1}}
        client.post(_url(session_id, "/items"), json={"item": rope})
        data = client.patch(_url(session_id, "/items"), json={"category": "item", "name": "Rope", "quantity": 3}).json()
        assert data["content"]["selected_items"][0]["quantity"] == 3
        data = client.post(_url(session_id, "/items/confirm"), json={"category": "item", "name": "Rope"}).json()
        assert len(data["content"]["confirmed_item_ids"]) == 1
        data = client.post(_url(session_id, "/items/remove"), json={"category": "item", "name": "Rope"}).json()
        assert data["content"]["selected_items"] == []

    def test_echo_category(self, client: TestClient, session_id: str) -> None:
        data = client.put(_url(session_id, "/echoes/category/rumors")).json()
        assert data["content"]["active_echo_category"] == "rumors"
        assert client.put(_url(session_id, "/echoes/category/gossip")).status_code == 422


# ---------------------------------------------------------------------------
# Chat streaming
# ---------------------------------------------------------------------------

class TestChat:
    def test_streams_ndjson(self, app, client: TestClient, session_id: str) -> None:
        app.state.chat_model = StubChatModel([[TextChunk(text="Four "), TextChunk(text="it is."), UsageChunk(input_tokens=5, output_tokens=2)]])
        resp = client.post("/api/chat", json={"sessionId": session_id, "message": "Four players"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("application/x-ndjson")

        events = _events(resp)
        assert [e["type"] for e in events] == ["chat:start", "chat:delta", "chat:delta", "chat:end"]
        assert "".join(e["data"]["content"] for e in events if e["type"] == "chat:delta") == "Four it is."

        messages = client.get(_url(session_id, "/messages")).json()
        assert [m["content"] for m in messages][-2:] == ["Four players", "Four it is."]

    def test_tool_call_updates_session(self, app, client: TestClient, session_id: str) -> None:
        app.state.chat_model = StubChatModel([
            [ToolCallChunk(id="c1", name="set_dial", input={"dial_id": "tone", "value": "grim"})],
            [TextChunk(text="Grim it is.")],
        ])
        events = _events(client.post("/api/chat", json={"sessionId": session_id, "message": "Make it dark"}))
        types = [e["type"] for e in events]
        assert "panel:update" in types
        assert types[-1] == "chat:end"
        assert client.get(_url(session_id)).json()["dials"]["tone"] == "grim"

    def test_llm_error_becomes_error_event(self, app, client: TestClient, session_id: str) -> None:
        class Failing:
            async def stream_chat(self, messages, system, tools):
                raise LLMError("LLM backend returned HTTP 429", "RATE_LIMIT")
                yield  # pragma: no cover

        app.state.chat_model = Failing()
        events = _events(client.post("/api/chat", json={"sessionId": session_id, "message": "Hi"}))
        assert events[-1]["type"] == "error"
        assert events[-1]["data"]["code"] == "RATE_LIMIT"

    def test_turn_in_progress(self, app, client: TestClient, session_id: str) -> None:
        app.state.chat_model = StubChatModel([])
        app.state.registry.get(session_id).begin_turn()
        resp = client.post("/api/chat", json={"sessionId": session_id, "message": "Hi"})
        assert resp.status_code == 409

    def test_no_chat_connection(self, app, client: TestClient, session_id: str) -> None:
        resp = client.post("/api/chat", json={"sessionId": session_id, "message": "Hi"})
        assert resp.status_code == 400
        assert not app.state.registry.get(session_id).is_streaming

    def test_turn_released_after_stream(self, app, client: TestClient, session_id: str) -> None:
        app.state.chat_model = StubChatModel([[TextChunk(text="One")], [TextChunk(text="Two")]])
        first = _events(client.post("/api/chat", json={"sessionId": session_id, "message": "Hi"}))
        second = _events(client.post("/api/chat", json={"sessionId": session_id, "message": "Again"}))
        assert first[-1]["type"] == second[-1]["type"] == "chat:end"
        assert not app.state.registry.get(session_id).is_streaming

    def test_empty_message_rejected(self, app, client: TestClient, session_id: str) -> None:
        app.state.chat_model = StubChatModel([])
        assert client.post("/api/chat", json={"sessionId": session_id, "message": ""}).status_code == 422
