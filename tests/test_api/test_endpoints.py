"""Tests for the pipeline API endpoints."""

import pytest
from fastapi.testclient import TestClient

from conftest import FakeFetcher, FakeModelClient, tool_call
from genieflow.api.dependencies import get_runner, get_store
from genieflow.engine.ids import IdGenerator
from genieflow.engine.runner import PipelineRunner
from genieflow.engine.store import SessionStore
from genieflow.llm.client import ModelResponse
from genieflow.main import app


@pytest.fixture()
def fake_model():
    return FakeModelClient()


@pytest.fixture()
def client(fake_model):
    store = SessionStore(IdGenerator(seed="api"))
    runner = PipelineRunner(client=fake_model, fetcher=FakeFetcher(content="Docs"), auto_respond_delay=0)
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_runner] = lambda: runner
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def pipeline_id(client):
    resp = client.post("/api/pipelines", json={"system_prompt": "You are a mood ring."})
    assert resp.status_code == 200
    return resp.json()["pipeline"]["id"]


def _add(client, pipeline_id, kind, config=None, **extra):
    body = {"kind": kind, **extra}
    if config is not None:
        body["config"] = config
    resp = client.post(f"/api/pipelines/{pipeline_id}/nodes", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["id"]


class TestHealthEndpoint:
    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestPipelinesEndpoint:
    def test_create(self, client):
        resp = client.post("/api/pipelines", json={})
        assert resp.status_code == 200
        data = resp.json()
        assert data["pipeline"]["id"].startswith("pipe_api_")
        assert data["pipeline"]["nodes"][0]["id"] == "system-prompt"

    def test_create_from_definition(self, client):
        definition = {
            "id": "pipe_custom",
            "nodes": [
                {"id": "system-prompt", "kind": "system_prompt", "config": {"prompt": "Hi"}},
                {"id": "c1", "kind": "color_display"},
            ],
        }
        resp = client.post("/api/pipelines", json={"pipeline": definition})
        assert resp.status_code == 200
        assert len(resp.json()["pipeline"]["nodes"]) == 2

        resp = client.post("/api/pipelines", json={"pipeline": definition})
        assert resp.status_code == 409

    def test_invalid_definition(self, client):
        definition = {"id": "bad", "nodes": [{"id": "c1", "kind": "color_display"}]}
        resp = client.post("/api/pipelines", json={"pipeline": definition})
        assert resp.status_code == 422

    def test_get_and_delete(self, client, pipeline_id):
        assert client.get(f"/api/pipelines/{pipeline_id}").status_code == 200
        assert client.delete(f"/api/pipelines/{pipeline_id}").status_code == 200
        assert client.get(f"/api/pipelines/{pipeline_id}").status_code == 404
        assert client.delete(f"/api/pipelines/{pipeline_id}").status_code == 404


class TestNodesEndpoint:
    def test_add_and_move(self, client, pipeline_id):
        first = _add(client, pipeline_id, "color_display")
        second = _add(client, pipeline_id, "inference")

        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{second}/move", json={"index": 0})
        assert resp.json()["status"] == "completed"

        nodes = client.get(f"/api/pipelines/{pipeline_id}").json()["pipeline"]["nodes"]
        assert [n["id"] for n in nodes] == ["system-prompt", second, first]

    def test_add_invalid_config(self, client, pipeline_id):
        resp = client.post(
            f"/api/pipelines/{pipeline_id}/nodes",
            json={"kind": "inference", "config": {"temperature": 9}},
        )
        assert resp.status_code == 422

    def test_add_second_system_prompt(self, client, pipeline_id):
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes", json={"kind": "system_prompt"})
        assert resp.status_code == 400

    def test_remove_system_prompt_skipped(self, client, pipeline_id):
        resp = client.delete(f"/api/pipelines/{pipeline_id}/nodes/system-prompt")
        assert resp.json()["status"] == "skipped"

    def test_replace_config(self, client, pipeline_id):
        node_id = _add(client, pipeline_id, "icon_display")
        resp = client.put(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/config", json={"name": "weather"})
        assert resp.json()["status"] == "completed"

        nodes = client.get(f"/api/pipelines/{pipeline_id}").json()["pipeline"]["nodes"]
        assert nodes[1]["config"]["name"] == "weather"

        resp = client.put(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/config", json={"name": 5})
        assert resp.status_code == 422

    def test_inspect_tools(self, client, pipeline_id):
        _add(client, pipeline_id, "icon_display", {"name": "weather"})
        node_id = _add(client, pipeline_id, "inference")
        resp = client.get(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/tools")
        assert [t["name"] for t in resp.json()["tools"]] == ["display_weather_icon"]


class TestExecutionEndpoints:
    def test_inference(self, client, fake_model, pipeline_id):
        color = _add(client, pipeline_id, "color_display", {"name": "mood"})
        node_id = _add(client, pipeline_id, "inference")
        fake_model.queue(
            ModelResponse(text="Bright!", tool_calls=[tool_call("display_mood_color", hex="#ffee00")])
        )

        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/inference", json={"message": "Yay"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["outputs"][color]["hex"] == "#ffee00"
        snapshot = client.get(f"/api/pipelines/{pipeline_id}").json()
        assert snapshot["outputs"][node_id] == {"content": "Bright!"}

    def test_inference_failure(self, client, fake_model, pipeline_id):
        node_id = _add(client, pipeline_id, "inference")
        fake_model.queue(ModelResponse(error="Claude API error: overloaded"))
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/inference", json={"message": "hi"})
        assert resp.json()["status"] == "failed"
        assert client.get(f"/api/pipelines/{pipeline_id}").json()["outputs"] == {}

    def test_inference_without_message_skipped(self, client, fake_model, pipeline_id):
        node_id = _add(client, pipeline_id, "inference")
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/inference", json={})
        assert resp.json()["status"] == "skipped"
        assert fake_model.requests == []

    def test_run(self, client, pipeline_id):
        user = _add(client, pipeline_id, "user_input")
        _add(client, pipeline_id, "inference")
        resp = client.post(f"/api/pipelines/{pipeline_id}/run", json={"user_inputs": {user: "hello"}})
        assert resp.json()["status"] == "completed"
        assert client.get(f"/api/pipelines/{pipeline_id}").json()["user_inputs"] == {user: "hello"}

    def test_genie_conversation(self, client, fake_model, pipeline_id):
        genie = _add(client, pipeline_id, "genie", {"name": "Luna"})
        fake_model.queue(ModelResponse(text="I am Luna."), ModelResponse(text="Hello again."))

        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{genie}/initialize")
        assert resp.json()["reply"] == "I am Luna."
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{genie}/messages", json={"message": "Hi"})
        assert resp.json()["reply"] == "Hello again."

        turns = client.get(f"/api/pipelines/{pipeline_id}").json()["conversations"][genie]["messages"]
        assert len(turns) == 4

    def test_message_required(self, client, pipeline_id):
        genie = _add(client, pipeline_id, "genie")
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{genie}/messages", json={})
        assert resp.status_code == 400

    def test_acknowledge(self, client, fake_model, pipeline_id):
        genie = _add(client, pipeline_id, "genie", {"name": "Luna"})
        node_id = _add(client, pipeline_id, "inference")
        fake_model.queue(
            ModelResponse(text="ok", tool_calls=[tool_call("send_message_to_Luna", message="A pirate.")])
        )
        client.post(f"/api/pipelines/{pipeline_id}/nodes/{node_id}/inference", json={"message": "go"})

        assert client.get(f"/api/pipelines/{pipeline_id}").json()["pending_updates"] == {genie: True}
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{genie}/acknowledge")
        assert resp.json()["status"] == "completed"
        assert client.get(f"/api/pipelines/{pipeline_id}").json()["pending_updates"] == {}

    def test_load_url(self, client, pipeline_id):
        loader = _add(client, pipeline_id, "url_loader", {"url": "https://example.com"})
        resp = client.post(f"/api/pipelines/{pipeline_id}/nodes/{loader}/load-url")
        assert resp.json()["content"] == "Docs"

        other = _add(client, pipeline_id, "inference")
        assert client.post(f"/api/pipelines/{pipeline_id}/nodes/{other}/load-url").status_code == 400

    def test_unknown_pipeline(self, client):
        resp = client.post("/api/pipelines/missing/nodes/x/inference", json={})
        assert resp.status_code == 404
