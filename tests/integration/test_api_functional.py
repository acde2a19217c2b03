import base64

from fastapi.testclient import TestClient

from chat_orchestrator.api.main import create_app
from chat_orchestrator.config import Settings
from chat_orchestrator.ingest.embedder import HashingEmbedder
from chat_orchestrator.llm.fallback import DeterministicLLM
from chat_orchestrator.runtime import build_runtime


def _client() -> TestClient:
    runtime = build_runtime(Settings(), DeterministicLLM(), HashingEmbedder())
    return TestClient(create_app(runtime))


def test_api_ingest_message_trace_metrics() -> None:
    with _client() as client:
        health = client.get("/health")
        assert health.status_code == 200
        assert health.json()["llm_provider"] == "deterministic"
        assert health.json()["tools"] == 5

        body = "Company policy states employees must encrypt customer data at rest.\n" * 40
        ingest_resp = client.post(
            "/ingest",
            json={
                "user_id": "alice",
                "filename": "policy.txt",
                "mimetype": "text/plain",
                "data_base64": base64.b64encode(body.encode("utf-8")).decode("ascii"),
            },
        )
        assert ingest_resp.status_code == 200
        ingested = ingest_resp.json()
        assert ingested["success"] is True
        assert ingested["chunks_created"] >= 1
        assert "Parsing method: text" in ingested["summary"]

        source_resp = client.post(
            "/sources/search",
            json={"query": "encrypt customer data", "threshold": 0.0, "user_id": "alice"},
        )
        assert source_resp.status_code == 200
        items = source_resp.json()["items"]
        assert items
        assert items[0]["label"] == "Document: policy.txt"

        message_resp = client.post(
            "/messages", json={"id": "m-1", "content": "Calculate 12 * 8", "sender_id": "alice"}
        )
        assert message_resp.status_code == 200
        payload = message_resp.json()
        assert payload["ignored"] is False
        assert "96" in payload["response"]["content"]
        assert payload["response"]["tools_used"] == ["calculator"]
        assert payload["response"]["quoted_message_id"] == "m-1"

        trace_resp = client.get(f"/traces/{payload['response']['trace_id']}")
        assert trace_resp.status_code == 200
        assert trace_resp.json()["tool_traces"][0]["name"] == "calculator"
        assert client.get("/traces/does-not-exist").status_code == 404
        assert len(client.get("/traces").json()["items"]) == 1

        metrics = client.get("/metrics").json()
        assert metrics["total_requests"] == 1
        assert metrics["tool_calls"] == 1
        assert metrics["memory"]["total_turns"] == 2
        assert metrics["tools"]["tools"]["calculator"]["usage_count"] == 1

        assert client.delete("/conversations/alice").status_code == 200
        assert client.get("/metrics").json()["memory"]["total_turns"] == 0
        assert client.post("/cache/flush").json() == {"flushed": True}


def test_tool_toggling_and_catalog() -> None:
    with _client() as client:
        assert client.post("/tools/weather/disable").json() == {"name": "weather", "enabled": False}
        tools = client.get("/tools").json()
        weather = next(tool for tool in tools["local"] if tool["name"] == "weather")
        assert weather["enabled"] is False
        assert tools["stats"]["enabled"] == 4

        meta = client.post(
            "/messages", json={"content": "What tools do you have?", "sender_id": "bob"}
        ).json()
        assert "weather" not in meta["response"]["content"]

        assert client.post("/tools/weather/enable").status_code == 200
        assert client.post("/tools/nope/enable").status_code == 404


def test_knowledge_and_ignored_messages() -> None:
    with _client() as client:
        entry = client.post(
            "/knowledge",
            json={"title": "Support hours", "content": "Support is open 9 to 5 on weekdays."},
        )
        assert entry.status_code == 200
        assert entry.json()["title"] == "Support hours"

        results = client.post(
            "/sources/search",
            json={"query": "support hours", "threshold": 0.0, "include_documents": False},
        ).json()["items"]
        assert results[0]["source"] == "knowledge_base"

        ignored = client.post("/messages", json={"content": "/help", "sender_id": "bob"})
        assert ignored.json() == {"ignored": True, "response": None}

        bad = client.post(
            "/ingest",
            json={"user_id": "bob", "filename": "x.txt", "data_base64": "***not base64***"},
        )
        assert bad.status_code == 400

        failed = client.post(
            "/ingest",
            json={"user_id": "bob", "filename": "x.pdf", "text": "definitely not a pdf"},
        ).json()
        assert failed["success"] is False
        assert failed["category"] == "corrupt"
        assert failed["hints"]
