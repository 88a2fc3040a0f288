import time

import pytest
from fastapi.testclient import TestClient

from conftest import make_large_text
from legal_analyzer.main import app

CONTRACT = (
    "O contrato de locação estabelece que o locatário deve pagar multa. "
    "O fiador responde pelo contrato."
)


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["components"]["queue"]["status"] == "healthy"
    assert body["components"]["queue"]["backend"] == "memory"
    assert body["components"]["worker"]["isRunning"] is True


def test_small_text_is_analyzed_inline(client):
    response = client.post("/api/v1/analyze-text", json={"text": CONTRACT})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["result"]["wordCount"] == 10
    assert body["result"]["topWords"][0] == {"word": "contrato", "count": 2}
    assert body["result"]["chunksProcessed"] == 1

    status = client.get(f"/api/v1/analysis/{body['analysisId']}/status").json()
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["result"]["wordCount"] == 10


def test_empty_text_is_rejected(client):
    response = client.post("/api/v1/analyze-text", json={"text": "   "})

    assert response.status_code == 400
    assert response.json()["detail"]["error_code"] == "VALIDATION_ERROR"


def test_missing_text_is_rejected(client):
    response = client.post("/api/v1/analyze-text", json={})

    assert response.status_code == 422


def test_large_text_is_queued_and_completed(client):
    text = make_large_text(articles=70)
    assert len(text) >= 50_000

    response = client.post("/api/v1/analyze-text", json={"text": text})

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "processing"
    assert body["progress"] == 0
    assert body["estimatedTime"] == -(-len(text) // 1000)

    status_url = f"/api/v1/analysis/{body['analysisId']}/status"
    deadline = time.monotonic() + 10
    status = client.get(status_url).json()
    while status["status"] == "processing" and time.monotonic() < deadline:
        time.sleep(0.05)
        status = client.get(status_url).json()

    assert status["status"] == "completed"
    assert status["result"]["structure"]["articles"] == 70
    assert status["result"]["chunksProcessed"] >= 2


def test_unknown_analysis_returns_404(client):
    response = client.get("/api/v1/analysis/does-not-exist/status")

    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "ANALYSIS_NOT_FOUND"


def test_search_term(client):
    client.post("/api/v1/analyze-text", json={"text": CONTRACT})

    found = client.get("/api/v1/search-term", params={"term": "Contrato"}).json()
    missing = client.get("/api/v1/search-term", params={"term": "hipoteca"}).json()

    assert found["found"] is True
    assert found["totalOccurrences"] == 2
    assert len(found["analyses"]) == 1
    assert missing == {"term": "hipoteca", "found": False, "analyses": [], "totalOccurrences": 0}


def test_search_term_requires_two_characters(client):
    assert client.get("/api/v1/search-term", params={"term": "a"}).status_code == 422


def test_stats(client):
    client.post("/api/v1/analyze-text", json={"text": CONTRACT})
    client.post("/api/v1/analyze-text", json={"text": CONTRACT})

    body = client.get("/api/v1/stats").json()

    assert body["database"]["totalAnalyses"] == 2
    assert body["database"]["completedAnalyses"] == 2
    assert body["cache"]["hits"] == 1
    assert body["queue"]["backend"] == "memory"
    assert body["sentiment"]["enabled"] is False
    assert body["worker"]["concurrency"] == 2


def test_search_history(client):
    client.post("/api/v1/analyze-text", json={"text": CONTRACT})
    client.get("/api/v1/search-term", params={"term": "fiador"})
    client.get("/api/v1/search-term", params={"term": "hipoteca"})

    body = client.get("/api/v1/search-history").json()
    latest = client.get("/api/v1/search-history", params={"limit": 1}).json()

    assert body["total"] == 2
    assert [(s["term"], s["found"]) for s in body["searches"]] == [
        ("hipoteca", False),
        ("fiador", True),
    ]
    assert body["searches"][0]["analysisId"] is None
    assert body["searches"][1]["analysisId"] is not None
    assert [s["term"] for s in latest["searches"]] == ["hipoteca"]
    assert client.get("/api/v1/stats").json()["database"]["totalSearches"] == 2


@pytest.mark.parametrize("limit", [0, 1001])
def test_search_history_limit_is_bounded(client, limit):
    assert client.get("/api/v1/search-history", params={"limit": limit}).status_code == 422
