import asyncio
import json
from types import SimpleNamespace

import pytest

from legal_analyzer.services.sentiment import SentimentService


class FakeModels:
    def __init__(self, reply=None, error=None, delay=0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.requests = []

    async def generate_content(self, *, model, contents, config):
        self.requests.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.reply)


def _service(models: FakeModels, timeout: float = 1.0) -> SentimentService:
    service = SentimentService(api_key=None, model="gemini-test", timeout=timeout, min_interval=0)
    service._client = SimpleNamespace(aio=SimpleNamespace(models=models))
    service.enabled = True
    return service


@pytest.mark.parametrize(
    "text, label",
    [
        ("Pedido deferido e procedente, acordo aprovado.", "positivo"),
        ("Multa e penalidade por violação; pedido negado.", "negativo"),
        ("O prazo é de trinta dias.", "neutro"),
    ],
)
async def test_local_analysis_without_api_key(text, label):
    service = SentimentService(api_key=None, model="gemini-test")

    result = await service.analyze_sentiment(text)

    assert result.overall == label
    assert -1 <= result.score <= 1
    assert "chave Gemini não configurada" in result.analysis
    assert service.get_stats()["fallbackCount"] == 1


async def test_gemini_reply_is_parsed():
    reply = json.dumps({"overall": "negativo", "score": -0.6, "analysis": "Tom condenatório"})
    models = FakeModels(reply=reply)
    service = _service(models)

    result = await service.analyze_sentiment("A ré foi condenada. " * 200)

    assert (result.overall, result.score) == ("negativo", -0.6)
    assert len(models.requests) == 1
    assert models.requests[0]["model"] == "gemini-test"
    assert models.requests[0]["config"].response_mime_type == "application/json"
    assert service.request_count == 1
    assert service.fallback_count == 0


async def test_gemini_label_is_normalized():
    service = _service(FakeModels(reply=json.dumps({"overall": " Positivo", "score": 0.4})))

    result = await service.analyze_sentiment("Acordo homologado.")

    assert result.overall == "positivo"
    assert service.fallback_count == 0


async def test_prompt_is_truncated():
    models = FakeModels(reply=json.dumps({"overall": "neutro", "score": 0}))
    service = _service(models)

    await service.analyze_sentiment("x" * 5000)

    assert "x" * 2000 + "..." in models.requests[0]["contents"]
    assert "x" * 2001 not in models.requests[0]["contents"]


@pytest.mark.parametrize(
    "models",
    [
        FakeModels(reply="não é JSON"),
        FakeModels(reply=json.dumps({"score": 0.1})),
        FakeModels(reply=json.dumps({"overall": "misto", "score": 0.5})),
        FakeModels(reply=""),
        FakeModels(error=RuntimeError("quota exceeded")),
    ],
)
async def test_provider_problems_fall_back_to_local_analysis(models):
    service = _service(models)

    result = await service.analyze_sentiment("Acordo aprovado entre as partes.")

    assert result.overall == "positivo"
    assert "erro na API Gemini" in result.analysis
    assert service.fallback_count == 1


async def test_timeout_falls_back_to_local_analysis():
    service = _service(FakeModels(reply="{}", delay=1.0), timeout=0.01)

    result = await service.analyze_sentiment("Texto neutro.")

    assert result.overall == "neutro"
    assert service.fallback_count == 1
