"""
Sentiment Service - Gemini sentiment analysis for legal text.

Asks Gemini for a JSON verdict on the opening of the text. Without an API
key, or when the call times out, fails or returns something unparseable,
a keyword lexicon is used instead. Callers never see provider errors.
"""

import asyncio
import json
import logging
import time

from google import genai
from google.genai import types
from pydantic import ValidationError

from legal_analyzer.schemas.models import SentimentResult

logger = logging.getLogger(__name__)

PROMPT_CHAR_LIMIT = 2000

SYSTEM_INSTRUCTION = "Você é um especialista em análise de textos jurídicos."

PROMPT_TEMPLATE = """Analise o sentimento do seguinte texto jurídico e retorne:
1. Sentimento geral: positivo, negativo ou neutro
2. Score de -1 a 1 (-1 muito negativo, 0 neutro, 1 muito positivo)
3. Breve análise do tom e contexto jurídico

Texto: "{text}..."

Responda em formato JSON: {{"overall": "...", "score": 0.0, "analysis": "..."}}"""

POSITIVE_WORDS = (
    "acordo", "aprovado", "deferido", "procedente", "favorável",
    "ganho", "vitória", "sucesso", "benefício", "direito garantido",
)

NEGATIVE_WORDS = (
    "indeferido", "improcedente", "negado", "recusado", "multa",
    "penalidade", "condenação", "prejuízo", "dano", "violação",
)


class SentimentService:
    """Sentiment provider backed by Google Gemini with a local fallback."""

    def __init__(
        self,
        api_key: str | None,
        model: str,
        timeout: float = 30.0,
        min_interval: float = 1.0,
    ):
        self.model = model
        self.timeout = timeout
        self.min_interval = min_interval
        self.enabled = bool(api_key)
        self._client = genai.Client(api_key=api_key) if api_key else None
        self._rate_lock = asyncio.Lock()
        self._last_request = 0.0
        self.request_count = 0
        self.fallback_count = 0

        if self.enabled:
            logger.info(f"Sentiment service initialized with model={model}")
        else:
            logger.warning("Sentiment service using local analysis - no GOOGLE_API_KEY provided")

    async def analyze_sentiment(self, text: str) -> SentimentResult:
        if self._client is None:
            return self.fallback_sentiment(text)

        try:
            await self._enforce_rate_limit()
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model,
                    contents=PROMPT_TEMPLATE.format(text=text[:PROMPT_CHAR_LIMIT]),
                    config=types.GenerateContentConfig(
                        system_instruction=SYSTEM_INSTRUCTION,
                        response_mime_type="application/json",
                        temperature=0.3,
                        max_output_tokens=200,
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Sentiment request timed out after {self.timeout}s, using local analysis")
            return self.fallback_sentiment(text)
        except Exception as e:
            logger.error(f"Gemini sentiment error: {e}", exc_info=True)
            return self.fallback_sentiment(text)

        if not response.text:
            logger.error("Empty sentiment response from Gemini")
            return self.fallback_sentiment(text)

        try:
            result = SentimentResult.model_validate(json.loads(response.text))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Failed to parse Gemini sentiment response: {e}")
            return self.fallback_sentiment(text)

        logger.info("Gemini sentiment analysis completed")
        return result

    def fallback_sentiment(self, text: str) -> SentimentResult:
        """Keyword-count sentiment used when Gemini is unavailable."""
        self.fallback_count += 1
        lowered = text.lower()
        positive = sum(1 for word in POSITIVE_WORDS if word in lowered)
        negative = sum(1 for word in NEGATIVE_WORDS if word in lowered)

        score = (positive - negative) / (positive + negative + 1)
        if score > 0.2:
            overall = "positivo"
        elif score < -0.2:
            overall = "negativo"
        else:
            overall = "neutro"

        reason = "erro na API Gemini" if self.enabled else "chave Gemini não configurada"
        return SentimentResult(
            overall=overall,
            score=max(-1.0, min(1.0, score)),
            analysis=f"Análise realizada com método local ({reason})",
        )

    def get_stats(self) -> dict:
        return {
            "enabled": self.enabled,
            "model": self.model,
            "requestCount": self.request_count,
            "fallbackCount": self.fallback_count,
        }

    async def _enforce_rate_limit(self) -> None:
        async with self._rate_lock:
            wait = self.min_interval - (time.monotonic() - self._last_request)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request = time.monotonic()
            self.request_count += 1
