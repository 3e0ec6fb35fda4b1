from __future__ import annotations

import json
import logging
from typing import Dict, Optional, Tuple

from openai import AsyncOpenAI
from pydantic import ValidationError as SchemaError

from ops.metrics import Timer
from recommender.prompts import build_messages
from recommender.types import AIRecommendation, AIResult, RecommendationRequest, UsageMetrics
from utils.errors import ExternalServiceError

log = logging.getLogger("rxfill.openai")

SERVICE = "openai"

# USD per 1K tokens: (prompt, completion)
PRICING: Dict[str, Tuple[float, float]] = {
    "gpt-4o": (0.005, 0.015),
    "gpt-4o-mini": (0.00015, 0.0006),
    "gpt-4-turbo": (0.01, 0.03),
}


def estimate_cost(model: str, prompt_tokens: int, completion_tokens: int) -> float:
    prompt_rate, completion_rate = PRICING.get(model, PRICING["gpt-4o"])
    return (prompt_tokens / 1000.0) * prompt_rate + (completion_tokens / 1000.0) * completion_rate


def parse_recommendation(content: Optional[str], req: RecommendationRequest) -> AIRecommendation:
    """Validate the model's JSON. Raises ExternalServiceError(ai_malformed_response)."""
    try:
        rec = AIRecommendation.model_validate(json.loads(content or ""))
    except (ValueError, SchemaError) as e:
        # pydantic's ValidationError subclasses ValueError; json errors too
        raise ExternalServiceError(
            "AI response failed schema validation", service=SERVICE, code="ai_malformed_response"
        ) from e

    active = {p.code for p in req.candidates if p.is_active and p.size_quantity > 0}
    if rec.primaryRecommendation.ndc not in active:
        raise ExternalServiceError(
            "AI recommended a package outside the candidate list",
            service=SERVICE,
            code="ai_malformed_response",
            details={"ndc": rec.primaryRecommendation.ndc},
        )
    return rec


class OpenAIRecommender:
    def __init__(
        self,
        api_key: str = "",
        model: str = "gpt-4o",
        max_tokens: int = 2000,
        temperature: float = 0.3,
        timeout_s: float = 30.0,
        max_retries: int = 2,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_s = timeout_s
        if client is None and api_key:
            client = AsyncOpenAI(api_key=api_key, timeout=timeout_s, max_retries=max_retries)
        self.client = client

    def is_available(self) -> bool:
        return self.client is not None

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.close()

    async def recommend(self, req: RecommendationRequest) -> AIResult:
        if self.client is None:
            raise ExternalServiceError("AI recommender is not configured", service=SERVICE, code="ai_unavailable")

        t = Timer()
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=build_messages(req),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        latency = t.ms()

        content = response.choices[0].message.content if response.choices else None
        rec = parse_recommendation(content, req)

        usage = response.usage
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        metrics = UsageMetrics(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=getattr(usage, "total_tokens", 0) or (prompt_tokens + completion_tokens),
            estimated_cost_usd=estimate_cost(self.model, prompt_tokens, completion_tokens),
            latency_ms=latency,
            model=self.model,
        )
        log.info(
            "ai_recommendation",
            extra={
                "extra": {
                    "event": "ai_recommendation",
                    "model": self.model,
                    "total_tokens": metrics.total_tokens,
                    "cost_usd": round(metrics.estimated_cost_usd, 6),
                    "latency_ms": latency,
                }
            },
        )
        return AIResult(recommendation=rec, usage=metrics)
