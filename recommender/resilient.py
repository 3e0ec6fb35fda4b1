from __future__ import annotations

import asyncio
import logging
import math
from typing import Optional, Protocol

from matching.packages import calculate_overfill, calculate_underfill, select_packages, OVERFILL_WARN_PCT
from models.domain import MatchResult
from ops.metrics import Timer
from recommender.circuit_breaker import CircuitBreaker
from recommender.types import AIResult, Recommendation, RecommendationRequest
from utils.errors import CircuitOpenError, ExternalServiceError

log = logging.getLogger("rxfill.recommender")


class AIRecommender(Protocol):
    def is_available(self) -> bool: ...

    async def recommend(self, req: RecommendationRequest) -> AIResult: ...


class ResilientRecommender:
    """AI recommendation behind a circuit breaker, deterministic matcher as fallback.

    get_recommendation always returns; AI problems only show up as
    algorithmic_fallback=True on the result.
    """

    def __init__(
        self,
        ai: Optional[AIRecommender],
        breaker: CircuitBreaker,
        enabled: bool = True,
        timeout_s: float = 30.0,
    ):
        self.ai = ai
        self.breaker = breaker
        self.enabled = enabled
        self.timeout_s = timeout_s

    def ai_configured(self) -> bool:
        return bool(self.enabled and self.ai is not None and self.ai.is_available())

    async def get_recommendation(self, req: RecommendationRequest) -> Recommendation:
        t = Timer()
        if not self.ai_configured():
            return self._algorithm(req, fallback=False, t=t)

        try:
            if not self.breaker.allow_request():
                raise CircuitOpenError(f"circuit open for {self.breaker.name}")
            result = await asyncio.wait_for(self.ai.recommend(req), timeout=self.timeout_s)
            # an unusable pick is a backend failure too
            rec = self._from_ai(req, result, t)
        except CircuitOpenError as e:
            # no call was attempted, nothing to record
            log.info("ai_skipped", extra={"extra": {"event": "ai_skipped", "reason": e.code}})
            return self._algorithm(req, fallback=True, t=t)
        except asyncio.CancelledError:
            self.breaker.release_probe()
            raise
        except Exception as e:
            self.breaker.record_failure()
            log.warning(
                "ai_fallback",
                extra={
                    "extra": {
                        "event": "ai_fallback",
                        "error_type": type(e).__name__,
                        "code": getattr(e, "code", ""),
                        "breaker": self.breaker.snapshot().state.value,
                    }
                },
            )
            return self._algorithm(req, fallback=True, t=t)

        self.breaker.record_success()
        return rec

    def _algorithm(self, req: RecommendationRequest, fallback: bool, t: Timer) -> Recommendation:
        match = select_packages(req.quantity_needed, req.candidates, allow_multi_pack=req.allow_multi_pack)
        return Recommendation(
            source="algorithm",
            match=match,
            used_ai=False,
            algorithmic_fallback=fallback,
            execution_ms=t.ms(),
        )

    def _from_ai(self, req: RecommendationRequest, result: AIResult, t: Timer) -> Recommendation:
        rec = result.recommendation
        pick = rec.primaryRecommendation
        pkg = next(
            (p for p in req.candidates if p.is_active and p.size_quantity > 0 and p.code == pick.ndc),
            None,
        )
        if pkg is None:
            raise ExternalServiceError(
                "AI recommended a package outside the usable candidates",
                service="openai",
                code="ai_malformed_response",
                details={"ndc": pick.ndc},
            )

        count = 1
        if req.allow_multi_pack:
            count = max(1, int(math.ceil(round(pick.quantityToDispense / pkg.size_quantity, 6))))
        selected = [pkg] * count
        total = pkg.size_quantity * count

        match = MatchResult(
            selected=selected,
            total_quantity=total,
            overfill_pct=calculate_overfill(req.quantity_needed, total),
            underfill_pct=calculate_underfill(req.quantity_needed, total),
            explanation=pick.reasoning or rec.reasoning.rationale,
        )
        if match.overfill_pct > OVERFILL_WARN_PCT:
            match.warnings.append(f"Overfill exceeds {OVERFILL_WARN_PCT:g}% ({match.overfill_pct:.1f}%)")
        if match.underfill_pct > 0:
            match.warnings.append(f"Selected package underfills the required quantity ({match.underfill_pct:.1f}%)")

        insights = {
            "factors": rec.reasoning.factors,
            "considerations": rec.reasoning.considerations,
            "rationale": rec.reasoning.rationale,
            "confidenceScore": pick.confidenceScore,
            "alternatives": [a.ndc for a in rec.alternatives],
        }
        if rec.costEfficiency is not None:
            insights["costEfficiency"] = rec.costEfficiency.model_dump()
        return Recommendation(
            source="ai",
            match=match,
            used_ai=True,
            algorithmic_fallback=False,
            ai_insights=insights,
            usage=result.usage,
            execution_ms=t.ms(),
        )
