from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from models.domain import CanonicalDrug, MatchResult, Package


@dataclass
class RecommendationRequest:
    drug: CanonicalDrug
    sig_text: str
    days_supply: int
    quantity_needed: float
    unit: str
    candidates: List[Package]
    allow_multi_pack: bool = False


# Structured output expected back from the model (JSON mode).
class AIPackagePick(BaseModel):
    ndc: str
    packageSize: float = Field(..., gt=0)
    unit: str
    quantityToDispense: float = Field(..., gt=0)
    reasoning: str = ""
    confidenceScore: float = Field(..., ge=0, le=1)


class AIReasoning(BaseModel):
    factors: List[str] = Field(default_factory=list)
    considerations: List[str] = Field(default_factory=list)
    rationale: str = ""


class AICostEfficiency(BaseModel):
    estimatedWaste: float = Field(..., ge=0, le=100)
    rating: Literal["low", "medium", "high"]


class AIRecommendation(BaseModel):
    primaryRecommendation: AIPackagePick
    alternatives: List[AIPackagePick] = Field(default_factory=list)
    reasoning: AIReasoning
    costEfficiency: Optional[AICostEfficiency] = None


@dataclass
class UsageMetrics:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost_usd: float
    latency_ms: int
    model: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
            "estimatedCost": self.estimated_cost_usd,
            "latencyMs": self.latency_ms,
            "model": self.model,
        }


@dataclass
class AIResult:
    recommendation: AIRecommendation
    usage: UsageMetrics


@dataclass
class Recommendation:
    source: str  # "ai" | "algorithm"
    match: MatchResult
    used_ai: bool = False
    algorithmic_fallback: bool = False
    ai_insights: Optional[Dict[str, Any]] = None
    usage: Optional[UsageMetrics] = None
    execution_ms: int = 0
    notes: List[str] = field(default_factory=list)
