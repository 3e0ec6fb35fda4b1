"""
End-to-end dispensing calculation.

drug (name or RxCUI) -> canonical drug -> catalog packages -> required
quantity -> recommended package(s). Rounding to two decimals happens only in
CalculationResult.to_dict.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from catalog.service import PackageCatalog
from matching.dosage_form import dosage_form_family, family_for_sig_unit, filter_by_family
from matching.packages import calculate_fill_precision
from matching.quantity import QuantityResult, compute_quantity, validate_sig
from models.domain import CanonicalDrug, Package, Sig
from ops.metrics import Timer
from recommender.resilient import ResilientRecommender
from recommender.types import Recommendation, RecommendationRequest
from rxnorm.resolver import NameResolver, Resolution
from utils.errors import BusinessRuleError, ValidationError

log = logging.getLogger("rxfill.calculator")


@dataclass
class CalculationRequest:
    sig: Sig
    days_supply: int
    drug_name: Optional[str] = None
    drug_id: Optional[str] = None


@dataclass
class CalculationResult:
    drug: CanonicalDrug
    resolution_method: str
    quantity: QuantityResult
    recommendation: Recommendation
    warnings: List[str]
    excluded: List[Dict[str, str]]
    explanations: List[str]
    execution_ms: int = 0
    alternatives: List[CanonicalDrug] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        match = self.recommendation.match
        precision = calculate_fill_precision(self.quantity.quantity, match.total_quantity)
        drug: Dict[str, Any] = {"id": self.drug.id, "name": self.drug.display_name}
        if self.drug.dosage_form:
            drug["dosageForm"] = self.drug.dosage_form
        if self.drug.strength:
            drug["strength"] = self.drug.strength

        metadata: Dict[str, Any] = {
            "usedAI": self.recommendation.used_ai,
            "algorithmicFallback": self.recommendation.algorithmic_fallback,
            "executionTimeMs": self.execution_ms,
            "resolutionMethod": self.resolution_method,
            "confidence": round(self.drug.confidence, 2),
        }
        if self.recommendation.usage is not None:
            metadata["aiUsage"] = self.recommendation.usage.to_dict()

        out: Dict[str, Any] = {
            "drug": drug,
            "totalQuantity": round(self.quantity.quantity, 2),
            "quantityUnit": self.quantity.unit,
            "dispensedQuantity": round(match.total_quantity, 2),
            "recommendedPackages": [
                {
                    "code": p.code,
                    "size": p.size_quantity,
                    "unit": p.size_unit,
                    "dosageForm": p.dosage_form,
                    "isActive": p.is_active,
                    "fillPrecision": precision,
                }
                for p in match.selected
            ],
            "overfillPercentage": round(match.overfill_pct, 2),
            "underfillPercentage": round(match.underfill_pct, 2),
            "warnings": self.warnings,
            "explanations": self.explanations,
            "metadata": metadata,
        }
        if self.excluded:
            out["excluded"] = self.excluded
        if self.recommendation.ai_insights:
            out["aiInsights"] = self.recommendation.ai_insights
        return out


def _sig_text(sig: Sig) -> str:
    return f"{sig.dose:g} {sig.unit} {sig.frequency:g} time(s) daily"


class CalculatorService:
    def __init__(
        self,
        resolver: NameResolver,
        catalog: PackageCatalog,
        recommender: ResilientRecommender,
        low_confidence_threshold: float = 0.8,
        allow_multi_pack: bool = True,
    ):
        self.resolver = resolver
        self.catalog = catalog
        self.recommender = recommender
        self.low_confidence_threshold = low_confidence_threshold
        self.allow_multi_pack = allow_multi_pack

    async def calculate(self, req: CalculationRequest) -> CalculationResult:
        t = Timer()
        has_name = bool((req.drug_name or "").strip())
        has_id = bool((req.drug_id or "").strip())
        if has_name == has_id:
            raise ValidationError("Provide exactly one of drug name or drug id", code="invalid_input")
        validate_sig(req.sig, req.days_supply)

        warnings: List[str] = []
        explanations: List[str] = []

        resolution = await self._resolve(req)
        drug = resolution.drug
        explanations.append(
            f"Resolved '{resolution.search_term}' to {drug.display_name} (RxCUI {drug.id}) "
            f"via {resolution.method} match, confidence {drug.confidence:.0%}."
        )
        if drug.confidence < self.low_confidence_threshold:
            warnings.append(f"Low confidence drug match ({drug.confidence:.0%}), verify drug")

        quantity = compute_quantity(req.sig, drug.strength, req.days_supply)
        warnings.extend(quantity.warnings)
        explanations.append(f"Quantity: {quantity.calculation}.")

        packages = await self.catalog.packages_for(drug.id)
        excluded = [{"code": p.code, "reason": p.marketing_status or "inactive"} for p in packages if not p.is_active]
        active = [p for p in packages if p.is_active]
        explanations.append(f"Catalog returned {len(packages)} package(s), {len(active)} active.")

        candidates = self._filter_family(active, quantity, drug, warnings)

        rec = await self.recommender.get_recommendation(
            RecommendationRequest(
                drug=drug,
                sig_text=_sig_text(req.sig),
                days_supply=req.days_supply,
                quantity_needed=quantity.quantity,
                unit=quantity.unit,
                candidates=candidates,
                allow_multi_pack=self.allow_multi_pack,
            )
        )
        match = rec.match
        warnings.extend(match.warnings)
        if match.explanation:
            explanations.append(match.explanation)

        if not match.selected:
            raise BusinessRuleError(
                "No viable package selection",
                code="no_viable_package",
                details={"rxcui": drug.id, "required": quantity.quantity, "warnings": match.warnings},
            )

        result = CalculationResult(
            drug=drug,
            resolution_method=resolution.method,
            quantity=quantity,
            recommendation=rec,
            warnings=warnings,
            excluded=excluded,
            explanations=explanations,
            execution_ms=t.ms(),
            alternatives=resolution.alternatives,
        )
        log.info(
            "calculation_completed",
            extra={
                "extra": {
                    "event": "calculation_completed",
                    "rxcui": drug.id,
                    "quantity": quantity.quantity,
                    "packages": match.package_count,
                    "source": rec.source,
                    "fallback": rec.algorithmic_fallback,
                    "warnings": len(warnings),
                    "ms": result.execution_ms,
                }
            },
        )
        return result

    async def _resolve(self, req: CalculationRequest) -> Resolution:
        if (req.drug_id or "").strip():
            return await self.resolver.resolve_by_id(req.drug_id)
        return await self.resolver.resolve(req.drug_name or "")

    @staticmethod
    def _filter_family(
        active: List[Package], quantity: QuantityResult, drug: CanonicalDrug, warnings: List[str]
    ) -> List[Package]:
        family = family_for_sig_unit(quantity.unit)
        if not family and quantity.unit == "UNIT":
            family = dosage_form_family(drug.dosage_form or "")
            family = family if family != "other" else ""
        if not family or not active:
            return active
        matching = filter_by_family(active, family)
        if matching:
            return matching
        warnings.append(f"No {family} packages found for this drug, considering all active packages")
        return active
