"""
Drug name -> canonical RxCUI resolution.

Strategies run in a fixed order (exact, approximate, spelling). Each returns a
StrategyOutcome instead of raising; the loop in NameResolver.resolve looks at
the outcome's status to decide whether to stop or move on.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from cache.store import CacheStore
from models.domain import CanonicalDrug
from ops.metrics import Timer
from rxnorm.client import RxNormClient
from rxnorm.mapper import (
    extract_candidates,
    extract_dosage_form,
    extract_rxcuis,
    extract_strength,
    extract_suggestions,
    confidence_from_score,
    map_properties,
    normalize_drug_name,
    sort_and_dedupe,
    validate_drug_name,
)
from utils.errors import AppError, ExternalServiceError, NotFoundError
from utils.ids import drug_norm_key, rxcui_details_key

log = logging.getLogger("rxfill.resolver")

MAX_ALTERNATIVES = 4
SPELLING_PENALTY = 0.9

OK = "ok"
NO_MATCH = "no_match"
FAILED = "failed"


@dataclass
class StrategyOutcome:
    status: str
    drug: Optional[CanonicalDrug] = None
    alternatives: List[CanonicalDrug] = field(default_factory=list)
    error: str = ""

    @classmethod
    def matched(cls, drug: CanonicalDrug, alternatives: Optional[List[CanonicalDrug]] = None) -> "StrategyOutcome":
        return cls(OK, drug, alternatives or [])

    @classmethod
    def none(cls) -> "StrategyOutcome":
        return cls(NO_MATCH)

    @classmethod
    def failed(cls, exc: Exception) -> "StrategyOutcome":
        return cls(FAILED, error=getattr(exc, "code", "") or type(exc).__name__)


@dataclass
class Resolution:
    drug: CanonicalDrug
    alternatives: List[CanonicalDrug]
    method: str
    search_term: str
    execution_ms: int = 0
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "drug": self.drug.to_dict(),
            "alternatives": [a.to_dict() for a in self.alternatives],
            "method": self.method,
            "search_term": self.search_term,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Resolution":
        return cls(
            drug=CanonicalDrug.from_dict(d["drug"]),
            alternatives=[CanonicalDrug.from_dict(a) for a in d.get("alternatives") or []],
            method=str(d.get("method") or ""),
            search_term=str(d.get("search_term") or ""),
        )


@dataclass
class BatchEntry:
    name: str
    resolution: Optional[Resolution] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.resolution is not None


def enrich(drug: CanonicalDrug, original_name: str) -> CanonicalDrug:
    """Fill dosage form / strength from the names; upstream values win."""
    dosage_form = drug.dosage_form or extract_dosage_form(drug.display_name) or extract_dosage_form(original_name)
    strength = drug.strength or extract_strength(drug.display_name) or extract_strength(original_name)
    if dosage_form == drug.dosage_form and strength == drug.strength:
        return drug
    return replace(drug, dosage_form=dosage_form, strength=strength)


class NameResolver:
    def __init__(
        self,
        client: RxNormClient,
        cache: Optional[CacheStore] = None,
        min_confidence: float = 0.7,
        cache_ttl_s: Optional[float] = None,
    ):
        self.client = client
        self.cache = cache
        self.min_confidence = min_confidence
        self.cache_ttl_s = cache_ttl_s

    async def resolve(self, name: str) -> Resolution:
        search_term = validate_drug_name(name)
        t = Timer()
        key = drug_norm_key(normalize_drug_name(search_term))

        if self.cache is not None:
            hit, found = await self.cache.get(key)
            if found:
                try:
                    res = Resolution.from_dict(hit)
                except (KeyError, TypeError, ValueError):
                    await self.cache.invalidate(key)
                else:
                    res.cached = True
                    res.execution_ms = t.ms()
                    return res

        strategies = (
            ("exact", self._exact),
            ("approximate", self._approximate),
            ("spelling", self._spelling),
        )
        for method, strategy in strategies:
            outcome = await strategy(search_term)
            if outcome.status == FAILED:
                log.warning(
                    "strategy_failed",
                    extra={"extra": {"event": "strategy_failed", "strategy": method, "term": search_term, "error": outcome.error}},
                )
                continue
            if outcome.status == NO_MATCH:
                continue

            res = Resolution(
                drug=outcome.drug,
                alternatives=outcome.alternatives,
                method=method,
                search_term=search_term,
                execution_ms=t.ms(),
            )
            log.info(
                "drug_resolved",
                extra={
                    "extra": {
                        "event": "drug_resolved",
                        "term": search_term,
                        "rxcui": res.drug.id,
                        "method": method,
                        "confidence": res.drug.confidence,
                        "alternatives": len(res.alternatives),
                        "ms": res.execution_ms,
                    }
                },
            )
            if self.cache is not None:
                await self.cache.set(key, res.to_dict(), self.cache_ttl_s)
            return res

        log.warning("drug_not_found", extra={"extra": {"event": "drug_not_found", "term": search_term, "ms": t.ms()}})
        raise NotFoundError(f"Drug not found: {search_term}", code="drug_not_found", details={"name": search_term})

    async def resolve_by_id(self, rxcui: str) -> Resolution:
        rxcui = (rxcui or "").strip()
        t = Timer()
        key = rxcui_details_key(rxcui)
        if rxcui and self.cache is not None:
            hit, found = await self.cache.get(key)
            if found:
                try:
                    drug = CanonicalDrug.from_dict(hit)
                except (KeyError, TypeError, ValueError):
                    await self.cache.invalidate(key)
                else:
                    return Resolution(drug=drug, alternatives=[], method="id", search_term=rxcui, execution_ms=t.ms(), cached=True)

        drug = map_properties(await self.client.get_properties(rxcui), 1.0) if rxcui else None
        if drug is None:
            raise NotFoundError(f"Drug not found: {rxcui}", code="drug_not_found", details={"id": rxcui})
        drug = enrich(drug, drug.display_name)
        if self.cache is not None:
            await self.cache.set(key, drug.to_dict(), self.cache_ttl_s)
        return Resolution(drug=drug, alternatives=[], method="id", search_term=rxcui, execution_ms=t.ms())

    async def resolve_all(self, names: Sequence[str]) -> List[BatchEntry]:
        async def one(n: str) -> BatchEntry:
            try:
                return BatchEntry(name=n, resolution=await self.resolve(n))
            except AppError as e:
                return BatchEntry(name=n, error=e)

        return list(await asyncio.gather(*(one(n) for n in names)))

    async def _exact(self, term: str) -> StrategyOutcome:
        try:
            rxcuis = extract_rxcuis(await self.client.search_by_name(term))
            if not rxcuis:
                return StrategyOutcome.none()
            drug = map_properties(await self.client.get_properties(rxcuis[0]), 1.0)
        except ExternalServiceError as e:
            return StrategyOutcome.failed(e)
        if drug is None:
            return StrategyOutcome.none()
        return StrategyOutcome.matched(enrich(drug, term))

    async def _approximate(self, term: str) -> StrategyOutcome:
        try:
            candidates = extract_candidates(await self.client.approximate_term(term))
        except ExternalServiceError as e:
            return StrategyOutcome.failed(e)

        drugs: List[CanonicalDrug] = []
        for c in candidates:
            confidence = confidence_from_score(c.score, c.rank)
            if confidence < self.min_confidence:
                continue
            try:
                drug = map_properties(await self.client.get_properties(c.rxcui), confidence)
            except ExternalServiceError as e:
                log.warning(
                    "candidate_properties_failed",
                    extra={"extra": {"event": "candidate_properties_failed", "rxcui": c.rxcui, "error": e.code}},
                )
                continue
            if drug is not None:
                drugs.append(enrich(drug, term))

        ranked = sort_and_dedupe(drugs, self.min_confidence)
        if not ranked:
            return StrategyOutcome.none()
        return StrategyOutcome.matched(ranked[0], ranked[1 : 1 + MAX_ALTERNATIVES])

    async def _spelling(self, term: str) -> StrategyOutcome:
        try:
            suggestions = extract_suggestions(await self.client.spelling_suggestions(term))
        except ExternalServiceError as e:
            return StrategyOutcome.failed(e)

        for suggestion in suggestions:
            outcome = await self._exact(suggestion)
            if outcome.status == OK:
                drug = outcome.drug.with_confidence(outcome.drug.confidence * SPELLING_PENALTY)
                return StrategyOutcome.matched(drug)
        return StrategyOutcome.none()
