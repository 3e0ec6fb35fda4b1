"""
RxNav payload -> domain mapping.

RxNav returns either a single object or a list wherever a list is possible
(`rxnormId`, `candidate`, `suggestion`); every extractor here accepts both.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from models.domain import CanonicalDrug, term_type_from_tty
from utils.errors import ValidationError

log = logging.getLogger("rxfill.rxnorm")

DOSAGE_FORMS = (
    "TABLET",
    "CAPSULE",
    "SOLUTION",
    "SUSPENSION",
    "SYRUP",
    "INJECTION",
    "CREAM",
    "OINTMENT",
    "GEL",
    "LOTION",
    "PATCH",
    "SPRAY",
    "INHALER",
    "SUPPOSITORY",
    "POWDER",
)

# "250 MG/5 ML" and "2.5MG/ML" first, then plain "10 MG" / "0.1%" / "100 UNIT"
_STRENGTH_PATTERNS = (
    re.compile(r"\d+(?:\.\d+)?\s*(?:MG|MCG|G)\s*/\s*(?:\d+(?:\.\d+)?\s*)?(?:ML|L)\b", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*(?:MG|MCG|G|ML|L)\b|\d+(?:\.\d+)?\s*%", re.IGNORECASE),
    re.compile(r"\d+(?:\.\d+)?\s*UNITS?\b", re.IGNORECASE),
)

NAME_MIN_LEN = 2
NAME_MAX_LEN = 200
_VALID_NAME_RE = re.compile(r"^[a-zA-Z0-9\s\-()/.%]+$")


@dataclass(frozen=True)
class ApproxCandidate:
    rxcui: str
    score: str
    rank: str


def _as_list(v: Any) -> List[Any]:
    if v is None:
        return []
    if isinstance(v, list):
        return v
    return [v]


def extract_rxcuis(payload: Dict[str, Any]) -> List[str]:
    group = (payload or {}).get("idGroup") or {}
    return [str(x) for x in _as_list(group.get("rxnormId")) if x]


def extract_candidates(payload: Dict[str, Any]) -> List[ApproxCandidate]:
    group = (payload or {}).get("approximateGroup") or {}
    out: List[ApproxCandidate] = []
    for c in _as_list(group.get("candidate")):
        if not isinstance(c, dict) or not c.get("rxcui"):
            continue
        out.append(ApproxCandidate(rxcui=str(c["rxcui"]), score=str(c.get("score", "")), rank=str(c.get("rank", ""))))
    return out


def extract_suggestions(payload: Dict[str, Any]) -> List[str]:
    group = (payload or {}).get("suggestionGroup") or {}
    lst = group.get("suggestionList") or {}
    return [str(s) for s in _as_list(lst.get("suggestion")) if s]


def map_properties(payload: Dict[str, Any], confidence: float = 1.0) -> Optional[CanonicalDrug]:
    props = (payload or {}).get("properties")
    if not isinstance(props, dict) or not props.get("rxcui"):
        return None
    synonym = (props.get("synonym") or "").strip()
    return CanonicalDrug(
        id=str(props["rxcui"]),
        display_name=str(props.get("name") or ""),
        # RxNav omits tty on some legacy concepts; those are clinical drugs
        term_type=term_type_from_tty(props.get("tty") or "SCD"),
        confidence=min(max(confidence, 0.0), 1.0),
        synonyms=frozenset([synonym]) if synonym else frozenset(),
    )


def confidence_from_score(score: Any, rank: Any) -> float:
    """clamp(score/100) scaled by 1/rank; rank 1 keeps the full score."""
    try:
        s = float(score)
        r = float(rank)
    except (TypeError, ValueError):
        log.warning("confidence_parse_failed", extra={"extra": {"score": score, "rank": rank}})
        return 0.5
    if s != s or r != r:  # NaN
        return 0.5
    normalized = min(max(s / 100.0, 0.0), 1.0)
    rank_factor = min(1.0 / max(r, 1.0), 1.0)
    return min(max(normalized * rank_factor, 0.0), 1.0)


def extract_dosage_form(name: str) -> Optional[str]:
    upper = (name or "").upper()
    for form in DOSAGE_FORMS:
        if form in upper:
            return form
    return None


def extract_strength(name: str) -> Optional[str]:
    for pattern in _STRENGTH_PATTERNS:
        m = pattern.search(name or "")
        if m:
            return m.group(0).strip()
    return None


def normalize_drug_name(name: str) -> str:
    cleaned = re.sub(r"[^A-Z0-9\s]", "", (name or "").upper().strip())
    return re.sub(r"\s+", " ", cleaned).strip()


def validate_drug_name(name: str) -> str:
    trimmed = (name or "").strip()
    if len(trimmed) < NAME_MIN_LEN:
        raise ValidationError("Drug name too short", code="invalid_drug_name", details={"name": name})
    if len(trimmed) > NAME_MAX_LEN:
        raise ValidationError("Drug name too long", code="invalid_drug_name", details={"length": len(trimmed)})
    if not _VALID_NAME_RE.match(trimmed):
        raise ValidationError("Invalid characters in drug name", code="invalid_drug_name", details={"name": name})
    return trimmed


def sort_and_dedupe(drugs: Iterable[CanonicalDrug], min_confidence: float) -> List[CanonicalDrug]:
    kept = [d for d in drugs if d.confidence >= min_confidence]
    # stable sort: equal confidence keeps upstream rank order
    kept.sort(key=lambda d: d.confidence, reverse=True)
    seen = set()
    unique: List[CanonicalDrug] = []
    for d in kept:
        if d.id in seen:
            continue
        seen.add(d.id)
        unique.append(d)
    return unique
