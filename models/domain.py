from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from ndc.normalizer import is_canonical_ndc
from utils.errors import ValidationError


class TermType(str, Enum):
    INGREDIENT = "INGREDIENT"
    CLINICAL_DRUG = "CLINICAL_DRUG"
    BRANDED_DRUG = "BRANDED_DRUG"
    PACK = "PACK"
    OTHER = "OTHER"


# RxNorm TTY codes -> coarse term type
_TTY_MAP = {
    "IN": TermType.INGREDIENT,
    "PIN": TermType.INGREDIENT,
    "MIN": TermType.INGREDIENT,
    "SCD": TermType.CLINICAL_DRUG,
    "SCDC": TermType.CLINICAL_DRUG,
    "SCDF": TermType.CLINICAL_DRUG,
    "SCDG": TermType.CLINICAL_DRUG,
    "SBD": TermType.BRANDED_DRUG,
    "SBDC": TermType.BRANDED_DRUG,
    "SBDF": TermType.BRANDED_DRUG,
    "SBDG": TermType.BRANDED_DRUG,
    "BN": TermType.BRANDED_DRUG,
    "GPCK": TermType.PACK,
    "BPCK": TermType.PACK,
}


def term_type_from_tty(tty: Optional[str]) -> TermType:
    return _TTY_MAP.get((tty or "").strip().upper(), TermType.OTHER)


@dataclass(frozen=True)
class CanonicalDrug:
    id: str
    display_name: str
    term_type: TermType
    confidence: float
    dosage_form: Optional[str] = None
    strength: Optional[str] = None
    synonyms: FrozenSet[str] = field(default_factory=frozenset)

    def with_confidence(self, confidence: float) -> "CanonicalDrug":
        return replace(self, confidence=min(max(confidence, 0.0), 1.0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "display_name": self.display_name,
            "term_type": self.term_type.value,
            "confidence": self.confidence,
            "dosage_form": self.dosage_form,
            "strength": self.strength,
            "synonyms": sorted(self.synonyms),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CanonicalDrug":
        return cls(
            id=str(d["id"]),
            display_name=str(d.get("display_name") or ""),
            term_type=TermType(d.get("term_type") or TermType.OTHER.value),
            confidence=float(d.get("confidence", 0.0)),
            dosage_form=d.get("dosage_form"),
            strength=d.get("strength"),
            synonyms=frozenset(d.get("synonyms") or []),
        )


@dataclass(frozen=True)
class Package:
    code: str
    size_quantity: float
    size_unit: str
    dosage_form: str
    is_active: bool
    marketing_status: str
    labeler: str = ""

    def __post_init__(self) -> None:
        if not is_canonical_ndc(self.code):
            raise ValidationError("Package code is not a canonical NDC", code="invalid_ndc", details={"ndc": self.code})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "size_quantity": self.size_quantity,
            "size_unit": self.size_unit,
            "dosage_form": self.dosage_form,
            "is_active": self.is_active,
            "marketing_status": self.marketing_status,
            "labeler": self.labeler,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Package":
        return cls(
            code=str(d["code"]),
            size_quantity=float(d["size_quantity"]),
            size_unit=str(d.get("size_unit") or ""),
            dosage_form=str(d.get("dosage_form") or ""),
            is_active=bool(d.get("is_active", False)),
            marketing_status=str(d.get("marketing_status") or "unknown"),
            labeler=str(d.get("labeler") or ""),
        )


@dataclass
class MatchResult:
    selected: List[Package] = field(default_factory=list)
    total_quantity: float = 0.0
    overfill_pct: float = 0.0
    underfill_pct: float = 0.0
    warnings: List[str] = field(default_factory=list)
    explanation: str = ""

    @property
    def package_count(self) -> int:
        return len(self.selected)


@dataclass(frozen=True)
class Sig:
    dose: float
    frequency: float
    unit: str


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def to_doc(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "value": self.value,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
            "ttl": self.ttl,
        }

    @classmethod
    def from_doc(cls, d: Dict[str, Any]) -> "CacheEntry":
        return cls(
            key=str(d["key"]),
            value=d.get("value"),
            created_at=float(d["created_at"]),
            expires_at=float(d["expires_at"]),
            ttl=float(d.get("ttl") or 0.0),
        )


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerState:
    state: BreakerState
    consecutive_failures: int
    last_failure_at: Optional[float] = None
    next_retry_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "last_failure_at": self.last_failure_at,
            "next_retry_at": self.next_retry_at,
        }
