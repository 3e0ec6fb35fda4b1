from __future__ import annotations

from typing import List, Sequence, Tuple

from models.domain import MatchResult, Package
from utils.errors import ValidationError

OVERFILL_WARN_PCT = 10.0
GREEDY_SLACK = 1.2

WARN_NO_ACTIVE = "No active packages available"


def calculate_overfill(required: float, dispensed: float) -> float:
    if required <= 0 or dispensed <= required:
        return 0.0
    return (dispensed - required) * 100.0 / required


def calculate_underfill(required: float, dispensed: float) -> float:
    if required <= 0 or dispensed >= required:
        return 0.0
    return (required - dispensed) * 100.0 / required


def calculate_fill_precision(required: float, dispensed: float) -> str:
    if dispensed == required:
        return "exact"
    return "overfill" if dispensed > required else "underfill"


def _by_code(p: Package) -> str:
    return p.code


def _result(required: float, selected: List[Package], explanation: str) -> MatchResult:
    total = sum(p.size_quantity for p in selected)
    res = MatchResult(
        selected=selected,
        total_quantity=total,
        overfill_pct=calculate_overfill(required, total),
        underfill_pct=calculate_underfill(required, total),
        explanation=explanation,
    )
    if res.overfill_pct > OVERFILL_WARN_PCT:
        res.warnings.append(f"Overfill exceeds {OVERFILL_WARN_PCT:g}% ({res.overfill_pct:.1f}%)")
    return res


def _greedy(required: float, active: Sequence[Package]) -> Tuple[List[Package], float]:
    # largest first; equal sizes resolve to the smaller code
    ordered = sorted(active, key=lambda p: (-p.size_quantity, p.code))
    smallest = min(active, key=lambda p: (p.size_quantity, p.code))
    picked: List[Package] = []
    remaining = required
    while remaining > 0:
        fit = next((p for p in ordered if p.size_quantity <= GREEDY_SLACK * remaining), None)
        if fit is None:
            break
        picked.append(fit)
        remaining -= fit.size_quantity
    if remaining > 0:
        picked.append(smallest)
        remaining -= smallest.size_quantity
    return picked, remaining


def select_packages(
    required: float,
    candidates: Sequence[Package],
    *,
    allow_multi_pack: bool = False,
) -> MatchResult:
    """Pick the package(s) to dispense for `required` units.

    Order of preference: an exact size match, then the single package with the
    smallest overfill, then (only with allow_multi_pack) a greedy combination.
    Equal candidates resolve to the lexicographically smallest code so the same
    input always yields the same selection.
    """
    if required is None or required <= 0:
        raise ValidationError(
            "Required quantity must be greater than zero", code="invalid_quantity", details={"required": required}
        )

    active = [p for p in candidates if p.is_active and p.size_quantity > 0]
    if not active:
        return MatchResult(warnings=[WARN_NO_ACTIVE], explanation="No active packages to choose from.")

    exact = sorted((p for p in active if p.size_quantity == required), key=_by_code)
    if exact:
        pick = exact[0]
        return _result(required, [pick], f"Package {pick.code} holds exactly {pick.size_quantity:g} units.")

    covering = [p for p in active if p.size_quantity >= required]
    if covering:
        pick = min(covering, key=lambda p: (p.size_quantity - required, p.code))
        return _result(
            required,
            [pick],
            f"Package {pick.code} ({pick.size_quantity:g}) is the smallest package covering {required:g} units.",
        )

    largest = max(p.size_quantity for p in active)
    if not allow_multi_pack:
        return MatchResult(
            warnings=[
                f"No suitable package found: largest available package ({largest:g}) "
                f"is smaller than the required quantity ({required:g})"
            ],
            explanation="No single package covers the required quantity.",
        )

    picked, _ = _greedy(required, active)
    codes = ", ".join(p.code for p in picked)
    res = _result(required, picked, f"No single package covers {required:g} units; combined {len(picked)} packages: {codes}.")
    res.warnings.insert(0, f"Multiple packages required ({len(picked)} packages)")
    return res
