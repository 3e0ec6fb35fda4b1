from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from matching.units import (
    convert_unit,
    format_quantity_with_unit,
    is_mass_unit,
    is_reasonable_quantity,
    is_solid_unit,
    is_volume_unit,
    normalize_unit,
    parse_strength,
)
from models.domain import Sig
from utils.errors import ValidationError

MAX_DAYS_SUPPLY = 365

WARN_STRENGTH_UNAVAILABLE = "Strength unavailable, computed volume only"
WARN_UNIT_MISMATCH = "Unit mismatch, verify with prescriber"
WARN_FRACTIONAL_DOSE = "Dose requires a fractional unit per administration and may be impractical"
WARN_UNREASONABLE = "Calculated quantity is outside the usual range, verify the prescription"


@dataclass
class QuantityResult:
    quantity: float
    unit: str
    method: str
    calculation: str
    warnings: List[str] = field(default_factory=list)


def _whole(x: float) -> int:
    # 0.1 * 3 * 10 lands on 3.0000000000000004; strip float noise before ceil
    return int(math.ceil(round(x, 6)))


def validate_sig(sig: Sig, days_supply: int) -> None:
    if sig.dose is None or sig.dose <= 0:
        raise ValidationError("Dose must be greater than zero", code="invalid_sig", details={"dose": sig.dose})
    if sig.frequency is None or sig.frequency <= 0:
        raise ValidationError(
            "Frequency must be greater than zero", code="invalid_sig", details={"frequency": sig.frequency}
        )
    if days_supply is None or days_supply < 1 or days_supply > MAX_DAYS_SUPPLY:
        raise ValidationError(
            f"Days supply must be between 1 and {MAX_DAYS_SUPPLY}",
            code="invalid_days_supply",
            details={"days_supply": days_supply},
        )


def compute_quantity(sig: Sig, strength: Optional[str], days_supply: int) -> QuantityResult:
    """Total quantity to dispense for `days_supply` days of `sig`.

    Raises ValidationError for non-positive dose/frequency or an out-of-range
    days supply. Any unit/strength combination it cannot reason about falls
    back to dose x frequency x days with a mismatch warning.
    """
    validate_sig(sig, days_supply)

    unit = normalize_unit(sig.unit)
    per_day = sig.dose * sig.frequency
    direct = per_day * days_supply
    calc = f"{sig.dose} x {sig.frequency}/day x {days_supply} days"

    if is_solid_unit(unit):
        qty = float(_whole(direct))
        res = QuantityResult(qty, unit, "direct", f"{calc} = {format_quantity_with_unit(qty, unit)}")
    elif is_volume_unit(unit):
        ml = round(convert_unit(direct, unit, "ML"), 6)
        res = QuantityResult(ml, "ML", "volume", f"{calc} = {format_quantity_with_unit(ml, 'ML')}")
        if parse_strength(strength) is None:
            res.warnings.append(WARN_STRENGTH_UNAVAILABLE)
    elif is_mass_unit(unit):
        res = _from_mass(sig, unit, strength, days_supply, calc)
    else:
        res = None

    if res is None:
        res = QuantityResult(round(direct, 6), unit if unit != "UNKNOWN" else (sig.unit or "").upper(), "direct", calc)
        res.warnings.append(WARN_UNIT_MISMATCH)

    if not is_reasonable_quantity(res.quantity, res.unit):
        res.warnings.append(WARN_UNREASONABLE)
    return res


def _from_mass(sig: Sig, unit: str, strength: Optional[str], days_supply: int, calc: str) -> Optional[QuantityResult]:
    parsed = parse_strength(strength)
    if parsed is None:
        return None

    dose_mg = convert_unit(sig.dose, unit, "MG")
    if parsed.is_concentration:
        # mg / (mg/mL) -> mL per dose
        ml_per_dose = dose_mg / (parsed.amount_mg / parsed.per_amount)
        ml = round(ml_per_dose * sig.frequency * days_supply, 6)
        return QuantityResult(
            ml,
            "ML",
            "concentration",
            f"{dose_mg:g} MG / {parsed.amount_mg:g} MG per {parsed.per_amount:g} ML x {sig.frequency}/day x {days_supply} days = {ml:g} ML",
        )

    units_per_dose = round(dose_mg / parsed.mg_per_unit, 6)
    total = _whole(units_per_dose * sig.frequency * days_supply)
    res = QuantityResult(
        float(total),
        "UNIT",
        "strength",
        f"{dose_mg:g} MG / {parsed.mg_per_unit:g} MG per unit = {units_per_dose:g} per dose; "
        f"x {sig.frequency}/day x {days_supply} days = {total}",
    )
    if not float(units_per_dose).is_integer():
        res.warnings.append(WARN_FRACTIONAL_DOSE)
    return res
