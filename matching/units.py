"""
Unit handling for dispensing math.

Pure functions only: unit alias normalisation, unit categories, conversions
between compatible units, and parsing of label strengths such as "10 MG",
"250 MG/5 ML" or "2.5 MG/ML".
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional

UNKNOWN = "UNKNOWN"

_UNIT_ALIASES: Dict[str, str] = {
    "TABLET": "TABLET",
    "TABLETS": "TABLET",
    "TAB": "TABLET",
    "TABS": "TABLET",
    "CAPSULE": "CAPSULE",
    "CAPSULES": "CAPSULE",
    "CAP": "CAPSULE",
    "CAPS": "CAPSULE",
    "ML": "ML",
    "MLS": "ML",
    "MILLILITER": "ML",
    "MILLILITERS": "ML",
    "L": "L",
    "LITER": "L",
    "LITERS": "L",
    "MG": "MG",
    "MILLIGRAM": "MG",
    "MILLIGRAMS": "MG",
    "GM": "GM",
    "G": "GM",
    "GRAM": "GM",
    "GRAMS": "GM",
    "MCG": "MCG",
    "UG": "MCG",
    "MICROGRAM": "MCG",
    "MICROGRAMS": "MCG",
    "UNIT": "UNIT",
    "UNITS": "UNIT",
    "PUFF": "PUFF",
    "PUFFS": "PUFF",
    "ACTUATION": "PUFF",
    "ACTUATIONS": "PUFF",
    "PATCH": "PATCH",
    "PATCHES": "PATCH",
    "SUPPOSITORY": "SUPPOSITORY",
    "SUPPOSITORIES": "SUPPOSITORY",
    "SUPP": "SUPPOSITORY",
}

_CATEGORIES: Dict[str, str] = {
    "TABLET": "solid",
    "CAPSULE": "solid",
    "ML": "liquid",
    "L": "liquid",
    "MG": "weight",
    "GM": "weight",
    "MCG": "weight",
    "UNIT": "special",
    "PUFF": "special",
    "PATCH": "special",
    "SUPPOSITORY": "special",
}

# factor to the base unit of each family (ML for volume, MG for mass)
_TO_BASE: Dict[str, float] = {
    "ML": 1.0,
    "L": 1000.0,
    "MG": 1.0,
    "GM": 1000.0,
    "MCG": 0.001,
}

_COMPATIBLE = {
    "TABLET": {"TABLET", "CAPSULE"},
    "CAPSULE": {"TABLET", "CAPSULE"},
    "ML": {"ML", "L"},
    "L": {"ML", "L"},
    "MG": {"MG", "GM", "MCG"},
    "GM": {"MG", "GM", "MCG"},
    "MCG": {"MG", "GM", "MCG"},
}

_IRREGULAR_PLURALS = {"SUPPOSITORY": "SUPPOSITORIES", "PATCH": "PATCHES", "PUFF": "PUFFS"}


def normalize_unit(unit: Optional[str]) -> str:
    u = (unit or "").strip().upper().rstrip(".")
    return _UNIT_ALIASES.get(u, UNKNOWN)


def unit_category(unit: Optional[str]) -> str:
    return _CATEGORIES.get(normalize_unit(unit), "unknown")


def is_solid_unit(unit: Optional[str]) -> bool:
    return unit_category(unit) == "solid"


def is_volume_unit(unit: Optional[str]) -> bool:
    return unit_category(unit) == "liquid"


def is_mass_unit(unit: Optional[str]) -> bool:
    return unit_category(unit) == "weight"


def are_units_compatible(from_unit: str, to_unit: str) -> bool:
    a, b = normalize_unit(from_unit), normalize_unit(to_unit)
    if a == UNKNOWN or b == UNKNOWN:
        return False
    if a == b:
        return True
    return b in _COMPATIBLE.get(a, set())


def convert_unit(quantity: float, from_unit: str, to_unit: str) -> float:
    if quantity < 0:
        raise ValueError("Quantity must be non-negative")
    a, b = normalize_unit(from_unit), normalize_unit(to_unit)
    if not are_units_compatible(a, b):
        raise ValueError(f"Cannot convert from {from_unit} to {to_unit}: incompatible units")
    if a == b or (a in ("TABLET", "CAPSULE") and b in ("TABLET", "CAPSULE")):
        return quantity
    return quantity * _TO_BASE[a] / _TO_BASE[b]


def is_reasonable_quantity(quantity: float, unit: str) -> bool:
    if quantity <= 0:
        return False
    u = normalize_unit(unit)
    category = unit_category(u)
    if category == "solid":
        return 1 <= quantity <= 1000
    if category == "liquid":
        if u == "L":
            return 0.001 <= quantity <= 10
        return 1 <= quantity <= 10000
    if category == "weight":
        return 0.001 <= quantity <= 100000
    if category == "special":
        if u == "PUFF":
            return 1 <= quantity <= 500
        if u == "UNIT":
            return 1 <= quantity <= 10000
        if u == "PATCH":
            return 1 <= quantity <= 100
        return 1 <= quantity <= 500
    return True


def format_quantity_with_unit(quantity: float, unit: str) -> str:
    u = normalize_unit(unit)
    if u == UNKNOWN:
        u = (unit or "").strip().upper()
    q = int(quantity) if float(quantity).is_integer() else quantity
    if q == 1:
        return f"{q} {u}"
    if u in _IRREGULAR_PLURALS:
        return f"{q} {_IRREGULAR_PLURALS[u]}"
    if u in ("TABLET", "CAPSULE"):
        return f"{q} {u}S"
    return f"{q} {u}"


_STRENGTH_RE = re.compile(
    r"(?P<amount>\d+(?:\.\d+)?)\s*(?P<unit>MCG|MG|GM|G)\b"
    r"(?:\s*/\s*(?P<per_amount>\d+(?:\.\d+)?)?\s*(?P<per_unit>ML|L|TABLET|TAB|CAPSULE|CAP)\b)?",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Strength:
    """Parsed label strength, in base units (MG per unit, or MG per ML)."""

    amount_mg: float
    per_amount: float
    per_unit: str  # "UNIT" for mass-per-dosage-unit, "ML" for concentrations

    @property
    def is_concentration(self) -> bool:
        return self.per_unit == "ML"

    @property
    def mg_per_unit(self) -> float:
        return self.amount_mg / self.per_amount


def parse_strength(strength: Optional[str]) -> Optional[Strength]:
    """Parse "10 MG", "10 MG/1 TABLET", "250 MG/5 ML" or "2.5 MG/ML".

    Returns None for anything else (percentages or multi-ingredient text).
    """
    if not strength:
        return None
    m = _STRENGTH_RE.search(strength)
    if not m:
        return None
    amount_mg = convert_unit(float(m.group("amount")), m.group("unit"), "MG")
    if amount_mg <= 0:
        return None
    per_unit_raw = m.group("per_unit")
    per_amount = float(m.group("per_amount") or 1)
    if per_amount <= 0:
        return None
    if not per_unit_raw:
        return Strength(amount_mg=amount_mg, per_amount=1.0, per_unit="UNIT")
    per_norm = normalize_unit(per_unit_raw)
    if per_norm in ("ML", "L"):
        return Strength(amount_mg=amount_mg, per_amount=convert_unit(per_amount, per_norm, "ML"), per_unit="ML")
    return Strength(amount_mg=amount_mg, per_amount=per_amount, per_unit="UNIT")
