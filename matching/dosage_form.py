from __future__ import annotations

from typing import List, Sequence

from matching.units import unit_category
from models.domain import Package

# substring -> family; first hit wins, so order matters ("powder for suspension" is liquid)
_FORM_FAMILIES = (
    ("suspension", "liquid"),
    ("solution", "liquid"),
    ("syrup", "liquid"),
    ("elixir", "liquid"),
    ("emulsion", "liquid"),
    ("drops", "liquid"),
    ("liquid", "liquid"),
    ("tablet", "solid"),
    ("capsule", "solid"),
    ("caplet", "solid"),
    ("chewable", "solid"),
    ("lozenge", "solid"),
    ("pill", "solid"),
    ("granule", "solid"),
    ("powder", "solid"),
)


def dosage_form_family(form: str) -> str:
    f = (form or "").lower().strip()
    if not f:
        return "other"
    for key, family in _FORM_FAMILIES:
        if key in f:
            return family
    return "other"


def family_for_sig_unit(unit: str) -> str:
    category = unit_category(unit)
    if category == "solid":
        return "solid"
    if category == "liquid":
        return "liquid"
    return ""


def filter_by_family(packages: Sequence[Package], family: str) -> List[Package]:
    return [p for p in packages if dosage_form_family(p.dosage_form) == family]
