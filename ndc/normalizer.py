from __future__ import annotations

import re

from utils.errors import ValidationError

CANONICAL_NDC_RE = re.compile(r"^\d{5}-\d{4}-\d{2}$")
_ACCEPTED_INPUT_RE = re.compile(r"^[\d\-\s]+$")


def ndc_digits(ndc: str) -> str:
    """Digits-only 11-digit form, or "" when the input is not a 10/11-digit NDC.

    10-digit inputs get a leading zero on the labeler group, which is where the
    missing digit sits in the common 4-4-2 layout.
    """
    raw = (ndc or "").strip()
    if not raw or not _ACCEPTED_INPUT_RE.match(raw):
        return ""
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10:
        return "0" + digits
    if len(digits) == 11:
        return digits
    return ""


def normalize_ndc(ndc: str) -> str:
    """Canonical NNNNN-NNNN-NN form. Idempotent on its own output."""
    raw = (ndc or "").strip()
    if CANONICAL_NDC_RE.match(raw):
        return raw
    digits = ndc_digits(raw)
    if not digits:
        raise ValidationError("Invalid NDC: expected 10 or 11 digits", code="invalid_ndc", details={"ndc": ndc})
    return f"{digits[:5]}-{digits[5:9]}-{digits[9:]}"


def try_normalize_ndc(ndc: str) -> str:
    try:
        return normalize_ndc(ndc)
    except ValidationError:
        return ""


def is_canonical_ndc(code: str) -> bool:
    return bool(CANONICAL_NDC_RE.match(code or ""))
