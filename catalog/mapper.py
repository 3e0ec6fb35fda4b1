from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from matching.units import UNKNOWN, normalize_unit
from models.domain import Package
from ndc.normalizer import try_normalize_ndc

log = logging.getLogger("rxfill.catalog")

# "100 TABLET in 1 BOTTLE", "30 TABLET, FILM COATED in 1 BOTTLE", "2.5 mL in 1 VIAL"
_SIZE_IN_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+([A-Z]+)\b[^0-9]*?\s+IN\s+\d+", re.IGNORECASE)
# "100 TABLET", "1 KIT"
_SIZE_ONLY_RE = re.compile(r"^(\d+(?:\.\d+)?)\s+([A-Z]+)$", re.IGNORECASE)
_FIRST_NUMBER_RE = re.compile(r"(\d+(?:\.\d+)?)")
_WORD_RE = re.compile(r"\b([A-Z]+)\b", re.IGNORECASE)

STATUS_ACTIVE = "active"
STATUS_DISCONTINUED = "discontinued"
STATUS_UNKNOWN = "unknown"


def _unit(word: str) -> str:
    u = normalize_unit(word)
    return u if u != UNKNOWN else word.upper()


def _segment(text: str) -> Optional[Tuple[float, str]]:
    for pattern in (_SIZE_IN_RE, _SIZE_ONLY_RE):
        m = pattern.match(text.strip())
        if m:
            return float(m.group(1)), _unit(m.group(2))
    return None


def parse_package_size(description: str) -> Tuple[float, str]:
    text = (description or "").strip().upper()

    # "10 BLISTER PACK in 1 CARTON > 10 TABLET in 1 BLISTER PACK" -> 100 TABLET
    parts = [_segment(s) for s in text.split(">")]
    if parts and all(parts):
        qty = 1.0
        for n, _ in parts:
            qty *= n
        return qty, parts[-1][1]

    num = _FIRST_NUMBER_RE.search(text)
    words = _WORD_RE.findall(text)
    if num and words:
        return float(num.group(1)), _unit(words[-1])

    log.warning("package_size_unparsed", extra={"extra": {"description": description}})
    return 1.0, UNKNOWN


def parse_fda_date(raw: Optional[str]) -> Optional[date]:
    if not raw or len(raw) != 8:
        return None
    try:
        return datetime.strptime(raw, "%Y%m%d").date()
    except ValueError:
        return None


def parse_marketing_status(packaging: Dict[str, Any], today: Optional[date] = None) -> str:
    today = today or date.today()
    end = parse_fda_date(packaging.get("marketing_end_date"))
    if end is not None and end <= today:
        return STATUS_DISCONTINUED
    if packaging.get("marketing_start_date"):
        return STATUS_ACTIVE
    return STATUS_UNKNOWN


def map_result_to_packages(result: Dict[str, Any], today: Optional[date] = None) -> List[Package]:
    """One openFDA /drug/ndc product -> its packages. Unparseable NDCs are skipped."""
    dosage_form = (result.get("dosage_form") or "").upper().strip()
    labeler = result.get("labeler_name") or ""
    out: List[Package] = []
    for pkg in result.get("packaging") or []:
        raw_ndc = pkg.get("package_ndc") or ""
        code = try_normalize_ndc(raw_ndc)
        if not code:
            log.warning("package_ndc_invalid", extra={"extra": {"package_ndc": raw_ndc}})
            continue
        size, unit = parse_package_size(pkg.get("description") or "")
        status = parse_marketing_status(pkg, today)
        out.append(
            Package(
                code=code,
                size_quantity=size,
                size_unit=unit,
                dosage_form=dosage_form,
                is_active=status == STATUS_ACTIVE,
                marketing_status=status,
                labeler=labeler,
            )
        )
    return out


def map_results(results: List[Dict[str, Any]], today: Optional[date] = None) -> List[Package]:
    seen = set()
    out: List[Package] = []
    for r in results or []:
        for p in map_result_to_packages(r, today):
            if p.code in seen:
                continue
            seen.add(p.code)
            out.append(p)
    return out
