from __future__ import annotations

import hashlib

from models.schema import PREFIX_DRUG_NORM, PREFIX_NDC_LOOKUP, PREFIX_RXCUI_DETAILS


# Cache keys are caller-built strings ("drug:norm:lisinopril", "ndc:lookup:29046").
# Firestore document ids cannot contain "/" and are capped in length, so the
# stored id is sha256(key); the plain key is kept on the document for prefix queries.
def cache_doc_id(key: str) -> str:
    k = key or ""
    return hashlib.sha256(k.encode("utf-8")).hexdigest()


def drug_norm_key(normalized_name: str) -> str:
    return f"{PREFIX_DRUG_NORM}{(normalized_name or '').strip().lower()}"


def rxcui_details_key(rxcui: str) -> str:
    return f"{PREFIX_RXCUI_DETAILS}{(rxcui or '').strip()}"


def ndc_lookup_key(rxcui: str) -> str:
    return f"{PREFIX_NDC_LOOKUP}{(rxcui or '').strip()}"
