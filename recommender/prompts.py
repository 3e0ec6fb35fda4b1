from __future__ import annotations

import json
from typing import Any, Dict, List

from recommender.types import RecommendationRequest

SYSTEM_PROMPT = """You are a pharmacy assistant that selects NDC packages for dispensing a prescription.

Goals, in order: dispense at least the quantity needed, minimise waste, prefer fewer containers.
Only recommend NDCs from the list of available packages you are given. Never invent an NDC.

Respond with a single JSON object of exactly this shape:
{
  "primaryRecommendation": {"ndc": str, "packageSize": number, "unit": str,
                            "quantityToDispense": number, "reasoning": str, "confidenceScore": number 0-1},
  "alternatives": [same shape as primaryRecommendation],
  "reasoning": {"factors": [str], "considerations": [str], "rationale": str},
  "costEfficiency": {"estimatedWaste": number 0-100, "rating": "low" | "medium" | "high"}
}"""

_EXAMPLE_REQUEST = {
    "drug": {"name": "LISINOPRIL 10 MG ORAL TABLET", "rxcui": "314076", "dosageForm": "TABLET", "strength": "10 MG"},
    "prescription": {"sig": "1 TABLET 1 time(s) daily", "daysSupply": 90, "quantityNeeded": 90, "unit": "TABLET"},
    "availablePackages": [
        {"ndc": "00071-0156-23", "packageSize": 100, "unit": "TABLET", "labeler": "Example Labs"},
        {"ndc": "00071-0156-30", "packageSize": 30, "unit": "TABLET", "labeler": "Example Labs"},
        {"ndc": "00071-0156-90", "packageSize": 90, "unit": "TABLET", "labeler": "Example Labs"},
    ],
}

_EXAMPLE_RESPONSE = {
    "primaryRecommendation": {
        "ndc": "00071-0156-90",
        "packageSize": 90,
        "unit": "TABLET",
        "quantityToDispense": 90,
        "reasoning": "The 90-count bottle matches the 90-day requirement exactly in one container.",
        "confidenceScore": 0.98,
    },
    "alternatives": [
        {
            "ndc": "00071-0156-23",
            "packageSize": 100,
            "unit": "TABLET",
            "quantityToDispense": 100,
            "reasoning": "One container with 10 extra tablets (11% overfill).",
            "confidenceScore": 0.85,
        }
    ],
    "reasoning": {
        "factors": ["Exact match with the 90 tablets needed", "Single container"],
        "considerations": ["Confirm stock with the distributor"],
        "rationale": "Exact match with zero waste in a single container.",
    },
    "costEfficiency": {"estimatedWaste": 0, "rating": "high"},
}


def build_user_prompt(req: RecommendationRequest) -> str:
    payload = {
        "drug": {
            "name": req.drug.display_name,
            "rxcui": req.drug.id,
            "dosageForm": req.drug.dosage_form,
            "strength": req.drug.strength,
        },
        "prescription": {
            "sig": req.sig_text,
            "daysSupply": req.days_supply,
            "quantityNeeded": req.quantity_needed,
            "unit": req.unit,
        },
        "availablePackages": [
            {"ndc": p.code, "packageSize": p.size_quantity, "unit": p.size_unit, "labeler": p.labeler}
            for p in req.candidates
            if p.is_active and p.size_quantity > 0
        ],
    }
    return json.dumps(payload)


def build_messages(req: RecommendationRequest) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": json.dumps(_EXAMPLE_REQUEST)},
        {"role": "assistant", "content": json.dumps(_EXAMPLE_RESPONSE)},
        {"role": "user", "content": build_user_prompt(req)},
    ]
