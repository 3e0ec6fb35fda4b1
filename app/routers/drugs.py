from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from app.dependencies import Services, get_services
from rxnorm.resolver import Resolution

router = APIRouter()


class ResolveBatchBody(BaseModel):
    names: List[str] = Field(..., min_length=1, max_length=50)


def _resolution_out(res: Resolution) -> Dict[str, Any]:
    return {
        "drug": res.drug.to_dict(),
        "alternatives": [a.to_dict() for a in res.alternatives],
        "method": res.method,
        "searchTerm": res.search_term,
        "cached": res.cached,
        "executionTimeMs": res.execution_ms,
    }


@router.get("/drugs/resolve")
async def resolve_drug(name: str = Query(..., min_length=1, max_length=200), services: Services = Depends(get_services)):
    res = await services.resolver.resolve(name)
    return _resolution_out(res)


@router.post("/drugs/resolve-batch")
async def resolve_batch(body: ResolveBatchBody, services: Services = Depends(get_services)):
    entries = await services.resolver.resolve_all(body.names)
    results: List[Dict[str, Any]] = []
    for e in entries:
        if e.ok:
            results.append({"name": e.name, "success": True, **_resolution_out(e.resolution)})
        else:
            results.append({"name": e.name, "success": False, **e.error.to_dict()})
    return {
        "results": results,
        "succeeded": sum(1 for e in entries if e.ok),
        "failed": sum(1 for e in entries if not e.ok),
    }
