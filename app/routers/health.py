from __future__ import annotations

import os
import time
from typing import Any, Dict

from fastapi import APIRouter, Depends

from app.dependencies import Services, get_services

router = APIRouter()


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    rev = os.getenv("K_REVISION") or ""
    svc = os.getenv("K_SERVICE") or "rxfill-api"
    s = services.settings

    # Read-only, bounded-time probe of the cache backend.
    cache = await services.cache.probe()

    payload: Dict[str, Any] = {
        "ok": True,
        "service": "rxfill-api",
        "cloudrun_service": svc,
        "revision": rev,
        "environment": s.ENVIRONMENT,
        "cache_ok": bool(cache.get("ok", False)),
        "cache": cache,
        "cache_stats": services.cache.stats.to_dict(),
        "breaker": services.breaker.snapshot().to_dict(),
        "features": {
            "openai": bool(s.FEATURE_OPENAI),
            "openai_configured": services.recommender.ai_configured(),
            "multi_pack": bool(s.MULTI_PACK_ENABLED),
        },
        "time_unix": time.time(),
    }
    # Cache is fail-soft, so a bad probe degrades rather than fails liveness.
    if not payload["cache_ok"]:
        payload["status"] = "degraded"
    return payload
