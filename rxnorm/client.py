from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from utils.errors import ExternalServiceError
from utils.http import get_with_retry, json_or_empty

log = logging.getLogger("rxfill.rxnorm")

SERVICE = "rxnorm"


class RxNormClient:
    """Thin async wrapper over the RxNav REST API. Returns raw JSON payloads;
    rxnorm.mapper turns them into domain objects."""

    def __init__(
        self,
        base_url: str,
        http: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 2.0,
        max_retries: int = 3,
        base_delay_s: float = 0.25,
        max_delay_s: float = 2.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http or httpx.AsyncClient(headers={"Accept": "application/json"})
        self._owns_http = http is None
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        r = await get_with_retry(
            self.http,
            f"{self.base_url}{path}",
            service=SERVICE,
            params=params,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            base_delay_s=self.base_delay_s,
            max_delay_s=self.max_delay_s,
        )
        if r.status_code == 404:
            return {}
        if r.status_code >= 400:
            raise ExternalServiceError(
                f"{SERVICE} rejected the request",
                service=SERVICE,
                status=r.status_code,
                details={"path": path, "status": r.status_code},
            )
        return json_or_empty(r)

    async def search_by_name(self, name: str, max_entries: int = 5) -> Dict[str, Any]:
        return await self._get("/rxcui.json", {"name": name, "maxEntries": max_entries})

    async def approximate_term(self, term: str, max_entries: int = 10) -> Dict[str, Any]:
        # option=1: normalized string match
        return await self._get("/approximateTerm.json", {"term": term, "maxEntries": max_entries, "option": 1})

    async def spelling_suggestions(self, name: str, max_entries: int = 5) -> Dict[str, Any]:
        return await self._get("/spellingsuggestions.json", {"name": name, "maxEntries": max_entries})

    async def get_properties(self, rxcui: str) -> Dict[str, Any]:
        return await self._get(f"/rxcui/{rxcui}/properties.json")
