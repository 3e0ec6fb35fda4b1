from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

from utils.errors import ExternalServiceError
from utils.http import get_with_retry, json_or_empty

SERVICE = "openfda"


class OpenFDAClient:
    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        limit: int = 100,
        http: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 2.0,
        max_retries: int = 3,
        base_delay_s: float = 0.25,
        max_delay_s: float = 2.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.limit = limit
        self.http = http or httpx.AsyncClient()
        self._owns_http = http is None
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self.max_delay_s = max_delay_s

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def search_by_rxcui(self, rxcui: str) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"search": f'openfda.rxcui:"{rxcui}"', "limit": self.limit}
        if self.api_key:
            params["api_key"] = self.api_key
        r = await get_with_retry(
            self.http,
            f"{self.base_url}/drug/ndc.json",
            service=SERVICE,
            params=params,
            timeout_s=self.timeout_s,
            max_retries=self.max_retries,
            base_delay_s=self.base_delay_s,
            max_delay_s=self.max_delay_s,
        )
        # openFDA answers 404 for "no matches" rather than an empty result list.
        if r.status_code == 404:
            return []
        if r.status_code >= 400:
            raise ExternalServiceError(
                f"{SERVICE} rejected the request",
                service=SERVICE,
                status=r.status_code,
                details={"status": r.status_code},
            )
        return json_or_empty(r).get("results") or []
