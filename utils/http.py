from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from utils.errors import ExternalServiceError

log = logging.getLogger("rxfill.http")


def backoff_delay(attempt: int, base_s: float, max_s: float) -> float:
    return min(base_s * (2 ** attempt), max_s)


async def get_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    service: str,
    params: Optional[Dict[str, Any]] = None,
    timeout_s: float = 2.0,
    max_retries: int = 3,
    base_delay_s: float = 0.25,
    max_delay_s: float = 2.0,
) -> httpx.Response:
    """GET with capped exponential backoff.

    Only network errors, timeouts and 5xx are retried. Any response below 500
    (including 4xx) is handed back to the caller untouched. When retries run
    out an ExternalServiceError is raised; the upstream body never leaks into it.
    """
    last_status: Optional[int] = None
    last_error = ""
    for attempt in range(max_retries + 1):
        try:
            r = await client.get(url, params=params, timeout=timeout_s)
            if r.status_code < 500:
                return r
            last_status = r.status_code
            last_error = f"http_{r.status_code}"
        except httpx.TransportError as e:
            # covers timeouts and connection errors
            last_status = None
            last_error = type(e).__name__

        if attempt < max_retries:
            delay = backoff_delay(attempt, base_delay_s, max_delay_s)
            log.warning(
                "upstream_retry",
                extra={
                    "extra": {
                        "event": "upstream_retry",
                        "service": service,
                        "attempt": attempt + 1,
                        "status": last_status,
                        "error": last_error,
                        "delay_s": delay,
                    }
                },
            )
            await asyncio.sleep(delay)

    log.error(
        "upstream_unavailable",
        extra={"extra": {"event": "upstream_unavailable", "service": service, "status": last_status, "error": last_error}},
    )
    raise ExternalServiceError(
        f"{service} is unavailable",
        service=service,
        status=last_status,
        details={"service": service},
    )


def json_or_empty(r: httpx.Response) -> Dict[str, Any]:
    try:
        data = r.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
