from __future__ import annotations

import logging
from typing import List, Optional

from cache.store import CacheStore
from catalog.mapper import map_results
from catalog.openfda_client import OpenFDAClient
from models.domain import Package
from utils.errors import NotFoundError
from utils.ids import ndc_lookup_key

log = logging.getLogger("rxfill.catalog")


class PackageCatalog:
    """Packages for an RxCUI, cache-aside over openFDA."""

    def __init__(self, client: OpenFDAClient, cache: Optional[CacheStore] = None, cache_ttl_s: Optional[float] = None):
        self.client = client
        self.cache = cache
        self.cache_ttl_s = cache_ttl_s

    async def packages_for(self, rxcui: str) -> List[Package]:
        key = ndc_lookup_key(rxcui)
        if self.cache is not None:
            hit, found = await self.cache.get(key)
            if found:
                try:
                    return [Package.from_dict(d) for d in hit]
                except (KeyError, TypeError, ValueError) as e:
                    log.warning("catalog_cache_corrupt", extra={"extra": {"rxcui": rxcui, "error_type": type(e).__name__}})
                    await self.cache.invalidate(key)

        packages = map_results(await self.client.search_by_rxcui(rxcui))
        if not packages:
            raise NotFoundError(
                f"No packages found for {rxcui}", code="package_not_found", details={"id": rxcui}
            )
        log.info("catalog_fetched", extra={"extra": {"event": "catalog_fetched", "rxcui": rxcui, "packages": len(packages)}})
        if self.cache is not None:
            await self.cache.set(key, [p.to_dict() for p in packages], self.cache_ttl_s)
        return packages
