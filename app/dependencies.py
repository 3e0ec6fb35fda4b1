from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from cache.store import CacheStore
from calculator.service import CalculatorService
from catalog.openfda_client import OpenFDAClient
from catalog.service import PackageCatalog
from config.settings import Settings
from recommender.circuit_breaker import CircuitBreaker
from recommender.openai_recommender import OpenAIRecommender
from recommender.resilient import ResilientRecommender
from repos.cache_repo import FirestoreCacheRepository
from repos.memory_cache_repo import InMemoryCacheRepository
from rxnorm.client import RxNormClient
from rxnorm.resolver import NameResolver
from storage.firestore_client import get_async_firestore_client


@dataclass
class Services:
    settings: Settings
    cache: CacheStore
    rxnorm: RxNormClient
    openfda: OpenFDAClient
    openai: OpenAIRecommender
    breaker: CircuitBreaker
    resolver: NameResolver
    catalog: PackageCatalog
    recommender: ResilientRecommender
    calculator: CalculatorService

    async def aclose(self) -> None:
        await self.cache.stop_sweeper()
        await self.rxnorm.aclose()
        await self.openfda.aclose()
        await self.openai.aclose()


def build_services(s: Settings) -> Services:
    """Wire every service from one Settings value. Called once at startup."""
    if s.CACHE_BACKEND.lower() == "memory":
        repo = InMemoryCacheRepository()
    else:
        repo = FirestoreCacheRepository(
            db=get_async_firestore_client(s.FIRESTORE_PROJECT_ID), collection=s.CACHE_COLLECTION
        )
    cache = CacheStore(
        repo,
        default_ttl_s=s.CACHE_DEFAULT_TTL_S,
        sweep_interval_s=s.CACHE_SWEEP_INTERVAL_S,
        sweep_batch_size=s.CACHE_SWEEP_BATCH_SIZE,
    )

    retry = dict(
        timeout_s=s.LOOKUP_TIMEOUT_S,
        max_retries=s.LOOKUP_MAX_RETRIES,
        base_delay_s=s.RETRY_BASE_DELAY_S,
        max_delay_s=s.RETRY_MAX_DELAY_S,
    )
    rxnorm = RxNormClient(s.RXNORM_BASE_URL, **retry)
    openfda = OpenFDAClient(s.OPENFDA_BASE_URL, api_key=s.OPENFDA_API_KEY, limit=s.OPENFDA_LIMIT, **retry)

    openai = OpenAIRecommender(
        api_key=s.OPENAI_API_KEY if s.FEATURE_OPENAI else "",
        model=s.OPENAI_MODEL,
        max_tokens=s.OPENAI_MAX_TOKENS,
        temperature=s.OPENAI_TEMPERATURE,
        timeout_s=s.OPENAI_TIMEOUT_S,
        max_retries=s.OPENAI_MAX_RETRIES,
    )
    breaker = CircuitBreaker("openai", failure_threshold=s.BREAKER_FAILURE_THRESHOLD, cooldown_s=s.BREAKER_COOLDOWN_S)
    recommender = ResilientRecommender(openai, breaker, enabled=s.FEATURE_OPENAI, timeout_s=s.OPENAI_TIMEOUT_S)

    resolver = NameResolver(rxnorm, cache=cache, min_confidence=s.MIN_CONFIDENCE, cache_ttl_s=s.CACHE_DRUG_TTL_S)
    catalog = PackageCatalog(openfda, cache=cache, cache_ttl_s=s.CACHE_PACKAGES_TTL_S)
    calculator = CalculatorService(
        resolver,
        catalog,
        recommender,
        low_confidence_threshold=s.LOW_CONFIDENCE_WARNING,
        allow_multi_pack=s.MULTI_PACK_ENABLED,
    )
    return Services(
        settings=s,
        cache=cache,
        rxnorm=rxnorm,
        openfda=openfda,
        openai=openai,
        breaker=breaker,
        resolver=resolver,
        catalog=catalog,
        recommender=recommender,
        calculator=calculator,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
