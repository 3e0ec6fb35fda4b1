from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Core
    ENVIRONMENT: str = Field(default="production")
    FIRESTORE_PROJECT_ID: str = Field(default="")
    LOG_LEVEL: str = Field(default="INFO")

    # Cache (cache-aside, TTL in seconds)
    CACHE_BACKEND: str = Field(default="firestore")  # firestore | memory
    CACHE_COLLECTION: str = Field(default="calculation_cache")
    CACHE_DEFAULT_TTL_S: float = Field(default=24 * 60 * 60)
    CACHE_DRUG_TTL_S: float = Field(default=7 * 24 * 60 * 60)
    CACHE_PACKAGES_TTL_S: float = Field(default=24 * 60 * 60)
    CACHE_SWEEP_INTERVAL_S: float = Field(default=60 * 60)
    CACHE_SWEEP_BATCH_SIZE: int = Field(default=100)

    # Upstream lookups (RxNorm / openFDA)
    RXNORM_BASE_URL: str = Field(default="https://rxnav.nlm.nih.gov/REST")
    OPENFDA_BASE_URL: str = Field(default="https://api.fda.gov")
    OPENFDA_API_KEY: str = Field(default="")
    OPENFDA_LIMIT: int = Field(default=100)
    LOOKUP_TIMEOUT_S: float = Field(default=2.0)
    LOOKUP_MAX_RETRIES: int = Field(default=3)
    RETRY_BASE_DELAY_S: float = Field(default=0.25)
    RETRY_MAX_DELAY_S: float = Field(default=2.0)

    # Name resolution
    MIN_CONFIDENCE: float = Field(default=0.7)
    LOW_CONFIDENCE_WARNING: float = Field(default=0.8)

    # AI recommender (off unless explicitly enabled)
    FEATURE_OPENAI: bool = Field(default=False)
    OPENAI_API_KEY: str = Field(default="")
    OPENAI_MODEL: str = Field(default="gpt-4o")
    OPENAI_TIMEOUT_S: float = Field(default=30.0)
    OPENAI_MAX_TOKENS: int = Field(default=2000)
    OPENAI_TEMPERATURE: float = Field(default=0.3)
    OPENAI_MAX_RETRIES: int = Field(default=2)

    # Circuit breaker guarding the AI backend
    BREAKER_FAILURE_THRESHOLD: int = Field(default=3)
    BREAKER_COOLDOWN_S: float = Field(default=5 * 60)

    # Package matching
    MULTI_PACK_ENABLED: bool = Field(default=True)


settings = Settings()
