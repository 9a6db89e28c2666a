# civic_search/config/settings.py
from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import List
import logging

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    # API Configuration
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    DEBUG: bool = False
    ALLOWED_ORIGINS: List[str] = ["*"]

    # LLM Configuration
    OLLAMA_HOST: str = "http://localhost:11434"
    LLM_MODEL: str = "llama3.1:8b"
    LLM_MAX_TOKENS: int = 300
    LLM_TEMPERATURE: float = 0.2
    LLM_TIMEOUT: int = 30
    LLM_MAX_RETRIES: int = 2

    # Web search
    BRAVE_SEARCH_API_KEY: str = ""
    SERPAPI_API_KEY: str = ""
    SEARCH_TIMEOUT: int = 10
    SEARCH_LANG: str = "pl"
    SEARCH_COUNTRY: str = "PL"
    MAX_SEARCH_RESULTS: int = 10

    # Cache Configuration (empty REDIS_URL = in-process memory only)
    REDIS_URL: str = ""
    MEMORY_CACHE_SIZE: int = 1000
    CACHE_TTL_REGISTRY: int = 3600
    CACHE_TTL_WEB_SEARCH: int = 1800
    CACHE_TTL_CREDIBILITY: int = 86400

    # Cascade
    CASCADE_MAX_RESULTS: int = 20
    CASCADE_DEADLINE_MS: int = 45000
    CASCADE_MAX_CONCURRENT_SOURCES: int = 8
    CASCADE_STOP_POLICY: str = "min_responded"

    # Credibility
    FRESHNESS_HORIZON_DAYS: int = 365
    FRESHNESS_FLOOR: float = 0.2
    CREDIBILITY_MIN_RELIABLE: float = 0.5
    CREDIBILITY_MAX_CONCURRENCY: int = 4

    # Cross-reference
    CROSS_REFERENCE_SIMILARITY: float = 0.5

    # Documents
    COUNCIL_LOCATION: str = "Drawno"

    # Monitoring
    LOG_LEVEL: str = "INFO"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return v

    @field_validator("CASCADE_STOP_POLICY", mode="before")
    @classmethod
    def parse_stop_policy(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
            if v not in ("min_responded", "min_group"):
                logger.warning(f"Unknown CASCADE_STOP_POLICY {v!r}, using 'min_responded'")
                return "min_responded"
        return v

    model_config = {
        "env_file": ".env",
        "case_sensitive": True,
        "extra": "ignore"  # Ignore unknown env vars
    }


def configure_logging(level: str = None):
    """Install the root logging handler used by the service"""
    logging.basicConfig(
        level=getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )


settings = Settings()
