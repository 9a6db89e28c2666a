# civic_search/api/endpoints/health.py
import logging
import time

from fastapi import APIRouter, Depends

from civic_search.api.dependencies import get_engine
from civic_search.core.cascade import SearchCascadeEngine
from civic_search.models.responses import HealthResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health_check(engine: SearchCascadeEngine = Depends(get_engine)):
    """Report which cascade sources are configured and enabled"""
    start_time = time.time()

    services = {"api": "healthy"}
    for config in engine.configs:
        services[config.source_type.value] = "enabled" if config.enabled else "disabled"

    status = "healthy" if any(config.enabled for config in engine.configs) else "degraded"
    if status != "healthy":
        logger.warning("Health check: no cascade source enabled")

    return HealthResponse(
        status=status,
        services=services,
        response_time_ms=round((time.time() - start_time) * 1000, 2)
    )
