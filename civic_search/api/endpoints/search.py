# civic_search/api/endpoints/search.py
import logging

from fastapi import APIRouter, Depends, HTTPException

from civic_search.api.dependencies import get_engine, validate_request_id
from civic_search.core.cascade import SearchCascadeEngine
from civic_search.core.exceptions import CascadeException
from civic_search.models.requests import CascadeSearchRequest
from civic_search.models.responses import ErrorResponse, SearchCascadeResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/search/cascade",
    response_model=SearchCascadeResponse,
    responses={
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse}
    },
    summary="Cascading multi-source search",
    description="Query local documents, public registries and the open web in priority order."
)
async def cascade_search(
    request: CascadeSearchRequest,
    engine: SearchCascadeEngine = Depends(get_engine),
    request_id: str = Depends(validate_request_id)
):
    """
    Run the search cascade.

    - **query.text**: free-text query (1-1000 characters)
    - **query.exhaustive**: query every source, never stop early
    - **options.stop_after_results**: stop once this many results are gathered
    """
    try:
        return await engine.search(request.query, request.options)

    except CascadeException as e:
        logger.error(f"Cascade configuration error for query '{request.query.text}': {str(e)}",
                     extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail=str(e))
