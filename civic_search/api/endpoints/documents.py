# civic_search/api/endpoints/documents.py
import logging

from fastapi import APIRouter, Depends

from civic_search.api.dependencies import get_scorer
from civic_search.core.exceptions import ValidationException
from civic_search.models.internal import DocumentScore
from civic_search.models.requests import DocumentRankRequest, DocumentScoreRequest
from civic_search.models.responses import DocumentListResponse
from civic_search.services.document_scorer import DocumentRelevanceScorer

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/documents/score", response_model=DocumentScore)
async def score_document(
    request: DocumentScoreRequest,
    scorer: DocumentRelevanceScorer = Depends(get_scorer)
):
    """Score a single document, optionally against a query"""
    return scorer.score(request.document, request.query)


@router.post("/documents/rank", response_model=DocumentListResponse)
async def rank_documents(
    request: DocumentRankRequest,
    scorer: DocumentRelevanceScorer = Depends(get_scorer)
):
    """Filter, score, sort and paginate a list of documents"""
    if request.date_from and request.date_to and request.date_from > request.date_to:
        raise ValidationException("date_from must not be after date_to")

    try:
        return scorer.rank_documents(
            request.documents,
            query=request.query,
            document_type=request.document_type,
            date_from=request.date_from,
            date_to=request.date_to,
            priority=request.priority,
            sort_by=request.sort_by,
            sort_order=request.sort_order,
            limit=request.limit,
            offset=request.offset,
        )
    except ValueError as e:
        logger.warning(f"Rejected document listing request: {e}")
        raise ValidationException(str(e))
