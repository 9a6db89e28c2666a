# civic_search/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from civic_search.api.dependencies import build_engine
from civic_search.api.endpoints import documents, health, search
from civic_search.api.middleware import RequestLoggingMiddleware
from civic_search.config.settings import configure_logging, settings
from civic_search.core.cascade import SearchCascadeEngine
from civic_search.core.exceptions import CustomHTTPException
from civic_search.interfaces.sources import LocalIndexInterface
from civic_search.models.responses import ErrorResponse
from civic_search.services.document_scorer import DocumentRelevanceScorer

logger = logging.getLogger(__name__)


def create_app(
    engine: SearchCascadeEngine = None,
    scorer: DocumentRelevanceScorer = None,
    index: LocalIndexInterface = None,
) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up application...")
        yield
        logger.info("Shutting down application...")
        await app.state.engine.close()

    app = FastAPI(
        title="Civic Search",
        description="Cascading multi-source search for the civic assistant",
        version="1.0.0",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.state.scorer = scorer or DocumentRelevanceScorer()
    app.state.engine = engine or build_engine(app.state.scorer, index)

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CustomHTTPException)
    async def handle_custom_http_exception(request: Request, exc: CustomHTTPException):
        body = ErrorResponse(
            error=str(exc.detail),
            error_code=exc.error_code,
            request_id=getattr(request.state, "request_id", None),
        )
        return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json"))

    app.include_router(search.router, prefix="/api/v1", tags=["search"])
    app.include_router(documents.router, prefix="/api/v1", tags=["documents"])
    app.include_router(health.router, prefix="/api/v1", tags=["health"])

    @app.get("/")
    async def root():
        return {"message": "Civic Search", "status": "running", "version": "1.0.0"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "civic_search.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG
    )
