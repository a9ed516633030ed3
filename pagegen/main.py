"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from pagegen.api.v1.endpoints import health
from pagegen.api.v1.router import api_router
from pagegen.core.config import settings
from pagegen.core.exceptions import ConfigurationError
from pagegen.core.unified_llm import create_llm_client_from_settings
from pagegen.services.embeddings import SentenceTransformerEmbeddingService
from pagegen.services.generation.orchestrator import PageGenerationOrchestrator
from pagegen.services.page_generation_service import PageGenerationService
from pagegen.services.stores import InMemoryFactStore, InMemoryVectorStore
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


class RootResponse(BaseModel):
    """Root endpoint response payload."""

    message: str = Field(..., description="Service status message")
    version: str = Field(..., description="Running application version")
    docs: str = Field(..., description="Path to the interactive API docs")
    health: str = Field(..., description="Path to the health check endpoint")


def build_collaborators(app: FastAPI) -> None:
    """Create the pipeline collaborators and store them on ``app.state``."""
    app.state.vector_store = InMemoryVectorStore()
    app.state.fact_store = InMemoryFactStore()
    app.state.embedding_service = SentenceTransformerEmbeddingService(
        settings.embedding.model_name
    )

    try:
        llm_client = create_llm_client_from_settings(settings.llm)
    except ConfigurationError as e:
        LOGGER.error(f"LLM client unavailable, generation endpoints disabled: {e}")
        return

    orchestrator = PageGenerationOrchestrator(
        embedding_service=app.state.embedding_service,
        vector_store=app.state.vector_store,
        llm_client=llm_client,
        fact_store=app.state.fact_store,
        settings=settings,
    )
    app.state.orchestrator = orchestrator
    app.state.generation_service = PageGenerationService(
        orchestrator,
        state_ttl_seconds=settings.generation.state_ttl_seconds,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    # Startup
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )
    app.state.orchestrator = None
    app.state.generation_service = None
    build_collaborators(app)

    yield

    # Shutdown
    LOGGER.info("Shutting down application")
    if app.state.generation_service is not None:
        await app.state.generation_service.shutdown()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Retrieval-grounded, streaming structured page generation",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# Correlation ID middleware
@app.middleware("http")
async def add_correlation_id(request: Request, call_next):
    correlation_id = request.headers.get("X-Correlation-ID", str(uuid4()))
    request.state.correlation_id = correlation_id
    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

# Include routers
app.include_router(api_router, prefix=settings.api_v1_prefix)
app.include_router(health.router, prefix="/health", tags=["Health"])


@app.get(
    "/",
    response_model=RootResponse,
    tags=["Root"],
    summary="Root endpoint",
    description="Get basic information about the API",
    operation_id="get_public_root_metadata",
)
async def root() -> RootResponse:
    """Root endpoint.

    Returns:
        RootResponse: Basic API information
    """
    return RootResponse(
        message="Server is running",
        version=settings.app_version,
        docs="/docs",
        health="/health",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "pagegen.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
