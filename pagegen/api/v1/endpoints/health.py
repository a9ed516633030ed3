"""Health check API endpoints."""

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from pagegen.core.config import settings

router = APIRouter()


class HealthCheckResponse(BaseModel):
    status: str = Field(..., description="Health check status")
    version: str = Field(..., description="Running application version")
    service: str = Field(..., description="Service name")
    llm_provider: str = Field(..., description="Configured LLM provider")


@router.get(
    "",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_service_health_status",
)
async def health_check(request: Request) -> HealthCheckResponse:
    """Health check endpoint."""
    ready = getattr(request.app.state, "orchestrator", None) is not None

    return HealthCheckResponse(
        status="healthy" if ready else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        llm_provider=settings.llm_provider,
    )
