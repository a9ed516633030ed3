"""Dependency injection for the FastAPI application.

Collaborators are built once in the application lifespan and stored on
``app.state``; these functions hand them to endpoints. Tests replace them
through ``app.dependency_overrides``.
"""

from fastapi import HTTPException, Request, status

from pagegen.services.generation.orchestrator import PageGenerationOrchestrator
from pagegen.services.page_generation_service import PageGenerationService


def _from_state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} is not configured",
        )
    return value


async def get_orchestrator(request: Request) -> PageGenerationOrchestrator:
    """Get the page generation orchestrator."""
    return _from_state(request, "orchestrator")


async def get_generation_service(request: Request) -> PageGenerationService:
    """Get the background generation registry."""
    return _from_state(request, "generation_service")
