"""Page generation API endpoints."""

import asyncio
from typing import Annotated, AsyncIterator, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from pagegen.dependencies import get_generation_service, get_orchestrator
from pagegen.schemas.events import GenerationProgress, GenerationStarted, format_sse
from pagegen.schemas.generation import GenerationConfig, GenerationRequest
from pagegen.services.generation.orchestrator import PageGenerationOrchestrator
from pagegen.services.page_generation_service import PageGenerationService
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)

router = APIRouter()


class GeneratePageRequest(GenerationRequest):
    """Generation request with optional per-call options."""

    config: Optional[GenerationConfig] = Field(default=None)

    def to_request(self) -> GenerationRequest:
        return GenerationRequest.model_validate(self.model_dump(exclude={"config"}))


class CancelResponse(BaseModel):
    success: bool


async def _sse_stream(
    events: AsyncIterator,
    request: Optional[Request] = None,
    abort_event: Optional[asyncio.Event] = None,
) -> AsyncIterator[str]:
    """Format events as SSE; a client disconnect sets ``abort_event`` and stops."""
    try:
        async for event in events:
            yield format_sse(event)
            if request is not None and await request.is_disconnected():
                LOGGER.info("Client disconnected, aborting generation")
                if abort_event is not None:
                    abort_event.set()
                break
    finally:
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


@router.post(
    "/stream",
    summary="Generate a page and stream events via SSE",
    operation_id="stream_page_generation",
)
async def stream_generation(
    payload: GeneratePageRequest,
    http_request: Request,
    orchestrator: Annotated[PageGenerationOrchestrator, Depends(get_orchestrator)],
) -> StreamingResponse:
    """Stream generation events as they are produced."""
    request = payload.to_request()
    abort_event = asyncio.Event()
    LOGGER.info(
        "Streaming page generation",
        extra={"organization_id": request.organization_id},
    )
    events = orchestrator.generate_page(
        request, config=payload.config, abort_event=abort_event
    )
    return StreamingResponse(
        _sse_stream(events, http_request, abort_event),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable proxy buffering (Nginx)
        },
    )


@router.post(
    "",
    response_model=GenerationStarted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a page generation in the background",
    operation_id="start_page_generation",
)
async def start_generation(
    payload: GeneratePageRequest,
    service: Annotated[PageGenerationService, Depends(get_generation_service)],
) -> GenerationStarted:
    generation_id = await service.start_generation(
        payload.to_request(), config=payload.config
    )
    return GenerationStarted(generation_id=generation_id)


@router.get(
    "/{generation_id}/events",
    response_model=GenerationProgress,
    summary="Poll generation events since the last poll",
    operation_id="get_page_generation_events",
)
async def get_generation_events(
    generation_id: str,
    service: Annotated[PageGenerationService, Depends(get_generation_service)],
) -> GenerationProgress:
    return service.get_progress(generation_id)


@router.post(
    "/{generation_id}/cancel",
    response_model=CancelResponse,
    summary="Cancel a running generation",
    operation_id="cancel_page_generation",
)
async def cancel_generation(
    generation_id: str,
    service: Annotated[PageGenerationService, Depends(get_generation_service)],
) -> CancelResponse:
    if not service.cancel_generation(generation_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Generation {generation_id} not found",
        )
    return CancelResponse(success=True)
