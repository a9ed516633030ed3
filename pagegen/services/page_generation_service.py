"""
Page Generation Service

Runs generations in background tasks and keeps their events in memory so
clients can poll for progress instead of holding a stream open.

Database blocks are handed to the materializer as separate tasks; the ids
it returns are reported alongside the events, keyed by global block index.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from pagegen.schemas.events import (
    BlockEvent,
    DatabaseCreatedEvent,
    ErrorEvent,
    GenerationProgress,
    TERMINAL_EVENT_TYPES,
)
from pagegen.schemas.generation import (
    DatabaseBlock,
    DatabaseSpec,
    GenerationConfig,
    GenerationRequest,
    GenerationTemplate,
)
from pagegen.services.generation.orchestrator import PageGenerationOrchestrator
from pagegen.services.interfaces import DatabaseBlockMaterializer
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)

GENERATION_NOT_FOUND_MESSAGE = "Generation not found"


@dataclass
class GenerationState:
    request: GenerationRequest
    events: List = field(default_factory=list)
    database_ids: Dict[int, str] = field(default_factory=dict)
    database_specs: Dict[int, DatabaseSpec] = field(default_factory=dict)
    is_complete: bool = False
    last_polled_index: int = 0
    created_at: float = field(default_factory=time.monotonic)
    abort_event: asyncio.Event = field(default_factory=asyncio.Event)
    task: Optional[asyncio.Task] = None
    materializations: Set[asyncio.Task] = field(default_factory=set)


class PageGenerationService:
    """In-memory registry of running and recently finished generations."""

    def __init__(
        self,
        orchestrator: PageGenerationOrchestrator,
        materializer: Optional[DatabaseBlockMaterializer] = None,
        state_ttl_seconds: int = 600,
    ):
        self.orchestrator = orchestrator
        self.materializer = materializer
        self.state_ttl_seconds = state_ttl_seconds
        self._generations: Dict[str, GenerationState] = {}

    def __contains__(self, generation_id: str) -> bool:
        return generation_id in self._generations

    async def start_generation(
        self,
        request: GenerationRequest,
        template: Optional[GenerationTemplate] = None,
        config: Optional[GenerationConfig] = None,
    ) -> str:
        """Start a generation in the background and return its id."""
        self._purge_stale()

        generation_id = uuid.uuid4().hex
        state = GenerationState(request=request)
        self._generations[generation_id] = state
        state.task = asyncio.create_task(
            self._run(generation_id, state, template, config),
            name=f"generation-{generation_id}",
        )

        LOGGER.info(
            f"Generation started: {generation_id}",
            extra={"organization_id": request.organization_id, "active": len(self._generations)},
        )
        return generation_id

    def get_progress(self, generation_id: str) -> GenerationProgress:
        """Events accumulated since the previous poll."""
        state = self._generations.get(generation_id)
        if state is None:
            return GenerationProgress(
                generation_id=generation_id,
                events=[ErrorEvent(message=GENERATION_NOT_FOUND_MESSAGE, stage="lookup")],
                is_complete=True,
            )

        new_events = state.events[state.last_polled_index:]
        state.last_polled_index = len(state.events)

        return GenerationProgress(
            generation_id=generation_id,
            events=new_events,
            is_complete=state.is_complete,
            database_ids=dict(state.database_ids),
        )

    def cancel_generation(self, generation_id: str) -> bool:
        """Ask a generation to stop after its in-flight section."""
        state = self._generations.get(generation_id)
        if state is None:
            return False

        state.abort_event.set()
        LOGGER.info(
            f"Generation cancel requested: {generation_id}",
            extra={"already_complete": state.is_complete},
        )
        return True

    async def shutdown(self) -> None:
        """Cancel every running generation and materialization task."""
        tasks = []
        for state in self._generations.values():
            state.abort_event.set()
            if state.task is not None and not state.task.done():
                tasks.append(state.task)
            tasks.extend(t for t in state.materializations if not t.done())

        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        LOGGER.info("Generation service shut down", extra={"cancelled_tasks": len(tasks)})

    async def _run(
        self,
        generation_id: str,
        state: GenerationState,
        template: Optional[GenerationTemplate],
        config: Optional[GenerationConfig],
    ) -> None:
        try:
            async for event in self.orchestrator.generate_page(
                state.request, template, config=config, abort_event=state.abort_event
            ):
                self._record(generation_id, state, event)
        except Exception as e:
            LOGGER.error(f"Generation {generation_id} failed: {e}", exc_info=True)
            state.events.append(ErrorEvent(message=f"Generation failed: {e}", stage="internal"))
        finally:
            state.is_complete = True

    def _record(self, generation_id: str, state: GenerationState, event) -> None:
        state.events.append(event)

        if isinstance(event, BlockEvent) and isinstance(event.block, DatabaseBlock):
            state.database_specs[event.block_index] = event.block.database
        elif isinstance(event, DatabaseCreatedEvent) and self.materializer is not None:
            spec = state.database_specs.get(event.block_index)
            if spec is not None:
                task = asyncio.create_task(
                    self._materialize(generation_id, state, spec, event.block_index)
                )
                state.materializations.add(task)
                task.add_done_callback(state.materializations.discard)

        if event.type in TERMINAL_EVENT_TYPES:
            state.is_complete = True

    async def _materialize(
        self,
        generation_id: str,
        state: GenerationState,
        spec: DatabaseSpec,
        block_index: int,
    ) -> None:
        try:
            database_id = await self.materializer.materialize(spec, state.request, block_index)
        except Exception as e:
            LOGGER.error(
                f"Failed to create database \"{spec.name}\": {e}",
                exc_info=True,
                extra={"generation_id": generation_id, "block_index": block_index},
            )
            return

        state.database_ids[block_index] = database_id
        LOGGER.info(
            f"Database created: {spec.name}",
            extra={
                "generation_id": generation_id,
                "block_index": block_index,
                "database_id": database_id,
            },
        )

    def _purge_stale(self) -> None:
        now = time.monotonic()
        stale = [
            generation_id
            for generation_id, state in self._generations.items()
            if state.is_complete and now - state.created_at > self.state_ttl_seconds
        ]
        for generation_id in stale:
            del self._generations[generation_id]
        if stale:
            LOGGER.debug("Purged stale generations", extra={"count": len(stale)})
