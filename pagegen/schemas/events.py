"""Page generation event protocol.

Events are yielded in temporal order by the orchestrator and forwarded
unchanged to SSE and polling clients.
"""

import json
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from pagegen.schemas.generation import GeneratedBlock, SourceCitation


class OutlineSectionSummary(BaseModel):
    title: str
    description: str = ""
    block_types: list[str] = Field(default_factory=list)


class OutlineEvent(BaseModel):
    """Outline generated; clients can render a skeleton."""

    type: Literal["outline"] = "outline"
    title: str
    sections: list[OutlineSectionSummary]


class SectionStartEvent(BaseModel):
    type: Literal["section_start"] = "section_start"
    index: int
    title: str


class BlockEvent(BaseModel):
    """One complete block. ``block_index`` is global across the request."""

    type: Literal["block"] = "block"
    block: GeneratedBlock
    section_index: int
    block_index: int


class DatabaseCreatedEvent(BaseModel):
    """Announces a database block; ``database_id`` is filled in by the materializer."""

    type: Literal["database_created"] = "database_created"
    name: str
    section_index: int
    block_index: int
    database_id: str | None = None


class SectionCompleteEvent(BaseModel):
    type: Literal["section_complete"] = "section_complete"
    index: int
    citation_start_index: int = 1
    citations_used: int = 0
    citations: list[SourceCitation] = Field(default_factory=list)


class CompletionMetadata(BaseModel):
    tokens_used: int = 0
    cost: float = 0.0
    sections_generated: int = 0
    databases_created: int = 0
    processing_time_ms: int = 0
    cancelled: bool = False


class CompleteEvent(BaseModel):
    type: Literal["complete"] = "complete"
    metadata: CompletionMetadata


class ErrorEvent(BaseModel):
    """Terminal failure; nothing usable was produced.

    ``lookup`` is used by the polling service for unknown ids and
    ``internal`` for failures outside the pipeline's own stages.
    """

    type: Literal["error"] = "error"
    message: str
    stage: Literal["gathering", "outlining", "lookup", "internal"] = "gathering"


GenerationEvent = Annotated[
    Union[
        OutlineEvent,
        SectionStartEvent,
        BlockEvent,
        DatabaseCreatedEvent,
        SectionCompleteEvent,
        CompleteEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

GENERATION_EVENT_ADAPTER: TypeAdapter = TypeAdapter(GenerationEvent)

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})


def format_sse(event: BaseModel) -> str:
    """Format an event as a raw SSE message."""
    data = event.model_dump(mode="json")
    return f"event: {data['type']}\ndata: {json.dumps(data)}\n\n"


class GenerationProgress(BaseModel):
    """Polling response: events since the previous poll."""

    generation_id: str
    events: list[GenerationEvent] = Field(default_factory=list)
    is_complete: bool = False
    database_ids: dict[int, str] = Field(default_factory=dict)


class GenerationStarted(BaseModel):
    generation_id: str
