from pagegen.schemas.events import (
    BlockEvent,
    CompleteEvent,
    CompletionMetadata,
    DatabaseCreatedEvent,
    ErrorEvent,
    GenerationEvent,
    GenerationProgress,
    OutlineEvent,
    SectionCompleteEvent,
    SectionStartEvent,
)
from pagegen.schemas.generation import (
    ContextItem,
    FactRecord,
    GeneratedBlock,
    GenerationConfig,
    GenerationRequest,
    GenerationTemplate,
    OutlineSection,
    PageOutline,
    RetrievedChunk,
    SourceCitation,
    TokenUsage,
)

__all__ = [
    "BlockEvent",
    "CompleteEvent",
    "CompletionMetadata",
    "ContextItem",
    "DatabaseCreatedEvent",
    "ErrorEvent",
    "FactRecord",
    "GeneratedBlock",
    "GenerationConfig",
    "GenerationEvent",
    "GenerationProgress",
    "GenerationRequest",
    "GenerationTemplate",
    "OutlineEvent",
    "OutlineSection",
    "PageOutline",
    "RetrievedChunk",
    "SectionCompleteEvent",
    "SectionStartEvent",
    "SourceCitation",
    "TokenUsage",
]
