"""Collaborator contracts consumed by the page generation pipeline.

Concrete implementations live in ``pagegen.services.embeddings``,
``pagegen.services.stores`` and ``pagegen.core.llm_client``; tests pass
``AsyncMock`` objects or small fakes that satisfy the same shape.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from pagegen.schemas.generation import (
    DatabaseSpec,
    FactRecord,
    GenerationRequest,
    RetrievedChunk,
    TokenUsage,
)


@dataclass(frozen=True)
class SearchOptions:
    """Vector search options."""

    top_k: int = 15
    min_score: float = 0.4
    document_id: Optional[str] = None


@dataclass
class LLMCallOptions:
    """Options shared by structured and streaming LLM calls."""

    system_prompt: Optional[str] = None
    max_tokens: int = 1000
    temperature: float = 0.4
    abort_event: Optional[asyncio.Event] = None

    @property
    def aborted(self) -> bool:
        return self.abort_event is not None and self.abort_event.is_set()


@dataclass
class StructuredResult:
    """Parsed JSON returned by a structured LLM call."""

    data: Any
    usage: TokenUsage


@dataclass
class StreamFragment:
    """One piece of streamed text. The final fragment may carry usage."""

    text: str
    usage: Optional[TokenUsage] = None


class EmbeddingService(Protocol):
    async def generate_embedding(self, text: str) -> List[float]:
        ...


class VectorStore(Protocol):
    async def search(
        self, vector: List[float], scope_id: str, options: SearchOptions
    ) -> List[RetrievedChunk]:
        ...


class FactStore(Protocol):
    async def find_facts(
        self, company_id: str, scope_id: str, max_facts: int
    ) -> List[FactRecord]:
        """Return facts ordered by confidence, highest first."""
        ...


class LLMClient(Protocol):
    async def generate_structured(
        self, prompt: str, schema: Dict[str, Any], options: LLMCallOptions
    ) -> StructuredResult:
        ...

    def stream_generate(
        self, prompt: str, options: LLMCallOptions
    ) -> AsyncIterator[StreamFragment]:
        ...


class DatabaseBlockMaterializer(Protocol):
    async def materialize(
        self, spec: DatabaseSpec, request: GenerationRequest, block_index: int
    ) -> str:
        """Persist the database described by ``spec`` and return its id."""
        ...
