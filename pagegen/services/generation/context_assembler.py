"""
RAG context assembly for page generation.

1. Embed the prompt
2. Search the vector store (organization scope, optional single-document filter)
3. Optionally load company facts, highest confidence first
4. Deduplicate and number chunks and facts into a bounded context string
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional

from pagegen.core.exceptions import ContextRetrievalError, FactRetrievalError
from pagegen.schemas.generation import (
    ContextItem,
    FactRecord,
    GenerationConfig,
    GenerationRequest,
    RetrievedChunk,
)
from pagegen.services.interfaces import (
    EmbeddingService,
    FactStore,
    SearchOptions,
    VectorStore,
)
from pagegen.utils.logging import get_logger
from pagegen.utils.token_counter import TokenCounter

LOGGER = get_logger(__name__)

NO_GROUNDING_CONTEXT = (
    "NO GROUNDING CONTEXT: no documents or facts matched this request. "
    "Any citation markers in generated content would be unsupported."
)

NO_CONTEXT_SUMMARY = "No specific context available. Generate based on general knowledge."

# Per-item allowance for the "[N] ... Source: ..." framing
_ITEM_OVERHEAD_TOKENS = 20

_WHITESPACE = re.compile(r"\s+")


@dataclass
class GatheredContext:
    """Grounding material for one request."""

    context_text: str
    chunks: List[RetrievedChunk] = field(default_factory=list)
    facts: List[FactRecord] = field(default_factory=list)
    items: List[ContextItem] = field(default_factory=list)

    @property
    def has_grounding(self) -> bool:
        return bool(self.items)

    def render(self, start_index: int = 1) -> str:
        """Render the items numbered from ``start_index``."""
        return render_context_items(self.items, start_index)


def render_context_items(items: List[ContextItem], start_index: int = 1) -> str:
    if not items:
        return NO_GROUNDING_CONTEXT

    rendered = []
    for offset, item in enumerate(items):
        number = start_index + offset
        if item.kind == "chunk":
            page_info = f" (Page {item.page_number})" if item.page_number else ""
            rendered.append(
                f"[{number}] {item.text}\nSource: {item.document_name or 'Unknown'}{page_info}"
            )
        else:
            rendered.append(
                f"[{number}] FACT: {item.text}\n"
                f"Confidence: {item.score * 100:.0f}% | Source: {item.document_name or 'Unknown'}"
            )
    return "\n\n---\n\n".join(rendered)


class ContextAssembler:
    """Gathers and bounds retrieval context for a generation request."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        fact_store: Optional[FactStore] = None,
        max_context_tokens: int = 8000,
        token_counter: Optional[TokenCounter] = None,
    ):
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.fact_store = fact_store
        self.max_context_tokens = max_context_tokens
        self._token_counter = token_counter

    @property
    def token_counter(self) -> TokenCounter:
        if self._token_counter is None:
            self._token_counter = TokenCounter()
        return self._token_counter

    async def gather_context(
        self, request: GenerationRequest, config: GenerationConfig
    ) -> GatheredContext:
        """Retrieve chunks and facts for the request and build the context text.

        Raises:
            ContextRetrievalError: If embedding or vector search fails
            FactRetrievalError: If the fact store lookup fails
        """
        chunks = await self.retrieve_chunks(request, config)
        facts = await self.retrieve_facts(request, config)
        return self.build_context(request, chunks, facts)

    async def retrieve_chunks(
        self, request: GenerationRequest, config: GenerationConfig
    ) -> List[RetrievedChunk]:
        """Embed the prompt and search the organization's chunks.

        Raises:
            ContextRetrievalError: If embedding or vector search fails
        """
        try:
            vector = await self.embedding_service.generate_embedding(request.prompt)
        except Exception as e:
            raise ContextRetrievalError(f"Prompt embedding failed: {e}", e) from e

        document_id = request.document_ids[0] if len(request.document_ids) == 1 else None
        options = SearchOptions(
            top_k=config.top_k,
            min_score=config.min_score,
            document_id=document_id,
        )

        try:
            results = await self.vector_store.search(vector, request.organization_id, options)
        except Exception as e:
            raise ContextRetrievalError(f"Vector search failed: {e}", e) from e

        LOGGER.debug(
            "Chunks retrieved",
            extra={"results": len(results), "document_filter": document_id},
        )
        return [chunk for chunk in results if chunk.score >= config.min_score]

    async def retrieve_facts(
        self, request: GenerationRequest, config: GenerationConfig
    ) -> List[FactRecord]:
        """Company facts, highest confidence first.

        Raises:
            FactRetrievalError: If the fact store lookup fails
        """
        if not (config.include_facts and self.fact_store and request.company_id):
            return []
        if config.max_facts == 0:
            return []

        try:
            facts = await self.fact_store.find_facts(
                request.company_id, request.organization_id, config.max_facts
            )
        except Exception as e:
            raise FactRetrievalError(f"Fact lookup failed: {e}", e) from e

        facts = sorted(facts, key=lambda f: f.confidence, reverse=True)
        return facts[: config.max_facts]

    def build_context(
        self,
        request: GenerationRequest,
        chunks: List[RetrievedChunk],
        facts: List[FactRecord],
    ) -> GatheredContext:
        """Deduplicate, number and bound the retrieved material."""
        items = self._bound_items(self._build_items(chunks, facts))
        context = GatheredContext(
            context_text=render_context_items(items),
            chunks=chunks,
            facts=facts,
            items=items,
        )

        LOGGER.info(
            "Context gathered",
            extra={
                "organization_id": request.organization_id,
                "chunks": len(chunks),
                "facts": len(facts),
                "items": len(items),
            },
        )
        return context

    def summarize(self, chunks: List[RetrievedChunk], facts: List[FactRecord]) -> str:
        """Short description of the available context for the outline prompt."""
        parts = []
        if chunks:
            doc_names = list(dict.fromkeys(c.metadata.document_name for c in chunks))
            parts.append(f"{len(chunks)} document chunks from: {', '.join(doc_names)}")
        if facts:
            parts.append(f"{len(facts)} verified facts")
        return "\n".join(parts) if parts else NO_CONTEXT_SUMMARY

    def _build_items(
        self, chunks: List[RetrievedChunk], facts: List[FactRecord]
    ) -> List[ContextItem]:
        items: List[ContextItem] = []

        seen_content = set()
        for chunk in sorted(chunks, key=lambda c: c.score, reverse=True):
            key = _WHITESPACE.sub(" ", chunk.content).strip().lower()
            if not key or key in seen_content:
                continue
            seen_content.add(key)
            items.append(
                ContextItem(
                    kind="chunk",
                    source_id=chunk.id,
                    text=chunk.content.strip(),
                    document_id=chunk.metadata.document_id,
                    document_name=chunk.metadata.document_name,
                    page_number=chunk.metadata.page_number,
                    score=chunk.score,
                )
            )

        seen_triples = set()
        for fact in facts:
            key = (fact.subject.lower(), fact.predicate.lower(), fact.object.lower())
            if key in seen_triples:
                continue
            seen_triples.add(key)
            items.append(
                ContextItem(
                    kind="fact",
                    source_id=fact.id,
                    text=fact.triple,
                    document_id=fact.document_id,
                    document_name=fact.document_name,
                    score=fact.confidence,
                )
            )

        return items

    def _bound_items(self, items: List[ContextItem]) -> List[ContextItem]:
        """Keep the highest ranked items that fit the token budget."""
        kept: List[ContextItem] = []
        used = 0
        for item in items:
            cost = self.token_counter.count_tokens(item.text) + _ITEM_OVERHEAD_TOKENS
            if used + cost > self.max_context_tokens:
                LOGGER.debug(
                    "Context budget reached",
                    extra={"kept": len(kept), "dropped": len(items) - len(kept)},
                )
                break
            kept.append(item)
            used += cost
        return kept
