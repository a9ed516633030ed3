"""
In-process vector and fact stores.

Both are scoped by organization. They back local development and tests;
production deployments provide their own implementations of the same
interfaces.
"""

import asyncio
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from pagegen.schemas.generation import ChunkMetadata, FactRecord, RetrievedChunk
from pagegen.services.interfaces import SearchOptions
from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass
class _StoredChunk:
    id: str
    content: str
    metadata: ChunkMetadata


class InMemoryVectorStore:
    """Cosine-similarity search over chunks held in memory."""

    def __init__(self):
        self._chunks: Dict[str, List[_StoredChunk]] = defaultdict(list)
        self._vectors: Dict[str, List[np.ndarray]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def add(
        self, chunk_id: str, content: str, vector: List[float], metadata: ChunkMetadata
    ) -> None:
        array = np.asarray(vector, dtype=np.float32)
        norm = np.linalg.norm(array)
        if norm == 0:
            raise ValueError(f"Chunk {chunk_id} has a zero embedding vector")

        async with self._lock:
            scope = metadata.organization_id
            self._chunks[scope].append(_StoredChunk(chunk_id, content, metadata))
            self._vectors[scope].append(array / norm)

    async def search(
        self, vector: List[float], scope_id: str, options: SearchOptions
    ) -> List[RetrievedChunk]:
        async with self._lock:
            chunks = list(self._chunks.get(scope_id, []))
            vectors = list(self._vectors.get(scope_id, []))

        if not chunks:
            return []

        query = np.asarray(vector, dtype=np.float32)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []

        scores = np.stack(vectors) @ (query / norm)

        ranked: List[Tuple[float, _StoredChunk]] = []
        for score, chunk in zip(scores.tolist(), chunks):
            if options.document_id and chunk.metadata.document_id != options.document_id:
                continue
            score = min(max(score, 0.0), 1.0)
            if score < options.min_score:
                continue
            ranked.append((score, chunk))

        ranked.sort(key=lambda pair: pair[0], reverse=True)

        LOGGER.debug(
            "Vector search complete",
            extra={"scope_id": scope_id, "candidates": len(chunks), "matches": len(ranked)},
        )
        return [
            RetrievedChunk(id=chunk.id, content=chunk.content, score=score, metadata=chunk.metadata)
            for score, chunk in ranked[: options.top_k]
        ]

    def count(self, scope_id: str) -> int:
        return len(self._chunks.get(scope_id, []))


class InMemoryFactStore:
    """Facts keyed by (organization, company)."""

    def __init__(self):
        self._facts: Dict[Tuple[str, str], List[FactRecord]] = defaultdict(list)

    async def add(self, company_id: str, scope_id: str, fact: FactRecord) -> None:
        self._facts[(scope_id, company_id)].append(fact)

    async def find_facts(
        self, company_id: str, scope_id: str, max_facts: int
    ) -> List[FactRecord]:
        facts = sorted(
            self._facts.get((scope_id, company_id), []),
            key=lambda f: f.confidence,
            reverse=True,
        )
        return facts[:max_facts]
