"""
Sentence-transformers embedding service.

Produces normalized prompt and chunk embeddings for vector search.
"""

import asyncio
from typing import List, Optional

from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


class SentenceTransformerEmbeddingService:
    """Embeds text with a local sentence-transformers model.

    The model is loaded on first use and encoding runs in a worker thread
    so the event loop is never blocked.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        self.model_name = model_name
        self._model = None

    @property
    def model(self):
        """Lazy loader for the SentenceTransformer model."""
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            LOGGER.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    async def generate_embedding(self, text: str) -> List[float]:
        # SentenceTransformer.encode is CPU-bound; run in a thread
        vector = await asyncio.to_thread(
            self.model.encode, text, normalize_embeddings=True, show_progress_bar=False
        )
        return vector.tolist()

    async def generate_embeddings(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(
            self.model.encode, texts, normalize_embeddings=True, show_progress_bar=False
        )
        return [v.tolist() for v in vectors]

    @property
    def dimension(self) -> Optional[int]:
        if self._model is None:
            return None
        return self._model.get_sentence_embedding_dimension()
