"""
OpenAI embeddings with a Redis-backed cache for query text.
"""

import asyncio
from typing import List, Optional

import numpy as np
from openai import AsyncOpenAI, OpenAIError

from pharmasync.cache.hot_cache import HotCache
from pharmasync.errors import EmbeddingError
from pharmasync.utils.logger import get_logger

logger = get_logger("search.embeddings")


class EmbeddingClient:
    """
    Thin wrapper over openai.AsyncOpenAI.embeddings.

    Query embeddings are cached in the hot cache for an hour; catalog
    embeddings during sync bypass the cache and sleep `delay` seconds after
    each call to stay under provider rate limits.
    """

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: str = "text-embedding-3-small",
        hot_cache: Optional[HotCache] = None,
        max_input_chars: int = 8000,
        delay: float = 0.05,
    ):
        self._client = client
        self.model = model
        self.hot_cache = hot_cache
        self.max_input_chars = max_input_chars
        self.delay = delay

    @property
    def client(self) -> AsyncOpenAI:
        # Created lazily so importing without OPENAI_API_KEY still works
        if self._client is None:
            self._client = AsyncOpenAI()
        return self._client

    async def _create(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.model,
                input=text[: self.max_input_chars],
            )
        except OpenAIError as e:
            raise EmbeddingError(f"Embedding request failed: {e}") from e
        if not response.data:
            raise EmbeddingError("Embedding response contained no data")
        vector = np.asarray(response.data[0].embedding, dtype=np.float32)
        if vector.ndim != 1 or not vector.size or not np.isfinite(vector).all():
            raise EmbeddingError(f"Malformed embedding of shape {vector.shape}")
        return vector.tolist()

    async def embed_query(self, text: str) -> List[float]:
        """Embed search text, using the hot cache when available."""
        text = (text or "").strip()
        if not text:
            raise EmbeddingError("Cannot embed empty text")

        if self.hot_cache is not None:
            cached = await asyncio.to_thread(self.hot_cache.get_embedding, text)
            if cached:
                logger.debug(f"Embedding cache hit for '{text[:40]}'")
                return cached

        embedding = await self._create(text)

        if self.hot_cache is not None:
            await asyncio.to_thread(self.hot_cache.set_embedding, text, embedding)
        return embedding

    async def embed_document(self, text: str) -> List[float]:
        """Embed catalog text (uncached), then pause for rate limiting."""
        if not text:
            raise EmbeddingError("Cannot embed empty text")
        embedding = await self._create(text)
        if self.delay:
            await asyncio.sleep(self.delay)
        return embedding
