"""Embedding generation with bounded concurrent fan-out."""
import asyncio
from typing import List, Sequence
import httpx
import structlog

from pdfchat.errors import EmbeddingServiceError
from pdfchat.llm_client import OllamaClient

logger = structlog.get_logger()


class EmbeddingClient:
    """Turns texts into vectors through the embedding service.

    Individual texts are embedded concurrently, at most ``max_concurrency``
    requests in flight at once. Results are always returned in input order.
    A failure of any single call fails the whole batch.
    """

    def __init__(self, llm: OllamaClient, model: str = None, max_concurrency: int = 8):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.llm = llm
        self.model = model or llm.embedding_model
        self.max_concurrency = max_concurrency

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text.

        Raises:
            EmbeddingServiceError: If the service fails or returns no vector
        """
        try:
            response = await self.llm.embeddings(prompt=text, model=self.model)
        except httpx.HTTPError as e:
            raise EmbeddingServiceError(f"Failed to generate embedding: {e}", cause=e) from e

        embedding = response.get("embedding") or []
        if not embedding:
            raise EmbeddingServiceError("Empty embedding returned for text")
        return [float(value) for value in embedding]

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed a batch of texts, one vector per text, order-preserving.

        Args:
            texts: Texts to embed

        Returns:
            List of vectors positionally matching ``texts``

        Raises:
            EmbeddingServiceError: If any individual embedding call fails
        """
        if not texts:
            return []

        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _bounded(text: str) -> List[float]:
            async with semaphore:
                return await self.embed_one(text)

        tasks = [asyncio.ensure_future(_bounded(text)) for text in texts]
        try:
            # gather keeps positional order regardless of completion order
            vectors = await asyncio.gather(*tasks)
        except EmbeddingServiceError as e:
            for task in tasks:
                task.cancel()
            logger.error(
                "embedding_batch_failed",
                batch_size=len(texts),
                model=self.model,
                error=str(e),
            )
            raise

        dimensions = {len(vector) for vector in vectors}
        if len(dimensions) > 1:
            raise EmbeddingServiceError(
                f"Embedding service returned mixed dimensions: {sorted(dimensions)}"
            )

        logger.debug(
            "embeddings_generated",
            count=len(vectors),
            dimension=len(vectors[0]),
            model=self.model,
        )
        return list(vectors)

    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query text."""
        vectors = await self.embed([text])
        return vectors[0]
