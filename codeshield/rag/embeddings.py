"""
Embedding Service - Validated embeddings with a degraded-mode fallback.

Wraps an EmbeddingProvider (text-embedding-3-small, 1536 dimensions by
default). When the provider is unconfigured or a call fails, a random
vector of the right dimension is returned so ingestion and queries keep
working; similarity scores are meaningless in that mode.
"""

from __future__ import annotations

import random
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import TYPE_CHECKING

from codeshield.errors import DimensionMismatch, ProviderError, ProviderUnavailable
from codeshield.utils import setup_logging

if TYPE_CHECKING:
    from codeshield.openai_client import EmbeddingProvider

logger = setup_logging()

DEFAULT_DIMENSIONS = 1536


class EmbeddingService:
    """
    Embedding gateway in front of the external provider.

    Supports:
    - Single text embedding with strict dimension checks
    - Random fallback vectors when the provider is unavailable or fails
    - Bounded parallel embedding of a document's chunks
    """

    def __init__(
        self,
        provider: "EmbeddingProvider",
        dimensions: int = DEFAULT_DIMENSIONS,
        max_workers: int = 4,
        rng: random.Random | None = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: Object exposing `available` and `embed(text)`
            dimensions: Required vector length
            max_workers: Default parallelism for embed_many
            rng: Random source for fallback vectors
        """
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")

        self.provider = provider
        self.dimensions = dimensions
        self.max_workers = max(1, max_workers)
        self._rng = rng or random.Random()

    def fallback_vector(self) -> list[float]:
        """Random vector in [0, 1) of the configured dimension."""
        return [self._rng.random() for _ in range(self.dimensions)]

    def embed(self, text: str) -> list[float]:
        """
        Generate an embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector with exactly `dimensions` elements

        Raises:
            DimensionMismatch: If the provider returns a vector of the wrong size
        """
        if not self.provider.available:
            logger.warning("Embedding provider not configured. Using fallback embedding.")
            return self.fallback_vector()

        try:
            embedding = self.provider.embed(text)
        except (ProviderUnavailable, ProviderError) as e:
            logger.warning(f"Embedding provider failed, using fallback embedding: {e}")
            return self.fallback_vector()

        if len(embedding) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(embedding), "Provider embedding")

        try:
            return [float(x) for x in embedding]
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed provider embedding, using fallback embedding: {e}")
            return self.fallback_vector()

    def embed_many(
        self,
        texts: list[str],
        max_workers: int | None = None,
    ) -> list[list[float]]:
        """
        Embed several texts in parallel, preserving input order.

        All-or-nothing: the first failure cancels pending work and is raised.

        Args:
            texts: Texts to embed
            max_workers: Thread pool size (defaults to the service setting)

        Returns:
            List of embedding vectors aligned with `texts`
        """
        if not texts:
            return []

        workers = min(max_workers or self.max_workers, len(texts))
        results: list[list[float] | None] = [None] * len(texts)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {executor.submit(self.embed, text): i for i, text in enumerate(texts)}
            try:
                for fut in as_completed(futures):
                    results[futures[fut]] = fut.result()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise

        logger.info(f"Generated embeddings for {len(texts)} chunks")
        return [vector for vector in results if vector is not None]
