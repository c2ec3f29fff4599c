"""
Knowledge Store - Insert/search contract over embedded chunks.

Provides:
- cosine_similarity: zero-safe ranking function
- RetrievalFilter / ScoredChunk: search inputs and outputs
- KnowledgeStore: abstract async contract shared by every backend
- InMemoryKnowledgeStore: exact linear scan for small knowledge bases and tests

The pgvector-backed implementation lives in repository.py.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

from codeshield.errors import DimensionMismatch
from codeshield.rag.chunker import Chunk, EmbeddedChunk
from codeshield.utils import setup_logging

logger = setup_logging()

ANY_LANGUAGE = "all"


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Returns 0.0 when either vector has zero norm.
    """
    if len(a) != len(b):
        raise DimensionMismatch(len(a), len(b), "Compared vector")

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


@dataclass(frozen=True)
class RetrievalFilter:
    """Optional equality constraints applied before ranking."""

    language: str | None = None
    category: str | None = None

    @property
    def language_constraint(self) -> str | None:
        """Requested language, or None when any language is acceptable."""
        if not self.language or self.language == ANY_LANGUAGE:
            return None
        return self.language

    def matches(self, language: str, category: str) -> bool:
        requested = self.language_constraint
        # Stored "all" is language-agnostic content and satisfies any request
        if requested and language not in (requested, ANY_LANGUAGE):
            return False
        if self.category and category != self.category:
            return False
        return True


@dataclass(frozen=True)
class ScoredChunk:
    """A retrieved chunk (without embedding) and its similarity score."""

    chunk: Chunk
    score: float

    def to_dict(self) -> dict[str, Any]:
        data = self.chunk.to_dict()
        data["score"] = round(self.score, 4)
        return data


class KnowledgeStore(ABC):
    """
    Abstract base class for knowledge stores.

    Provides a consistent interface for the in-process store and pgvector,
    so callers switch backends through configuration only.
    """

    def __init__(self, dimensions: int):
        self.dimensions = dimensions

    def check_vector(self, vector: Sequence[float], context: str = "Query vector") -> None:
        if len(vector) != self.dimensions:
            raise DimensionMismatch(self.dimensions, len(vector), context)

    def check_chunks(self, chunks: Sequence[EmbeddedChunk]) -> None:
        """Reject the whole batch if any chunk has a bad embedding."""
        for chunk in chunks:
            self.check_vector(chunk.embedding, f"Embedding of {chunk.source}#{chunk.index}")

    @abstractmethod
    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> None:
        """
        Insert a batch of embedded chunks.

        The batch becomes visible to searches all at once or not at all.
        Empty input is a no-op.
        """

    @abstractmethod
    async def search(
        self,
        query_vector: Sequence[float],
        filter: RetrievalFilter | None = None,
        k: int = 8,
    ) -> list[ScoredChunk]:
        """
        Return up to k eligible chunks in descending score order.

        Ties keep insertion order (earlier first).

        Raises:
            DimensionMismatch: If the query vector has the wrong size
        """

    @abstractmethod
    async def delete_by_source(self, source: str) -> int:
        """Delete every chunk of a source. Returns the number deleted."""

    @abstractmethod
    async def replace_source(self, source: str, chunks: Sequence[EmbeddedChunk]) -> int:
        """
        Atomically swap every chunk of a source for a new batch.

        The batch is validated before anything is deleted; on failure the
        previous chunks stay in place. Returns the number of chunks removed.
        """

    @abstractmethod
    async def count(self, source: str | None = None) -> int:
        """Count chunks, optionally for one source."""

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryKnowledgeStore(KnowledgeStore):
    """
    Exact in-process store using a linear cosine scan.

    Safe for concurrent inserts and reads from threads and tasks: each
    batch is validated first, then appended under a lock.
    """

    def __init__(self, dimensions: int = 1536):
        super().__init__(dimensions)
        self._lock = threading.Lock()
        self._rows: list[tuple[int, EmbeddedChunk]] = []
        self._next_seq = 0

    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> None:
        if not chunks:
            return

        self.check_chunks(chunks)

        with self._lock:
            start = self._next_seq
            self._rows.extend((start + i, chunk) for i, chunk in enumerate(chunks))
            self._next_seq = start + len(chunks)

        logger.info(f"Inserted {len(chunks)} chunks into in-memory store")

    async def search(
        self,
        query_vector: Sequence[float],
        filter: RetrievalFilter | None = None,
        k: int = 8,
    ) -> list[ScoredChunk]:
        self.check_vector(query_vector)
        if k <= 0:
            return []

        with self._lock:
            rows = list(self._rows)

        filter = filter or RetrievalFilter()
        scored = [
            (cosine_similarity(query_vector, chunk.embedding), seq, chunk)
            for seq, chunk in rows
            if filter.matches(chunk.language, chunk.category)
        ]
        scored.sort(key=lambda item: (-item[0], item[1]))

        return [ScoredChunk(chunk=chunk.to_chunk(), score=score) for score, _, chunk in scored[:k]]

    async def delete_by_source(self, source: str) -> int:
        with self._lock:
            before = len(self._rows)
            self._rows = [row for row in self._rows if row[1].source != source]
            deleted = before - len(self._rows)

        logger.info(f"Deleted {deleted} chunks for source {source}")
        return deleted

    async def replace_source(self, source: str, chunks: Sequence[EmbeddedChunk]) -> int:
        self.check_chunks(chunks)

        with self._lock:
            before = len(self._rows)
            kept = [row for row in self._rows if row[1].source != source]
            deleted = before - len(kept)
            start = self._next_seq
            kept.extend((start + i, chunk) for i, chunk in enumerate(chunks))
            self._rows = kept
            self._next_seq = start + len(chunks)

        logger.info(f"Replaced {deleted} chunks of {source} with {len(chunks)}")
        return deleted

    async def count(self, source: str | None = None) -> int:
        with self._lock:
            if source is None:
                return len(self._rows)
            return sum(1 for _, chunk in self._rows if chunk.source == source)
