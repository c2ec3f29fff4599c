"""
Knowledge Indexer - Orchestrates the ingestion pipeline.

Pipeline: Chunk → Classify → Filter → Embed → Store

A document is ingested all-or-nothing: every embedding is computed before a
single store insert, so a failure or cancellation leaves the store as it was.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, replace
from typing import Any

from codeshield.errors import EmptyContent
from codeshield.rag.chunker import Chunk, EmbeddedChunk, TextChunker, annotate_positions
from codeshield.rag.classifier import FORBIDDEN_REASON, classify
from codeshield.rag.embeddings import EmbeddingService
from codeshield.rag.store import KnowledgeStore
from codeshield.utils import setup_logging

logger = setup_logging()

DEFAULT_SOURCE = "unknown"

# Hint keys consumed by the pipeline; anything else is copied into metadata
_RESERVED_HINTS = ("source", "language", "category")


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    chunks_processed: int
    source: str
    language: str = "all"

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunksProcessed": self.chunks_processed,
            "source": self.source,
            "language": self.language,
        }


class KnowledgeIndexer:
    """
    Ingests documents into a KnowledgeStore.

    Steps:
    1. Chunk the text (sentence packing with overlap)
    2. Classify each chunk; explicit hints override inferred tags
    3. Drop chunks below min_ingest_tokens and renumber the rest
    4. Embed all chunks in parallel
    5. Insert the whole batch at once (reindex swaps the source atomically)
    """

    def __init__(
        self,
        chunker: TextChunker,
        embedding_service: EmbeddingService,
        store: KnowledgeStore,
        min_ingest_tokens: int | None = None,
        max_workers: int | None = None,
    ):
        """
        Initialize the indexer.

        Args:
            chunker: Document chunker
            embedding_service: Embedding gateway
            store: Destination store
            min_ingest_tokens: Smallest chunk stored (defaults to chunker.min_tokens)
            max_workers: Embedding parallelism (defaults to the service setting)
        """
        self.chunker = chunker
        self.embedding_service = embedding_service
        self.store = store
        self.min_ingest_tokens = (
            chunker.min_tokens if min_ingest_tokens is None else min_ingest_tokens
        )
        self.max_workers = max_workers

    def prepare_chunks(
        self,
        text: str,
        hints: dict[str, Any] | None = None,
        min_tokens: int | None = None,
    ) -> list[Chunk]:
        """
        Chunk and classify a document without embedding it.

        Args:
            text: Document text
            hints: Optional source/language/category plus extra metadata
            min_tokens: Per-call override of min_ingest_tokens

        Returns:
            Classified, renumbered chunks ready for embedding
        """
        hints = dict(hints or {})
        source = hints.get("source") or DEFAULT_SOURCE
        extra = {k: v for k, v in hints.items() if k not in _RESERVED_HINTS}

        threshold = self.min_ingest_tokens if min_tokens is None else min_tokens
        raw_chunks = self.chunker.chunk(text, source=source)

        prepared: list[Chunk] = []
        for chunk in raw_chunks:
            if chunk.token_count < threshold:
                logger.debug(
                    f"Skipping chunk {chunk.index} of {source}: "
                    f"{chunk.token_count} < {threshold} tokens"
                )
                continue

            tags = classify(chunk.content, source)
            metadata = dict(extra)
            metadata.update(type=tags.type, severity=tags.severity, topic=tags.topic)
            if tags.is_forbidden:
                metadata["reason"] = FORBIDDEN_REASON

            prepared.append(
                replace(
                    chunk,
                    language=hints.get("language") or tags.language,
                    category=hints.get("category") or tags.topic,
                    metadata=metadata,
                )
            )

        return annotate_positions(prepared)

    async def embed_document(
        self,
        text: str,
        hints: dict[str, Any] | None = None,
        min_tokens: int | None = None,
    ) -> list[EmbeddedChunk]:
        """
        Chunk, classify and embed one document without touching the store.

        Raises:
            EmptyContent: If the text is blank
            DimensionMismatch: If the provider returns wrong-size vectors
        """
        if not text or not text.strip():
            raise EmptyContent("No text content to ingest")

        chunks = self.prepare_chunks(text, hints, min_tokens)
        if not chunks:
            return []

        logger.info(f"Embedding {len(chunks)} chunks for {chunks[0].source}")
        vectors = await asyncio.to_thread(
            self.embedding_service.embed_many,
            [chunk.content for chunk in chunks],
            self.max_workers,
        )
        return [EmbeddedChunk.from_chunk(chunk, vector) for chunk, vector in zip(chunks, vectors)]

    def _result(self, embedded: list[EmbeddedChunk], hints: dict[str, Any]) -> IngestResult:
        source = hints.get("source") or DEFAULT_SOURCE
        language = hints.get("language") or (embedded[0].language if embedded else "all")
        return IngestResult(chunks_processed=len(embedded), source=source, language=language)

    async def ingest(
        self,
        text: str,
        hints: dict[str, Any] | None = None,
        min_tokens: int | None = None,
    ) -> IngestResult:
        """
        Ingest one document.

        Every chunk is embedded before the single store insert, so a failure
        or cancellation leaves the store untouched.

        Args:
            text: Document text
            hints: Optional source/language/category plus extra metadata
            min_tokens: Per-call override of min_ingest_tokens

        Returns:
            IngestResult with the number of chunks stored

        Raises:
            EmptyContent: If the text is blank
            DimensionMismatch: If the provider returns wrong-size vectors
        """
        hints = dict(hints or {})
        start_time = time.time()

        embedded = await self.embed_document(text, hints, min_tokens)
        result = self._result(embedded, hints)

        if not embedded:
            logger.warning(f"No chunks large enough to ingest for {result.source}")
            return result

        await self.store.insert(embedded)

        logger.info(
            f"Ingested {len(embedded)} chunks for {result.source} in {time.time() - start_time:.1f}s"
        )
        return result

    async def reindex(
        self,
        text: str,
        hints: dict[str, Any] | None = None,
        min_tokens: int | None = None,
    ) -> IngestResult:
        """
        Replace every chunk of the hinted source with a fresh ingest.

        The old chunks are swapped out only after the new ones are embedded;
        a failed or cancelled reindex keeps the previous version searchable.
        """
        hints = dict(hints or {})
        embedded = await self.embed_document(text, hints, min_tokens)
        result = self._result(embedded, hints)

        deleted = await self.store.replace_source(result.source, embedded)
        logger.info(
            f"Reindexed {result.source}: {deleted} old chunks replaced by {len(embedded)}"
        )
        return result
