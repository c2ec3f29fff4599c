"""
RAG Service - Unified interface for the knowledge pipeline.

Provides a single entry point for:
- Ingesting uploaded documents and repository files
- Answering security questions from retrieved knowledge
- Compliance analysis of source files

Provider calls are blocking `requests` calls and run in worker threads so
the event loop stays responsive.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from codeshield.config import Settings, load_settings
from codeshield.database.pool import close_pool, ensure_vector_extension, init_pool
from codeshield.errors import EmptyContent
from codeshield.extraction import TextExtractor
from codeshield.github_client import GitHubClient, detect_language_from_path, parse_repo_url
from codeshield.openai_client import OpenAIProvider
from codeshield.rag.chunker import TextChunker
from codeshield.rag.composer import AnswerComposer, ComposedAnswer
from codeshield.rag.compliance import MAX_FILE_CHARS, ComplianceAnalyzer, Verdict
from codeshield.rag.context import RAGContextBuilder
from codeshield.rag.embeddings import EmbeddingService
from codeshield.rag.indexer import IngestResult, KnowledgeIndexer
from codeshield.rag.store import InMemoryKnowledgeStore, KnowledgeStore, RetrievalFilter
from codeshield.utils import setup_logging

logger = setup_logging()

GITHUB_CODE_CATEGORY = "github_code"
# Source files are short; keep any chunk with a handful of words
CODE_MIN_INGEST_TOKENS = 10


class RAGService:
    """
    Unified RAG service for the HTTP layer and scripts.

    Orchestrates:
    1. Store selection (in-memory or pgvector) from settings
    2. Ingestion through KnowledgeIndexer
    3. Retrieval + answer composition
    4. Retrieval + compliance analysis
    """

    def __init__(
        self,
        settings: Settings | None = None,
        store: KnowledgeStore | None = None,
        provider: Any | None = None,
        github: GitHubClient | None = None,
        context_builder: RAGContextBuilder | None = None,
    ):
        """
        Initialize RAG service.

        Args:
            settings: Application settings (loads from env if not provided)
            store: Pre-built knowledge store (chosen from settings if omitted)
            provider: Embedding + generative provider (OpenAIProvider if omitted)
            github: Source host client
            context_builder: Grounding context builder
        """
        self.settings = settings or load_settings()
        rag = self.settings.rag

        self.provider = provider or OpenAIProvider(self.settings.openai)
        self.github = github or GitHubClient(self.settings.github)
        self.extractor = TextExtractor()

        self.embedding_service = EmbeddingService(
            self.provider,
            dimensions=rag.embedding_dimensions,
            max_workers=rag.embed_workers,
        )
        self.chunker = TextChunker(
            target_tokens=rag.chunk_target_tokens,
            overlap_tokens=rag.chunk_overlap_tokens,
            min_tokens=rag.chunk_min_tokens,
        )
        context_builder = context_builder or RAGContextBuilder(max_tokens=rag.max_context_tokens)
        self.composer = AnswerComposer(self.provider, context_builder)
        self.analyzer = ComplianceAnalyzer(self.provider, context_builder)

        self._store = store
        self._indexer: KnowledgeIndexer | None = None
        self._owns_pool = False
        self._initialized = False

    async def initialize(self) -> None:
        """Create the configured store (and database pool) if needed."""
        if self._initialized:
            return

        rag = self.settings.rag
        try:
            if self._store is None:
                if rag.store_backend == "postgresql":
                    # Imported here so the memory backend never needs a database
                    from codeshield.rag.repository import PgVectorKnowledgeStore

                    await ensure_vector_extension(self.settings.database)
                    await init_pool(self.settings.database)
                    self._owns_pool = True
                    store = PgVectorKnowledgeStore(
                        dimensions=rag.embedding_dimensions,
                        schema=self.settings.database.schema,
                    )
                    await store.ensure_schema()
                    self._store = store
                else:
                    self._store = InMemoryKnowledgeStore(dimensions=rag.embedding_dimensions)

            self._indexer = KnowledgeIndexer(
                self.chunker,
                self.embedding_service,
                self._store,
                min_ingest_tokens=rag.min_ingest_tokens,
                max_workers=rag.embed_workers,
            )
            self._initialized = True
            logger.info(
                f"RAG service initialized (store={type(self._store).__name__}, "
                f"provider_available={self.provider.available})"
            )
        except Exception as e:
            logger.error(f"Failed to initialize RAG service: {e}")
            raise

    @property
    def store(self) -> KnowledgeStore:
        if self._store is None or not self._initialized:
            raise RuntimeError("RAG service not initialized. Call initialize() first.")
        return self._store

    @property
    def indexer(self) -> KnowledgeIndexer:
        if self._indexer is None:
            raise RuntimeError("RAG service not initialized. Call initialize() first.")
        return self._indexer

    async def ingest(
        self,
        text: str,
        hints: dict[str, Any] | None = None,
        replace_existing: bool = False,
    ) -> IngestResult:
        """
        Ingest a document.

        Args:
            text: Document text
            hints: Optional source/language/category plus extra metadata
            replace_existing: Delete the source's previous chunks first

        Returns:
            IngestResult
        """
        await self.initialize()
        if replace_existing:
            return await self.indexer.reindex(text, hints)
        return await self.indexer.ingest(text, hints)

    async def ingest_upload(
        self,
        file_bytes: bytes,
        mime_type: str | None,
        filename: str | None,
    ) -> IngestResult:
        """Extract text from an uploaded file and ingest it under its filename."""
        text = self.extractor.extract(file_bytes, mime_type, filename)
        return await self.ingest(text, {"source": filename or "upload"})

    async def query(
        self,
        text: str,
        language: str | None = None,
        top_k: int | None = None,
    ) -> ComposedAnswer:
        """
        Answer a security question.

        Args:
            text: User question
            language: Optional language filter ("all" or None for any)
            top_k: Number of chunks to retrieve

        Returns:
            ComposedAnswer
        """
        if not text or not text.strip():
            raise EmptyContent("Query is required")

        await self.initialize()
        start_time = time.time()

        query_vector = await asyncio.to_thread(self.embedding_service.embed, text)
        results = await self.store.search(
            query_vector,
            RetrievalFilter(language=language),
            k=top_k or self.settings.rag.top_k,
        )
        answer = await asyncio.to_thread(self.composer.compose, text, results)

        logger.info(
            f"Query answered: {len(results)} chunks, fallback={answer.used_fallback}, "
            f"{(time.time() - start_time) * 1000:.0f}ms"
        )
        return answer

    async def analyze_file(self, path: str, content: str) -> Verdict:
        """
        Compliance-check one source file.

        Args:
            path: File path (drives language detection)
            content: File text

        Returns:
            Verdict
        """
        if not content or not content.strip():
            raise EmptyContent(f"File {path} has no content to analyze")

        await self.initialize()

        language = detect_language_from_path(path)
        query_vector = await asyncio.to_thread(
            self.embedding_service.embed, content[:MAX_FILE_CHARS]
        )
        results = await self.store.search(
            query_vector,
            RetrievalFilter(language=language),
            k=self.settings.rag.top_k,
        )
        return await asyncio.to_thread(self.analyzer.analyze, path, content, results)

    async def list_repository_files(self, repo_url: str, branch: str | None = None) -> dict[str, Any]:
        return await asyncio.to_thread(self.github.list_files, repo_url, branch)

    async def list_repositories(self) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.github.list_user_repos)

    async def _fetch_repository_text(self, repo_url: str, path: str) -> str:
        raw = await asyncio.to_thread(self.github.fetch_file, repo_url, path)
        return raw.decode("utf-8", errors="replace")

    async def scan_repository_file(self, repo_url: str, path: str) -> IngestResult:
        """Ingest one repository file as github_code knowledge."""
        ref = parse_repo_url(repo_url)
        text = await self._fetch_repository_text(repo_url, path)
        hints = {
            "source": ref.source_tag(path),
            "language": detect_language_from_path(path),
            "category": GITHUB_CODE_CATEGORY,
        }

        await self.initialize()
        return await self.indexer.reindex(text, hints, min_tokens=CODE_MIN_INGEST_TOKENS)

    async def analyze_repository_file(self, repo_url: str, path: str) -> Verdict:
        """Fetch one repository file and compliance-check it."""
        ref = parse_repo_url(repo_url)
        text = await self._fetch_repository_text(repo_url, path)
        verdict = await self.analyze_file(path, text)
        verdict.source = ref.source_tag(path)
        return verdict

    async def get_stats(self) -> dict[str, Any]:
        await self.initialize()
        stats: dict[str, Any] = {
            "backend": self.settings.rag.store_backend,
            "provider_available": self.provider.available,
            "total_chunks": await self.store.count(),
        }
        if hasattr(self.store, "get_stats"):
            stats.update(await self.store.get_stats())
        return stats

    async def close(self) -> None:
        """Release the store, database pool and HTTP sessions."""
        if self._store is not None:
            await self._store.close()
        if self._owns_pool:
            await close_pool()
            self._owns_pool = False
        for client in (self.provider, self.github):
            close = getattr(client, "close", None)
            if callable(close):
                close()
        self._initialized = False


# Singleton instance for app-wide usage
_rag_service: RAGService | None = None


async def get_rag_service(settings: Settings | None = None) -> RAGService:
    """
    Get or create the RAG service singleton.

    Args:
        settings: Optional settings override

    Returns:
        Initialized RAGService instance
    """
    global _rag_service

    if _rag_service is None:
        _rag_service = RAGService(settings=settings)
        await _rag_service.initialize()

    return _rag_service


async def close_rag_service() -> None:
    """Close the RAG service and release resources."""
    global _rag_service

    if _rag_service is not None:
        await _rag_service.close()
        _rag_service = None
