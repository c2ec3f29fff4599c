"""Tests for the ingestion pipeline."""

import asyncio
import threading

import pytest

from codeshield.errors import DimensionMismatch, EmptyContent
from codeshield.rag.chunker import TextChunker
from codeshield.rag.embeddings import EmbeddingService
from codeshield.rag.indexer import KnowledgeIndexer
from codeshield.rag.store import InMemoryKnowledgeStore

from conftest import VOCAB, FakeProvider, sentence

JWT_POLICY = " ".join(
    [
        "Sign every JWT token with RS256 and rotate keys quarterly.",
        sentence("jwt", 30),
        "You must never accept tokens signed with the none algorithm.",
        sentence("exp", 30),
        "Validate the audience and issuer of each token before trusting it.",
        sentence("aud", 30),
    ]
)


def make_indexer(provider=None, min_ingest_tokens=None):
    store = InMemoryKnowledgeStore(dimensions=len(VOCAB))
    indexer = KnowledgeIndexer(
        TextChunker(target_tokens=60, overlap_tokens=10, min_tokens=20),
        EmbeddingService(provider or FakeProvider(), dimensions=len(VOCAB), max_workers=2),
        store,
        min_ingest_tokens=min_ingest_tokens,
    )
    return indexer, store


class TestKnowledgeIndexer:
    @pytest.mark.asyncio
    async def test_blank_text_raises(self):
        indexer, _ = make_indexer()
        with pytest.raises(EmptyContent):
            await indexer.ingest("   \n ", {"source": "empty.md"})

    @pytest.mark.asyncio
    async def test_ingest_stores_classified_chunks(self):
        indexer, store = make_indexer()

        result = await indexer.ingest(JWT_POLICY, {"source": "node-jwt.md"})

        assert result.source == "node-jwt.md"
        assert result.language == "javascript"
        assert result.chunks_processed > 1
        assert await store.count(source="node-jwt.md") == result.chunks_processed

        chunks = indexer.prepare_chunks(JWT_POLICY, {"source": "node-jwt.md"})
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert {c.total_chunks for c in chunks} == {len(chunks)}
        assert chunks[0].category == "jwt"
        assert chunks[0].metadata["topic"] == "jwt"
        assert {"type", "severity", "topic"} <= set(chunks[0].metadata)
        forbidden = [c for c in chunks if c.metadata["type"] == "forbidden"]
        assert forbidden
        assert all(c.metadata["reason"] == "Violates company security policy" for c in forbidden)

    @pytest.mark.asyncio
    async def test_hints_override_inferred_tags(self):
        indexer, _ = make_indexer()

        chunks = indexer.prepare_chunks(
            JWT_POLICY,
            {"source": "node-jwt.md", "language": "go", "category": "github_code", "team": "appsec"},
        )

        assert {c.language for c in chunks} == {"go"}
        assert {c.category for c in chunks} == {"github_code"}
        assert all(c.metadata["team"] == "appsec" for c in chunks)

    @pytest.mark.asyncio
    async def test_small_chunks_are_not_ingested(self):
        indexer, store = make_indexer(min_ingest_tokens=200)

        result = await indexer.ingest("Rotate secrets often.", {"source": "tiny.md"})

        assert result.chunks_processed == 0
        assert await store.count() == 0

        result = await indexer.ingest("Rotate secrets often.", {"source": "tiny.md"}, min_tokens=1)
        assert result.chunks_processed == 1

    @pytest.mark.asyncio
    async def test_failed_embedding_inserts_nothing(self):
        indexer, store = make_indexer(FakeProvider(fail_on="audience"))

        with pytest.raises(DimensionMismatch):
            await indexer.ingest(JWT_POLICY, {"source": "node-jwt.md"})

        assert await store.count() == 0

    @pytest.mark.asyncio
    async def test_reindex_replaces_source(self):
        indexer, store = make_indexer()

        first = await indexer.ingest(JWT_POLICY, {"source": "jwt.md"})
        second = await indexer.reindex(JWT_POLICY, {"source": "jwt.md"})

        assert second.chunks_processed == first.chunks_processed
        assert await store.count(source="jwt.md") == first.chunks_processed

    @pytest.mark.asyncio
    async def test_failed_reindex_keeps_previous_chunks(self):
        provider = FakeProvider()
        indexer, store = make_indexer(provider)

        first = await indexer.ingest(JWT_POLICY, {"source": "jwt.md"})
        provider.fail_on = "audience"

        with pytest.raises(DimensionMismatch):
            await indexer.reindex(JWT_POLICY, {"source": "jwt.md"})

        assert await store.count(source="jwt.md") == first.chunks_processed

    @pytest.mark.asyncio
    async def test_cancelled_ingest_inserts_nothing(self):
        started = threading.Event()
        release = threading.Event()

        class SlowProvider(FakeProvider):
            def embed(self, text):
                started.set()
                release.wait(5)
                return super().embed(text)

        indexer, store = make_indexer(SlowProvider())
        task = asyncio.create_task(indexer.ingest(JWT_POLICY, {"source": "jwt.md"}))

        assert await asyncio.to_thread(started.wait, 5)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        release.set()

        assert await store.count() == 0
