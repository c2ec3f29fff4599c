"""Tests for grounding context assembly."""

from codeshield.rag.chunker import Chunk
from codeshield.rag.context import NO_CONTEXT_TEXT, RAGContextBuilder, unique_sources
from codeshield.rag.store import ScoredChunk


def scored(content, source="a.md", language="all", category="general", score=0.9):
    chunk = Chunk(content=content, source=source, language=language, category=category)
    return ScoredChunk(chunk=chunk, score=score)


def test_empty_results(context_builder):
    context = context_builder.assemble_context([])
    assert context.context_text == NO_CONTEXT_TEXT
    assert context.sources == []
    assert context.chunks_included == 0


def test_numbered_source_lines(context_builder):
    context = context_builder.assemble_context([
        scored("Use bcrypt.", source="hashing.md", language="python", category="password_hashing"),
        scored("Sign JWTs with RS256.", source="jwt.md", category="jwt"),
    ])

    assert context.context_text == (
        "Source 1 (hashing.md - python/password_hashing):\nUse bcrypt.\n\n"
        "Source 2 (jwt.md - all/jwt):\nSign JWTs with RS256."
    )
    assert context.sources == ["hashing.md", "jwt.md"]
    assert context.chunks_included == 2
    assert context.chunks_truncated == 0


def test_truncates_chunk_crossing_budget(encoding):
    builder = RAGContextBuilder(max_tokens=150, encoding=encoding)
    long_text = " ".join(f"word{i}" for i in range(300))

    context = builder.assemble_context([scored(long_text), scored("never reached", source="b.md")])

    assert context.chunks_included == 1
    assert context.chunks_truncated == 1
    assert context.context_text.endswith("...")
    assert context.sources == ["a.md"]


def test_unique_sources_preserves_order():
    results = [scored("1", source="b.md"), scored("2", source="a.md"), scored("3", source="b.md")]
    assert unique_sources(results) == ["b.md", "a.md"]
