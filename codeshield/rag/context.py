"""
RAG Context Builder - Assembles retrieved chunks into grounding context.

Formats chunks as numbered sources for inclusion in LLM prompts, within a
token budget.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import tiktoken

from codeshield.rag.store import ScoredChunk
from codeshield.utils import setup_logging

logger = setup_logging()

# Default token budgets
DEFAULT_MAX_TOKENS = 4000
DEFAULT_CHUNK_OVERHEAD = 20  # tokens for the "Source N (...)" line

NO_CONTEXT_TEXT = "No security knowledge documents were retrieved."


class Encoding(Protocol):
    def encode(self, text: str) -> list[int]: ...

    def decode(self, tokens: list[int]) -> str: ...


def unique_sources(results: list[ScoredChunk]) -> list[str]:
    """De-duplicated, order-preserving list of result sources."""
    seen: set[str] = set()
    sources: list[str] = []
    for result in results:
        source = result.chunk.source
        if source and source not in seen:
            seen.add(source)
            sources.append(source)
    return sources


@dataclass
class GroundingContext:
    """Assembled context ready for prompt injection."""

    context_text: str
    sources: list[str] = field(default_factory=list)
    total_tokens: int = 0
    chunks_included: int = 0
    chunks_truncated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "context_text": self.context_text,
            "sources": list(self.sources),
            "total_tokens": self.total_tokens,
            "chunks_included": self.chunks_included,
            "chunks_truncated": self.chunks_truncated,
        }


class RAGContextBuilder:
    """
    Builds LLM-ready context from search results.

    Features:
    - Token budget management (tiktoken)
    - Source/language/category tags per chunk
    - Source de-duplication for citations
    """

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        model: str = "gpt-4",
        encoding: Encoding | None = None,
    ):
        """
        Initialize context builder.

        Args:
            max_tokens: Maximum tokens for assembled context
            model: Model name for tokenization
            encoding: Pre-built tokenizer (loaded lazily from tiktoken if omitted)
        """
        self.max_tokens = max_tokens
        self.model = model
        self._encoding = encoding

    @property
    def encoding(self) -> Encoding:
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                # Fallback to cl100k_base (GPT-4 family)
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return self._encoding

    def count_tokens(self, text: str) -> int:
        """Count tokens in text."""
        return len(self.encoding.encode(text))

    def format_chunk(self, position: int, result: ScoredChunk) -> str:
        chunk = result.chunk
        return (
            f"Source {position} ({chunk.source} - {chunk.language}/{chunk.category}):\n"
            f"{chunk.content}"
        )

    def assemble_context(self, results: list[ScoredChunk]) -> GroundingContext:
        """
        Assemble search results into grounding context.

        Chunks are added in rank order until the budget is spent; the
        chunk that crosses the budget is truncated if enough room is left.

        Args:
            results: Ranked search results

        Returns:
            GroundingContext with the text and the cited sources
        """
        if not results:
            return GroundingContext(context_text=NO_CONTEXT_TEXT)

        parts: list[str] = []
        included: list[ScoredChunk] = []
        tokens_used = 0
        chunks_truncated = 0

        for position, result in enumerate(results, start=1):
            chunk_text = self.format_chunk(position, result)
            chunk_tokens = self.count_tokens(chunk_text) + DEFAULT_CHUNK_OVERHEAD

            if tokens_used + chunk_tokens > self.max_tokens:
                remaining_tokens = self.max_tokens - tokens_used - DEFAULT_CHUNK_OVERHEAD
                if remaining_tokens > 100:  # Worth including partial
                    truncated_text = self._truncate_to_tokens(chunk_text, remaining_tokens)
                    parts.append(truncated_text)
                    tokens_used += self.count_tokens(truncated_text) + DEFAULT_CHUNK_OVERHEAD
                    included.append(result)
                    chunks_truncated += 1
                break

            parts.append(chunk_text)
            included.append(result)
            tokens_used += chunk_tokens

        logger.info(
            f"Assembled context: {len(included)} chunks, {tokens_used} tokens, "
            f"{chunks_truncated} truncated"
        )

        return GroundingContext(
            context_text="\n\n".join(parts),
            sources=unique_sources(included),
            total_tokens=tokens_used,
            chunks_included=len(included),
            chunks_truncated=chunks_truncated,
        )

    def _truncate_to_tokens(self, text: str, max_tokens: int) -> str:
        """Truncate text to fit within token budget."""
        tokens = self.encoding.encode(text)
        if len(tokens) <= max_tokens:
            return text

        truncated_text = self.encoding.decode(tokens[:max_tokens])

        # Add ellipsis to indicate truncation
        return truncated_text.rstrip() + "..."
