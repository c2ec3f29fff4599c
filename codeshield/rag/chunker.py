"""
Text Chunker - Splits documents into overlapping, token-bounded chunks.

Pipeline per document:
- split_sentences: sentence-like units, punctuation preserved
- estimate_tokens: word-count heuristic used for all sizing decisions
- TextChunker: packs sentences into chunks of ~target_tokens, seeding each
  new chunk with the tail of the previous one
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from typing import Any, Sequence

# ~0.75 words per token for English text
TOKENS_PER_WORD = 1.33

DEFAULT_TARGET_TOKENS = 600
DEFAULT_OVERLAP_TOKENS = 100
DEFAULT_MIN_TOKENS = 200

# Terminal punctuation, optional closing quotes/brackets, then whitespace
_SENTENCE_BOUNDARY = re.compile(r"[.!?]+[\])}'\"`’”]*\s+")


def estimate_tokens(text: str) -> int:
    """
    Estimate token count for text.

    Uses ceil(words * 1.33). A sizing heuristic only, not a tokenizer.
    """
    return math.ceil(len(text.split()) * TOKENS_PER_WORD)


def split_sentences(text: str) -> list[str]:
    """
    Split text into trimmed, non-empty sentence-like units.

    Splits after `.`, `!` or `?` (plus any closing quote or bracket) when
    followed by whitespace. Trailing text without terminal punctuation
    becomes the last unit. Only whitespace between units is discarded.
    """
    sentences: list[str] = []
    start = 0
    for match in _SENTENCE_BOUNDARY.finditer(text):
        sentence = text[start:match.end()].strip()
        if sentence:
            sentences.append(sentence)
        start = match.end()

    remainder = text[start:].strip()
    if remainder:
        sentences.append(remainder)

    return sentences


def overlap_suffix(text: str, overlap_tokens: int) -> str:
    """Return the trailing words of text worth ~overlap_tokens tokens."""
    word_count = math.ceil(overlap_tokens / TOKENS_PER_WORD)
    if word_count <= 0:
        return ""
    words = text.split()
    return " ".join(words[-word_count:])


@dataclass
class Chunk:
    """A contiguous span of a source document, the unit of embedding."""

    content: str
    index: int = 0
    total_chunks: int = 1
    token_count: int = 0
    language: str = "all"
    category: str = "general"
    source: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "index": self.index,
            "total_chunks": self.total_chunks,
            "token_count": self.token_count,
            "language": self.language,
            "category": self.category,
            "source": self.source,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class EmbeddedChunk:
    """A chunk paired with its embedding. Never mutated once created."""

    content: str
    index: int
    total_chunks: int
    token_count: int
    language: str
    category: str
    source: str
    metadata: dict[str, Any]
    embedding: tuple[float, ...]

    @classmethod
    def from_chunk(cls, chunk: Chunk, embedding: Sequence[float]) -> "EmbeddedChunk":
        return cls(
            content=chunk.content,
            index=chunk.index,
            total_chunks=chunk.total_chunks,
            token_count=chunk.token_count,
            language=chunk.language,
            category=chunk.category,
            source=chunk.source,
            metadata=dict(chunk.metadata),
            embedding=tuple(float(x) for x in embedding),
        )

    def to_chunk(self) -> Chunk:
        """Drop the embedding, e.g. for search results."""
        return Chunk(
            content=self.content,
            index=self.index,
            total_chunks=self.total_chunks,
            token_count=self.token_count,
            language=self.language,
            category=self.category,
            source=self.source,
            metadata=dict(self.metadata),
        )


def annotate_positions(chunks: list[Chunk]) -> list[Chunk]:
    """Set dense 0-based `index` and shared `total_chunks` on every chunk."""
    total = len(chunks)
    return [replace(chunk, index=i, total_chunks=total) for i, chunk in enumerate(chunks)]


class TextChunker:
    """
    Packs sentences into overlapping chunks bounded by a target token size.

    Boundary policy:
    1. A chunk closes before the sentence that would push its estimate past
       target_tokens. The next chunk starts with the last ~overlap_tokens
       worth of words of the closed chunk, then that sentence. The carried
       words count toward the new chunk, so it may exceed target_tokens by
       up to the overlap.
    2. A sentence larger than target_tokens on its own becomes its own chunk.
    3. The trailing buffer is emitted if it reaches min_tokens; otherwise its
       new text is merged into the previous chunk. A document too small for
       even one min_tokens chunk still yields a single chunk.

    No per-chunk minimum is enforced here; ingestion decides what is too
    small to store.
    """

    def __init__(
        self,
        target_tokens: int = DEFAULT_TARGET_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
        min_tokens: int = DEFAULT_MIN_TOKENS,
    ):
        if target_tokens <= 0:
            raise ValueError("target_tokens must be positive")
        if overlap_tokens < 0 or min_tokens < 0:
            raise ValueError("overlap_tokens and min_tokens must be non-negative")

        self.target_tokens = target_tokens
        self.overlap_tokens = overlap_tokens
        self.min_tokens = min_tokens

    def split(self, text: str) -> list[str]:
        """
        Split text into chunk contents.

        Args:
            text: Arbitrary document text

        Returns:
            Ordered list of chunk strings (empty for blank input)
        """
        if not text or not text.strip():
            return []

        contents: list[str] = []
        buffer = ""
        seed = ""  # overlap prefix of the current buffer

        for sentence in split_sentences(text):
            candidate = f"{buffer} {sentence}" if buffer else sentence

            if buffer and estimate_tokens(candidate) > self.target_tokens:
                contents.append(buffer)
                seed = overlap_suffix(buffer, self.overlap_tokens)
                buffer = f"{seed} {sentence}" if seed else sentence
            else:
                buffer = candidate

        if not buffer:
            return contents

        if estimate_tokens(buffer) >= self.min_tokens or not contents:
            contents.append(buffer)
        else:
            tail = buffer[len(seed):].strip() if seed else buffer
            if tail:
                contents[-1] = f"{contents[-1]} {tail}"

        return contents

    def chunk(
        self,
        text: str,
        source: str = "",
        language: str = "all",
        category: str = "general",
        metadata: dict[str, Any] | None = None,
    ) -> list[Chunk]:
        """
        Chunk a document into annotated Chunk objects.

        Args:
            text: Document text
            source: Source tag shared by every chunk (filename, repo path)
            language: Initial language tag
            category: Initial category tag
            metadata: Metadata copied onto every chunk

        Returns:
            List of Chunk objects with index/total_chunks/token_count set
        """
        chunks = [
            Chunk(
                content=content,
                token_count=estimate_tokens(content),
                language=language,
                category=category,
                source=source,
                metadata=dict(metadata or {}),
            )
            for content in self.split(text)
        ]
        return annotate_positions(chunks)
