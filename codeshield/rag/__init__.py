"""
RAG (Retrieval-Augmented Generation) package for secure coding knowledge.

This package provides:
- TextChunker: Splits documents into overlapping, token-bounded chunks
- classify: Infers language, topic, type and severity of a chunk
- EmbeddingService: Validated embeddings with a fallback vector
- InMemoryKnowledgeStore / PgVectorKnowledgeStore: Filtered cosine search
- KnowledgeIndexer: Orchestrates the ingestion pipeline
- RAGContextBuilder: Assembles search results into LLM context
- AnswerComposer: Grounded answers with secure/insecure code blocks
- ComplianceAnalyzer: JSON compliance verdicts for source files
- RAGService: Unified service for the HTTP layer
"""

from codeshield.rag.chunker import Chunk, EmbeddedChunk, TextChunker, estimate_tokens, split_sentences
from codeshield.rag.classifier import ChunkClassification, classify
from codeshield.rag.embeddings import EmbeddingService
from codeshield.rag.store import (
    InMemoryKnowledgeStore,
    KnowledgeStore,
    RetrievalFilter,
    ScoredChunk,
    cosine_similarity,
)
from codeshield.rag.context import GroundingContext, RAGContextBuilder
from codeshield.rag.composer import AnswerComposer, ComposedAnswer
from codeshield.rag.compliance import ComplianceAnalyzer, ComplianceStatus, RiskLevel, Verdict
from codeshield.rag.indexer import IngestResult, KnowledgeIndexer
from codeshield.rag.service import RAGService, get_rag_service, close_rag_service

__all__ = [
    "Chunk",
    "EmbeddedChunk",
    "TextChunker",
    "estimate_tokens",
    "split_sentences",
    "ChunkClassification",
    "classify",
    "EmbeddingService",
    "InMemoryKnowledgeStore",
    "KnowledgeStore",
    "RetrievalFilter",
    "ScoredChunk",
    "cosine_similarity",
    "GroundingContext",
    "RAGContextBuilder",
    "AnswerComposer",
    "ComposedAnswer",
    "ComplianceAnalyzer",
    "ComplianceStatus",
    "RiskLevel",
    "Verdict",
    "IngestResult",
    "KnowledgeIndexer",
    "RAGService",
    "get_rag_service",
    "close_rag_service",
]
