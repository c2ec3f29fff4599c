from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

from codeshield.database.settings import DatabaseSettings

load_dotenv()


DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
STORE_BACKENDS = ("memory", "postgresql")


@dataclass
class OpenAISettings:
    """OpenAI-compatible provider settings (OpenRouter by default)."""

    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    chat_model: str = "gpt-4.1-mini"
    embedding_model: str = "text-embedding-3-small"
    temperature: float = 0.2
    timeout_seconds: float = 30.0
    max_retries: int = 3
    retry_backoff: float = 1.5


@dataclass
class RAGSettings:
    embedding_dimensions: int = 1536
    top_k: int = 8
    chunk_target_tokens: int = 600
    chunk_overlap_tokens: int = 100
    chunk_min_tokens: int = 200
    # Chunks below this estimate are not ingested (defaults to chunk_min_tokens)
    min_ingest_tokens: Optional[int] = None
    embed_workers: int = 4
    max_context_tokens: int = 4000
    store_backend: str = "memory"  # 'memory' or 'postgresql'

    def __post_init__(self) -> None:
        if self.min_ingest_tokens is None:
            self.min_ingest_tokens = self.chunk_min_tokens


@dataclass
class GitHubSettings:
    token: Optional[str] = None
    api_base: str = "https://api.github.com"
    timeout_seconds: float = 30.0


@dataclass
class Settings:
    openai: OpenAISettings = field(default_factory=OpenAISettings)
    rag: RAGSettings = field(default_factory=RAGSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _float_env(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def load_settings() -> Settings:
    """Load configuration from environment variables."""

    oa = OpenAISettings(
        api_key=os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY", ""),
        base_url=os.getenv("OPENROUTER_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        chat_model=os.getenv("CHAT_MODEL", "gpt-4.1-mini"),
        embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
        temperature=_float_env("CHAT_TEMPERATURE", 0.2),
        timeout_seconds=_float_env("PROVIDER_TIMEOUT_SECONDS", 30.0),
        max_retries=_int_env("PROVIDER_MAX_RETRIES", 3),
    )

    min_tokens = _int_env("RAG_CHUNK_MIN_TOKENS", 200)
    rag = RAGSettings(
        embedding_dimensions=_int_env("EMBEDDING_DIMENSIONS", 1536),
        top_k=_int_env("RAG_TOP_K", 8),
        chunk_target_tokens=_int_env("RAG_CHUNK_TARGET_TOKENS", 600),
        chunk_overlap_tokens=_int_env("RAG_CHUNK_OVERLAP_TOKENS", 100),
        chunk_min_tokens=min_tokens,
        min_ingest_tokens=_int_env("RAG_MIN_INGEST_TOKENS", min_tokens),
        embed_workers=_int_env("RAG_EMBED_WORKERS", 4),
        max_context_tokens=_int_env("RAG_MAX_CONTEXT_TOKENS", 4000),
        store_backend=os.getenv("KNOWLEDGE_STORE_BACKEND", "memory").lower(),
    )

    gh = GitHubSettings(
        token=os.getenv("GITHUB_TOKEN") or None,
        api_base=os.getenv("GITHUB_API_BASE", "https://api.github.com").rstrip("/"),
    )

    return Settings(
        openai=oa,
        rag=rag,
        github=gh,
        database=DatabaseSettings.from_env(),
    )


def validate_settings(settings: Settings) -> List[str]:
    """Validate configuration and return a list of human-readable error messages.

    A missing provider key is not an error: the pipeline runs in degraded
    mode with fallback embeddings and answers.
    """
    errors: List[str] = []

    rag = settings.rag
    if rag.store_backend not in STORE_BACKENDS:
        errors.append(
            f"KNOWLEDGE_STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}."
        )
    if rag.embedding_dimensions <= 0:
        errors.append("EMBEDDING_DIMENSIONS must be positive.")
    if rag.chunk_target_tokens < rag.chunk_min_tokens:
        errors.append("RAG_CHUNK_TARGET_TOKENS must be >= RAG_CHUNK_MIN_TOKENS.")
    if rag.chunk_overlap_tokens >= rag.chunk_target_tokens:
        errors.append("RAG_CHUNK_OVERLAP_TOKENS must be < RAG_CHUNK_TARGET_TOKENS.")
    if rag.embed_workers < 1:
        errors.append("RAG_EMBED_WORKERS must be at least 1.")

    if rag.store_backend == "postgresql" and not settings.database.is_configured:
        errors.append(
            "POSTGRESQL_HOST and POSTGRESQL_DATABASE must be set for the postgresql backend."
        )

    return errors
