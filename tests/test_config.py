"""Tests for environment-driven settings."""

from codeshield.config import RAGSettings, Settings, load_settings, validate_settings
from codeshield.database.settings import DatabaseSettings


def test_defaults_from_empty_environment(monkeypatch):
    for name in (
        "OPENROUTER_API_KEY", "OPENAI_API_KEY", "OPENROUTER_BASE_URL", "RAG_TOP_K",
        "RAG_MIN_INGEST_TOKENS", "RAG_CHUNK_MIN_TOKENS", "KNOWLEDGE_STORE_BACKEND",
        "EMBEDDING_DIMENSIONS", "CHAT_MODEL",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.openai.api_key == ""
    assert settings.openai.base_url == "https://openrouter.ai/api/v1"
    assert settings.openai.chat_model == "gpt-4.1-mini"
    assert settings.rag.embedding_dimensions == 1536
    assert settings.rag.top_k == 8
    assert settings.rag.min_ingest_tokens == 200
    assert settings.rag.store_backend == "memory"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("OPENROUTER_API_KEY", "sk-or")
    monkeypatch.setenv("RAG_CHUNK_MIN_TOKENS", "50")
    monkeypatch.delenv("RAG_MIN_INGEST_TOKENS", raising=False)
    monkeypatch.setenv("KNOWLEDGE_STORE_BACKEND", "PostgreSQL")

    settings = load_settings()

    assert settings.openai.api_key == "sk-or"
    assert settings.rag.chunk_min_tokens == 50
    assert settings.rag.min_ingest_tokens == 50
    assert settings.rag.store_backend == "postgresql"


def test_min_ingest_defaults_to_chunk_minimum():
    assert RAGSettings(chunk_min_tokens=120).min_ingest_tokens == 120
    assert RAGSettings(chunk_min_tokens=120, min_ingest_tokens=0).min_ingest_tokens == 0


def test_validate_settings():
    assert validate_settings(Settings()) == []

    problems = validate_settings(Settings(rag=RAGSettings(store_backend="postgresql")))
    assert any("POSTGRESQL_HOST" in p for p in problems)

    problems = validate_settings(Settings(rag=RAGSettings(store_backend="redis")))
    assert any("KNOWLEDGE_STORE_BACKEND" in p for p in problems)


def test_postgresql_backend_with_database():
    settings = Settings(
        rag=RAGSettings(store_backend="postgresql"),
        database=DatabaseSettings(host="db.internal", database="codeshield"),
    )
    assert validate_settings(settings) == []
