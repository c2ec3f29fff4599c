"""
PgVector Knowledge Store - Knowledge chunks in PostgreSQL with pgvector.

Handles schema setup, batch insertion and filtered cosine search. Each
batch is written in a single transaction so a document never becomes
partially visible.
"""

from __future__ import annotations

import json
from typing import Any, Sequence

from codeshield.database.pool import get_pool
from codeshield.rag.chunker import Chunk, EmbeddedChunk
from codeshield.rag.store import ANY_LANGUAGE, KnowledgeStore, RetrievalFilter, ScoredChunk
from codeshield.utils import setup_logging

logger = setup_logging()


SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS vector;
CREATE SCHEMA IF NOT EXISTS {schema};

CREATE TABLE IF NOT EXISTS {table} (
    id BIGSERIAL PRIMARY KEY,
    content TEXT NOT NULL CHECK (length(content) > 0),
    chunk_index INTEGER NOT NULL DEFAULT 0,
    total_chunks INTEGER NOT NULL DEFAULT 1,
    token_count INTEGER NOT NULL DEFAULT 0,
    language VARCHAR(30) NOT NULL DEFAULT 'all',
    category VARCHAR(50) NOT NULL DEFAULT 'general',
    source TEXT NOT NULL,
    metadata JSONB NOT NULL DEFAULT '{{}}',
    embedding VECTOR({dimensions}) NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_source ON {table} (source);
CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_language ON {table} (language);
CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_category ON {table} (category);
CREATE INDEX IF NOT EXISTS idx_knowledge_chunks_embedding
    ON {table} USING hnsw (embedding vector_cosine_ops);
"""


class PgVectorKnowledgeStore(KnowledgeStore):
    """
    KnowledgeStore backed by a pgvector table.

    Similarity is 1 - cosine distance; rows with a zero-norm embedding
    score 0. Ties break on the BIGSERIAL id, i.e. insertion order.
    """

    def __init__(self, dimensions: int = 1536, schema: str = "codeshield"):
        """
        Initialize store.

        Args:
            dimensions: Embedding dimension of the vector column
            schema: PostgreSQL schema name
        """
        super().__init__(dimensions)
        self.schema = schema
        self.table = f"{schema}.knowledge_chunks"

    async def ensure_schema(self) -> None:
        """Create the pgvector extension, schema, table and indexes."""
        pool = await get_pool()
        sql = SCHEMA_SQL.format(schema=self.schema, table=self.table, dimensions=self.dimensions)
        async with pool.acquire() as conn:
            await conn.execute(sql)
        logger.info(f"Knowledge store schema ready: {self.table}")

    def _insert_sql(self) -> str:
        return f"""
            INSERT INTO {self.table} (
                content, chunk_index, total_chunks, token_count,
                language, category, source, metadata, embedding
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        """

    @staticmethod
    def _insert_rows(chunks: Sequence[EmbeddedChunk]) -> list[tuple]:
        return [
            (
                chunk.content,
                chunk.index,
                chunk.total_chunks,
                chunk.token_count,
                chunk.language or ANY_LANGUAGE,
                chunk.category or "general",
                chunk.source,
                json.dumps(chunk.metadata or {}),
                list(chunk.embedding),  # vector codec handles conversion
            )
            for chunk in chunks
        ]

    async def insert(self, chunks: Sequence[EmbeddedChunk]) -> None:
        if not chunks:
            return

        self.check_chunks(chunks)
        rows = self._insert_rows(chunks)

        pool = await get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(self._insert_sql(), rows)

        logger.info(f"Inserted {len(rows)} chunks into {self.table}")

    async def search(
        self,
        query_vector: Sequence[float],
        filter: RetrievalFilter | None = None,
        k: int = 8,
    ) -> list[ScoredChunk]:
        self.check_vector(query_vector)
        if k <= 0:
            return []

        filter = filter or RetrievalFilter()

        conditions: list[str] = []
        params: list[Any] = [list(query_vector)]
        param_idx = 2

        language = filter.language_constraint
        if language:
            conditions.append(f"(language = ${param_idx} OR language = '{ANY_LANGUAGE}')")
            params.append(language)
            param_idx += 1

        if filter.category:
            conditions.append(f"category = ${param_idx}")
            params.append(filter.category)
            param_idx += 1

        params.append(k)
        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        # pgvector returns NaN distance for zero vectors; score those as 0
        query_sql = f"""
            SELECT
                id, content, chunk_index, total_chunks, token_count,
                language, category, source, metadata,
                CASE
                    WHEN vector_norm(embedding) = 0 OR vector_norm($1::vector) = 0 THEN 0
                    ELSE 1 - (embedding <=> $1::vector)
                END AS similarity
            FROM {self.table}
            {where_clause}
            ORDER BY similarity DESC, id ASC
            LIMIT ${param_idx}
        """

        pool = await get_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(query_sql, *params)

        results = [self._row_to_result(row) for row in rows]
        logger.debug(f"pgvector search returned {len(results)} results (filter={filter})")
        return results

    async def delete_by_source(self, source: str) -> int:
        pool = await get_pool()

        query = f"DELETE FROM {self.table} WHERE source = $1"

        async with pool.acquire() as conn:
            result = await conn.execute(query, source)

        # Parse 'DELETE N' result
        deleted = int(result.split()[-1]) if result else 0
        logger.info(f"Deleted {deleted} chunks for source {source}")
        return deleted

    async def replace_source(self, source: str, chunks: Sequence[EmbeddedChunk]) -> int:
        self.check_chunks(chunks)
        rows = self._insert_rows(chunks)

        pool = await get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                result = await conn.execute(f"DELETE FROM {self.table} WHERE source = $1", source)
                if rows:
                    await conn.executemany(self._insert_sql(), rows)

        deleted = int(result.split()[-1]) if result else 0
        logger.info(f"Replaced {deleted} chunks of {source} with {len(rows)} in {self.table}")
        return deleted

    async def count(self, source: str | None = None) -> int:
        pool = await get_pool()

        if source:
            query = f"SELECT COUNT(*) FROM {self.table} WHERE source = $1"
            async with pool.acquire() as conn:
                return await conn.fetchval(query, source)
        else:
            query = f"SELECT COUNT(*) FROM {self.table}"
            async with pool.acquire() as conn:
                return await conn.fetchval(query)

    async def get_stats(self) -> dict[str, Any]:
        """Chunk counts overall, per language and per category."""
        pool = await get_pool()
        async with pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM {self.table}")
            sources = await conn.fetchval(f"SELECT COUNT(DISTINCT source) FROM {self.table}")
            by_language = await conn.fetch(
                f"SELECT language, COUNT(*) AS count FROM {self.table} "
                f"GROUP BY language ORDER BY count DESC"
            )
            by_category = await conn.fetch(
                f"SELECT category, COUNT(*) AS count FROM {self.table} "
                f"GROUP BY category ORDER BY count DESC"
            )

        return {
            "total_chunks": total,
            "source_count": sources,
            "chunks_by_language": {row["language"]: row["count"] for row in by_language},
            "chunks_by_category": {row["category"]: row["count"] for row in by_category},
        }

    def _row_to_result(self, row: Any) -> ScoredChunk:
        """Convert database row to ScoredChunk."""
        metadata = row.get("metadata", {})
        if isinstance(metadata, str):
            metadata = json.loads(metadata)

        chunk = Chunk(
            content=row["content"],
            index=row["chunk_index"],
            total_chunks=row["total_chunks"],
            token_count=row["token_count"],
            language=row["language"],
            category=row["category"],
            source=row["source"],
            metadata=metadata or {},
        )
        return ScoredChunk(chunk=chunk, score=float(row.get("similarity", 0) or 0))
