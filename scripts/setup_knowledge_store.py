#!/usr/bin/env python3
"""
One-time setup script for the PostgreSQL knowledge store.
Enables pgvector and creates the knowledge_chunks schema.

Steps covered:
1. Configure pgvector Extension
2. Create Schema, table and indexes

Prerequisites:
- A reachable PostgreSQL server with the pgvector extension available
- POSTGRESQL_* variables in the environment or .env
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from codeshield.config import load_settings
from codeshield.database.pool import close_pool, ensure_vector_extension, init_pool
from codeshield.rag.repository import PgVectorKnowledgeStore


async def run_setup(schema: str | None, dimensions: int | None) -> bool:
    settings = load_settings()
    db = settings.database
    if not db.host:
        print("❌ POSTGRESQL_HOST is not set. Configure POSTGRESQL_* variables first.")
        return False

    schema = schema or db.schema
    dimensions = dimensions or settings.rag.embedding_dimensions

    print("\n" + "=" * 60)
    print("Step 1: Configure pgvector Extension")
    print("=" * 60)
    print(f"⏳ Connecting to {db.host}...")
    version = await ensure_vector_extension(db)
    if not version:
        print("❌ pgvector extension could not be created")
        return False
    print(f"✅ pgvector extension version: {version}")

    print("\n" + "=" * 60)
    print("Step 2: Create Schema")
    print("=" * 60)
    await init_pool(db)
    try:
        store = PgVectorKnowledgeStore(dimensions=dimensions, schema=schema)
        await store.ensure_schema()
        total = await store.count()
        print(f"✅ Table {store.table} ready ({dimensions} dimensions, {total} chunks)")
    finally:
        await close_pool()

    return True


def main():
    parser = argparse.ArgumentParser(description="Create the pgvector knowledge store schema")
    parser.add_argument("--schema", help="Schema name (default: POSTGRESQL_SCHEMA or codeshield)")
    parser.add_argument(
        "--dimensions",
        type=int,
        help="Embedding dimensions (default: EMBEDDING_DIMENSIONS or 1536)",
    )
    args = parser.parse_args()

    try:
        ok = asyncio.run(run_setup(args.schema, args.dimensions))
    except KeyboardInterrupt:
        print("\n\nSetup cancelled by user")
        sys.exit(1)

    if not ok:
        print("\n❌ Setup failed")
        sys.exit(1)

    print("\n🎉 Setup Complete!")
    print("Set KNOWLEDGE_STORE_BACKEND=postgresql to use this store.")


if __name__ == "__main__":
    main()
