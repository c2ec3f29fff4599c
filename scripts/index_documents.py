#!/usr/bin/env python3
"""
CLI script for indexing security documents into the knowledge store.

Usage:
    # Index every Markdown, text and PDF file in a directory
    python scripts/index_documents.py docs/security

    # Index specific files
    python scripts/index_documents.py docs/jwt.md docs/passwords.pdf

    # Force reindex (replace existing chunks of each source)
    python scripts/index_documents.py docs/security --force

    # Show index statistics
    python scripts/index_documents.py --stats
"""

import argparse
import asyncio
import mimetypes
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from codeshield.errors import CodeShieldError
from codeshield.extraction import PDF_EXTENSIONS, TEXT_EXTENSIONS
from codeshield.rag.service import RAGService
from codeshield.utils import setup_logging

SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | PDF_EXTENSIONS


def collect_files(paths: list[str]) -> list[Path]:
    files: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(
                sorted(p for p in path.rglob("*") if p.suffix.lower() in SUPPORTED_EXTENSIONS)
            )
        elif path.is_file():
            files.append(path)
        else:
            print(f"⚠️  Skipping missing path: {path}")
    return files


async def index_files(service: RAGService, files: list[Path], force: bool) -> int:
    total_chunks = 0
    failures = 0
    for path in files:
        mime_type, _ = mimetypes.guess_type(path.name)
        try:
            text = service.extractor.extract(path.read_bytes(), mime_type, path.name)
            result = await service.ingest(text, {"source": path.name}, replace_existing=force)
        except CodeShieldError as e:
            failures += 1
            print(f"   ❌ {path}: {e}")
            continue
        total_chunks += result.chunks_processed
        print(f"   {path.name}: {result.chunks_processed} chunks ({result.language})")

    print(f"\n✅ Indexed {len(files) - failures}/{len(files)} files, {total_chunks} chunks")
    return failures


async def main():
    parser = argparse.ArgumentParser(
        description="Index security documents for RAG search",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s docs/security            # Index a directory
  %(prog)s docs/jwt.md --force      # Reindex one file
  %(prog)s --stats                  # Show index statistics
        """,
    )
    parser.add_argument("paths", nargs="*", help="Files or directories to index")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Force reindex - replace existing chunks of each source",
    )
    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show index statistics instead of indexing",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output",
    )
    args = parser.parse_args()

    if args.verbose:
        setup_logging("DEBUG")

    service = RAGService()
    if service.settings.rag.store_backend == "memory" and not args.stats:
        print("⚠️  KNOWLEDGE_STORE_BACKEND=memory: indexed chunks are lost when this script exits.")

    try:
        if args.stats:
            stats = await service.get_stats()
            print("\n📊 Index Statistics")
            print("=" * 40)
            print(f"Backend:      {stats['backend']}")
            print(f"Total chunks: {stats['total_chunks']}")
            if "source_count" in stats:
                print(f"Sources:      {stats['source_count']}")
            for key in ("chunks_by_language", "chunks_by_category"):
                if key in stats:
                    print(f"\n{key.replace('_', ' ').capitalize()}:")
                    for name, count in stats[key].items():
                        print(f"  {name}: {count}")
            return

        files = collect_files(args.paths)
        if not files:
            print("❌ No Markdown, text or PDF files to index")
            sys.exit(1)

        print(f"\n📚 Indexing {len(files)} files...")
        failures = await index_files(service, files, args.force)
        if failures:
            sys.exit(1)
    finally:
        await service.close()


if __name__ == "__main__":
    asyncio.run(main())
