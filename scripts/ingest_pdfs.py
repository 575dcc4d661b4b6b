#!/usr/bin/env python
"""Batch-ingest PDF files into the RAG index.

Usage:
    python scripts/ingest_pdfs.py ./papers              # Ingest every PDF in a directory
    python scripts/ingest_pdfs.py ./papers --recursive  # Include subdirectories
    python scripts/ingest_pdfs.py ./papers --verbose    # Show detailed progress
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pdfchat.config import Settings
from pdfchat.errors import PdfChatError
from pdfchat.logging_setup import configure_logging
from pdfchat.services import build_services
import structlog

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print("  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Files ingested:   {stats['files_processed']}")
        print(f"  ❌ Files failed:     {stats['files_failed']}")
        print(f"  📝 Chunks created:   {stats['chunks_created']}")
        print(f"  ⏱️  Time elapsed:     {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  ⚡ Indexing rate:    {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        for path, reason in stats["failures"]:
            print(f"  ⚠️  {path.name}: {reason}")
        if stats["failures"]:
            print()


def discover_pdfs(directory: Path, recursive: bool) -> list:
    pattern = "**/*.pdf" if recursive else "*.pdf"
    return sorted(p for p in directory.glob(pattern) if p.is_file())


async def main():
    """Main entry point for the batch ingest script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF files for the RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("directory", type=Path, help="Directory containing PDF files")
    parser.add_argument(
        "--recursive",
        "-r",
        action="store_true",
        help="Also ingest PDFs in subdirectories",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
    except PdfChatError as e:
        print(f"\n❌ Configuration error: {e}\n")
        sys.exit(1)

    configure_logging("DEBUG" if args.verbose else "WARNING", settings.log_json)

    if not args.directory.is_dir():
        print(f"\n❌ Error: directory not found: {args.directory}\n")
        sys.exit(1)

    print("\n📋 Configuration:")
    print(f"   Source directory: {args.directory}")
    print(f"   Vector backend:   {settings.vector_backend}")
    print(f"   Collection:       {settings.collection_name}")
    print(f"   Embedding model:  {settings.embedding_model}")
    print(f"   Chunk size:       {settings.chunk_size} chars")
    print(f"   Chunk overlap:    {settings.chunk_overlap} chars")

    pdf_files = discover_pdfs(args.directory, args.recursive)
    if not pdf_files:
        print("\n⚠️  No PDF files found.\n")
        return

    services = build_services(settings)
    progress = ProgressReporter(verbose=args.verbose)
    progress.start(f"Ingesting {len(pdf_files)} PDF file(s)")

    stats = {"files_processed": 0, "files_failed": 0, "chunks_created": 0, "failures": []}

    try:
        for idx, file_path in enumerate(pdf_files, 1):
            progress.update(idx, len(pdf_files), file_path)
            try:
                result = await services.ingest.ingest_file(file_path)
            except (PdfChatError, OSError) as e:
                logger.error("file_ingestion_failed", path=str(file_path), error=str(e))
                stats["files_failed"] += 1
                stats["failures"].append((file_path, str(e)))
                # Continue with next file instead of failing entirely
                continue

            stats["files_processed"] += 1
            stats["chunks_created"] += result.chunk_count

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)

    progress.finish(stats)

    if stats["files_failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
