#!/usr/bin/env python
"""Report (and optionally remove) documents present in only one store.

Usage:
    python scripts/reconcile.py        # Report orphans
    python scripts/reconcile.py --fix  # Delete orphaned chunks and files
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from pdfchat.config import Settings
from pdfchat.errors import PdfChatError
from pdfchat.logging_setup import configure_logging
from pdfchat.services import build_services


async def main():
    parser = argparse.ArgumentParser(description="Compare the vector store with stored PDFs")
    parser.add_argument("--fix", action="store_true", help="Remove the orphans found")
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
        configure_logging("WARNING", settings.log_json)
        documents = build_services(settings).documents

        report = await documents.reconcile()

        if report.consistent:
            print("\n✓ Vector store and uploads directory are consistent.\n")
            return

        print(f"\nChunks without a stored PDF ({len(report.vector_only)}):")
        for document_id in report.vector_only:
            print(f"  - {document_id}")
        print(f"\nStored PDFs without chunks ({len(report.blob_only)}):")
        for document_id in report.blob_only:
            print(f"  - {document_id}")

        if args.fix:
            removed = await documents.repair(report)
            print(
                f"\n✓ Removed {removed['chunksDeleted']} chunk(s) "
                f"and {removed['filesDeleted']} file(s).\n"
            )
        else:
            print("\nRun with --fix to remove them.\n")
            sys.exit(1)

    except PdfChatError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
