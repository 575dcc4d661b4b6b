#!/usr/bin/env python
"""Clear all ingested documents from the vector store and the uploads directory.

Usage:
    python scripts/clear_store.py                 # Clear vectors and stored PDFs
    python scripts/clear_store.py --vectors-only  # Leave stored PDFs in place
    python scripts/clear_store.py --yes           # Skip the confirmation delay
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
import structlog

logger = structlog.get_logger()


async def main():
    parser = argparse.ArgumentParser(description="Clear the document collection")
    parser.add_argument(
        "--vectors-only",
        action="store_true",
        help="Only drop the vector collection, keep stored PDF files",
    )
    parser.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not wait before deleting",
    )
    args = parser.parse_args()

    try:
        settings = Settings.from_env()
        configure_logging("WARNING", settings.log_json)
        services = build_services(settings)

        print(f"\n🗑️  Collection: {settings.collection_name} ({settings.vector_backend})")
        if not args.vectors_only:
            print(f"   Uploads:    {settings.uploads_dir}")

        if not args.yes:
            print("\n⚠️  This deletes every ingested document!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)

        if args.vectors_only:
            existed = await services.vector_store.clear_collection(settings.collection_name)
            if existed:
                print("\n✓ Collection deleted successfully")
            else:
                print("\n✓ Collection does not exist, nothing to clear")
        else:
            outcome = await services.documents.clear_all()
            print(f"\n{'✓' if outcome.status == 'ok' else '⚠️ '} {outcome.message}")
            for document_id in outcome.blobs_failed:
                print(f"   Could not delete: {document_id}.pdf")
            if outcome.status != "ok":
                sys.exit(1)

        print("The collection will be recreated automatically on the next upload.\n")

    except KeyboardInterrupt:
        print("\n\n⚠️  Cancelled by user.\n")
        sys.exit(1)

    except PdfChatError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("clear_store_failed", error=str(e), error_kind=e.kind)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
