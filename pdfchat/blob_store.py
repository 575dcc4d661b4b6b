"""Filesystem storage for uploaded PDF files, keyed by document id."""
import asyncio
import re
from pathlib import Path
from typing import List, Optional
import structlog

from pdfchat.errors import BlobStoreError

logger = structlog.get_logger()

BLOB_SUFFIX = ".pdf"

# Generated ids are UUIDs; anything with path characters is refused
_DOCUMENT_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


def is_valid_document_id(document_id: str) -> bool:
    return bool(document_id) and bool(_DOCUMENT_ID.match(document_id))


class FileBlobStore:
    """Stores each document's original bytes as ``<documentId>.pdf``."""

    def __init__(self, uploads_dir: Path):
        self.uploads_dir = Path(uploads_dir)

    def path_for(self, document_id: str) -> Path:
        """Location of a document's file.

        Raises:
            ValueError: If the id could escape the uploads directory
        """
        if not is_valid_document_id(document_id):
            raise ValueError(f"Invalid document id: {document_id!r}")
        return self.uploads_dir / f"{document_id}{BLOB_SUFFIX}"

    async def put(self, document_id: str, data: bytes) -> Path:
        """Write a document's bytes, replacing any previous file.

        Raises:
            BlobStoreError: ``put``
        """
        try:
            path = self.path_for(document_id)
        except ValueError as e:
            raise BlobStoreError("put", str(e), cause=e) from e

        def _write() -> None:
            self.uploads_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error("blob_put_failed", document_id=document_id, error=str(e))
            raise BlobStoreError("put", str(e), cause=e) from e

        logger.info("blob_saved", document_id=document_id, path=str(path), size=len(data))
        return path

    async def get(self, document_id: str) -> Optional[bytes]:
        """Read a document's bytes, or None when it is not stored.

        Raises:
            BlobStoreError: ``get``
        """
        try:
            path = self.path_for(document_id)
        except ValueError:
            return None

        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("blob_get_failed", document_id=document_id, error=str(e))
            raise BlobStoreError("get", str(e), cause=e) from e

    async def delete(self, document_id: str) -> bool:
        """Delete a document's file.

        Returns:
            True if a file was removed, False if none existed

        Raises:
            BlobStoreError: ``delete`` for failures other than not-found
        """
        try:
            path = self.path_for(document_id)
        except ValueError:
            return False

        try:
            await asyncio.to_thread(path.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStoreError("delete", str(e), cause=e) from e

        logger.info("blob_deleted", document_id=document_id, path=str(path))
        return True

    async def list_ids(self) -> List[str]:
        """Ids of every stored document, sorted.

        Raises:
            BlobStoreError: ``list``
        """

        def _scan() -> List[str]:
            if not self.uploads_dir.exists():
                return []
            return sorted(
                path.stem
                for path in self.uploads_dir.iterdir()
                if path.is_file() and path.suffix == BLOB_SUFFIX
            )

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            raise BlobStoreError("list", str(e), cause=e) from e
