"""Document lifecycle across the vector store and the blob store.

There is no transaction spanning the two stores. Deletes remove the vector
records first and then the file. A missing file is tolerated. A partially
failed bulk file cleanup is reported as a "partial" outcome instead of
being raised.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import structlog

from pdfchat.blob_store import FileBlobStore
from pdfchat.errors import BlobStoreError, PartialClearError
from pdfchat.rag.vector_store import DocumentSummary, VectorStore

logger = structlog.get_logger()


@dataclass
class DeleteOutcome:
    document_id: str
    chunks_deleted: int
    blob_deleted: bool
    message: str
    status: str = "ok"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "documentId": self.document_id,
            "chunksDeleted": self.chunks_deleted,
            "blobDeleted": self.blob_deleted,
        }


@dataclass
class ClearOutcome:
    """Result of clearing everything; ``status`` is "ok" or "partial"."""

    collection_existed: bool
    blobs_removed: int
    blobs_failed: List[str] = field(default_factory=list)
    error: Optional[PartialClearError] = None

    @property
    def status(self) -> str:
        return "partial" if self.error is not None else "ok"

    @property
    def message(self) -> str:
        if self.error is not None:
            return f"{self.error} ({self.blobs_removed} files deleted)"
        return f"All documents cleared ({self.blobs_removed} files deleted)"

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "status": self.status,
            "message": self.message,
            "blobsRemoved": self.blobs_removed,
            "blobsFailed": self.blobs_failed,
        }
        if self.error is not None:
            payload["error"] = self.error.message
        return payload


@dataclass
class ReconcileReport:
    """Documents present in only one of the two stores."""

    vector_only: List[str]
    blob_only: List[str]

    @property
    def consistent(self) -> bool:
        return not self.vector_only and not self.blob_only

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consistent": self.consistent,
            "vectorOnly": self.vector_only,
            "blobOnly": self.blob_only,
        }


class DocumentManager:
    """Lists, deletes and reconciles documents across both stores."""

    def __init__(
        self,
        vector_store: VectorStore,
        blob_store: FileBlobStore,
        collection_name: Optional[str] = None,
    ):
        self.vector_store = vector_store
        self.blob_store = blob_store
        self.collection_name = collection_name or vector_store.default_collection

    async def list_documents(self) -> List[DocumentSummary]:
        return await self.vector_store.list_documents(self.collection_name)

    async def get_pdf(self, document_id: str) -> Optional[bytes]:
        return await self.blob_store.get(document_id)

    async def delete_document(self, document_id: str) -> DeleteOutcome:
        """Delete a document's chunks, then its file.

        Only a vector store failure fails the operation; file problems are
        logged and tolerated.

        Raises:
            VectorStoreError: If the chunks could not be deleted
        """
        result = await self.vector_store.delete_document(self.collection_name, document_id)
        logger.info(
            "document_chunks_deleted",
            document_id=document_id,
            chunks_deleted=result.chunks_deleted,
            detail=result.message,
        )

        blob_deleted = False
        try:
            blob_deleted = await self.blob_store.delete(document_id)
            if not blob_deleted:
                logger.info("pdf_file_already_absent", document_id=document_id)
        except BlobStoreError as e:
            logger.warning("pdf_file_delete_failed", document_id=document_id, error=str(e))

        if result.chunks_deleted == 0 and not blob_deleted:
            message = f"Nothing found for document {document_id}"
        else:
            message = "Document deleted successfully"

        return DeleteOutcome(
            document_id=document_id,
            chunks_deleted=result.chunks_deleted,
            blob_deleted=blob_deleted,
            message=message,
        )

    async def clear_all(self) -> ClearOutcome:
        """Drop the collection, then delete every stored file.

        Raises:
            VectorStoreError: If the collection could not be cleared
        """
        existed = await self.vector_store.clear_collection(self.collection_name)
        logger.warning("collection_cleared", collection=self.collection_name, existed=existed)

        try:
            document_ids = await self.blob_store.list_ids()
        except BlobStoreError as e:
            logger.error("pdf_files_listing_failed", error=str(e))
            return ClearOutcome(
                collection_existed=existed,
                blobs_removed=0,
                error=PartialClearError(removed=0, failed=[], reason=str(e)),
            )

        results = await asyncio.gather(
            *(self.blob_store.delete(document_id) for document_id in document_ids),
            return_exceptions=True,
        )

        removed = 0
        failed: List[str] = []
        for document_id, outcome in zip(document_ids, results):
            if isinstance(outcome, BaseException):
                logger.warning("pdf_file_delete_failed", document_id=document_id, error=str(outcome))
                failed.append(document_id)
            elif outcome:
                removed += 1

        logger.info("pdf_files_cleared", removed=removed, failed=len(failed))

        error = PartialClearError(removed=removed, failed=failed) if failed else None
        return ClearOutcome(
            collection_existed=existed,
            blobs_removed=removed,
            blobs_failed=failed,
            error=error,
        )

    async def reconcile(self) -> ReconcileReport:
        """Compare document ids held by each store.

        Raises:
            VectorStoreError, BlobStoreError
        """
        vector_ids = {doc.document_id for doc in await self.list_documents()}
        blob_ids = set(await self.blob_store.list_ids())

        report = ReconcileReport(
            vector_only=sorted(vector_ids - blob_ids),
            blob_only=sorted(blob_ids - vector_ids),
        )
        logger.info(
            "stores_reconciled",
            vector_only=len(report.vector_only),
            blob_only=len(report.blob_only),
        )
        return report

    async def repair(self, report: ReconcileReport) -> Dict[str, int]:
        """Remove the orphans listed in a reconcile report."""
        chunks = 0
        for document_id in report.vector_only:
            result = await self.vector_store.delete_document(self.collection_name, document_id)
            chunks += result.chunks_deleted

        files = 0
        for document_id in report.blob_only:
            if await self.blob_store.delete(document_id):
                files += 1

        logger.info("orphans_removed", chunks=chunks, files=files)
        return {"chunksDeleted": chunks, "filesDeleted": files}
