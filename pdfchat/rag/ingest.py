"""Ingest pipeline for uploaded PDF documents.

Orchestrates, in order:
- Text extraction (with one repair pass)
- Paragraph-aware chunking
- Embedding generation
- Vector store upsert
- Blob persistence of the original file

Any failing step aborts the rest. The blob is written only after the
upsert succeeded; if the blob write itself fails, the chunks already in the
vector store stay there and the ingestion is still reported as failed. The
caller can remove them with a delete-by-document.
"""
import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional
import structlog

from pdfchat.blob_store import FileBlobStore
from pdfchat.errors import EmptyContentError, PdfChatError
from pdfchat.rag.chunker import TextChunker
from pdfchat.rag.embeddings import EmbeddingClient
from pdfchat.rag.pdf_parser import PdfTextExtractor
from pdfchat.rag.vector_store import (
    META_CHUNK_COUNT,
    META_CREATED_AT,
    META_FILE_NAME,
    ChunkRecord,
    VectorStore,
)

logger = structlog.get_logger()


class IngestStage(str, Enum):
    """States an upload moves through; FAILED is terminal."""

    RECEIVED = "received"
    TEXT_EXTRACTED = "text_extracted"
    CHUNKED = "chunked"
    EMBEDDED = "embedded"
    UPSERTED = "upserted"
    BLOB_PERSISTED = "blob_persisted"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class IngestResult:
    """Outcome of a successful ingestion."""

    document_id: str
    file_name: str
    chunk_count: int
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "fileName": self.file_name,
            "chunkCount": self.chunk_count,
        }


class IngestPipeline:
    """Pipeline for ingesting PDF uploads into the RAG system."""

    def __init__(
        self,
        extractor: PdfTextExtractor,
        chunker: TextChunker,
        embedder: EmbeddingClient,
        vector_store: VectorStore,
        blob_store: FileBlobStore,
        collection_name: Optional[str] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            extractor: PDF text extractor
            chunker: Text chunker
            embedder: Embedding client
            vector_store: Vector store gateway
            blob_store: Storage for the original files
            collection_name: Target collection (store default when None)
        """
        self.extractor = extractor
        self.chunker = chunker
        self.embedder = embedder
        self.vector_store = vector_store
        self.blob_store = blob_store
        self.collection_name = collection_name or vector_store.default_collection

        logger.info(
            "ingest_pipeline_initialized",
            collection=self.collection_name,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    async def ingest_pdf(
        self,
        data: bytes,
        file_name: str,
        document_id: Optional[str] = None,
    ) -> IngestResult:
        """Ingest one uploaded PDF.

        Args:
            data: Raw file bytes
            file_name: Original file name, kept for citations
            document_id: Identifier to use (a new UUID4 when None)

        Returns:
            IngestResult with the new document's id and chunk count

        Raises:
            ExtractionError: File is not a parseable PDF
            EmptyContentError: No text could be extracted
            EmbeddingServiceError: Embedding failed
            VectorStoreError: Upsert failed (nothing was persisted)
            BlobStoreError: File could not be saved (chunks were upserted)
        """
        document_id = document_id or str(uuid.uuid4())
        log = logger.bind(document_id=document_id, file_name=file_name)
        stage = IngestStage.RECEIVED
        log.info("ingest_stage", stage=stage.value, size=len(data) if data else 0)

        try:
            # PyMuPDF is CPU-bound; keep it off the event loop
            text = await asyncio.to_thread(self.extractor.extract_text, data)
            stage = self._advance(log, IngestStage.TEXT_EXTRACTED, text_length=len(text))

            chunks = self.chunker.chunk_text(text)
            if not chunks:
                raise EmptyContentError("Could not extract text from PDF")
            stage = self._advance(
                log, IngestStage.CHUNKED, **self.chunker.get_chunk_stats(chunks)
            )

            embeddings = await self.embedder.embed([chunk.content for chunk in chunks])
            stage = self._advance(log, IngestStage.EMBEDDED, count=len(embeddings))

            created_at = datetime.now(timezone.utc).isoformat()
            records = self._build_records(document_id, file_name, created_at, chunks, embeddings)
            await self.vector_store.upsert(self.collection_name, records)
            stage = self._advance(log, IngestStage.UPSERTED, records=len(records))

            try:
                await self.blob_store.put(document_id, data)
            except PdfChatError:
                log.error(
                    "ingest_blob_persist_failed_chunks_orphaned",
                    collection=self.collection_name,
                    chunks=len(records),
                )
                raise
            stage = self._advance(log, IngestStage.BLOB_PERSISTED)

        except PdfChatError as e:
            log.error(
                "ingest_failed",
                stage=stage.value,
                next_state=IngestStage.FAILED.value,
                error_kind=e.kind,
                error=str(e),
            )
            raise

        self._advance(log, IngestStage.COMPLETE, chunks=len(chunks))

        return IngestResult(
            document_id=document_id,
            file_name=file_name,
            chunk_count=len(chunks),
            created_at=created_at,
        )

    async def ingest_file(self, file_path: Path) -> IngestResult:
        """Ingest a PDF from disk (used by the batch ingest script)."""
        data = await asyncio.to_thread(Path(file_path).read_bytes)
        return await self.ingest_pdf(data, Path(file_path).name)

    @staticmethod
    def _advance(log, stage: IngestStage, **context) -> IngestStage:
        log.info("ingest_stage", stage=stage.value, **context)
        return stage

    @staticmethod
    def _build_records(
        document_id: str,
        file_name: str,
        created_at: str,
        chunks,
        embeddings: List[List[float]],
    ) -> List[ChunkRecord]:
        return [
            ChunkRecord(
                document_id=document_id,
                ordinal_index=chunk.chunk_index,
                text=chunk.content,
                embedding=embedding,
                metadata={
                    META_FILE_NAME: file_name,
                    META_CREATED_AT: created_at,
                    META_CHUNK_COUNT: len(chunks),
                },
            )
            for chunk, embedding in zip(chunks, embeddings)
        ]
