"""Exception hierarchy for the document ingestion and retrieval core.

    PdfChatError                (base)
    +-- ConfigurationError      invalid settings at startup
    +-- ExtractionError         unparseable, corrupted or encrypted upload
    +-- EmptyContentError       document produced zero chunks
    +-- EmbeddingServiceError   any embedding call failed
    +-- GenerationServiceError  the completion call failed
    +-- VectorStoreError        transport/service failure, tagged by operation
    +-- BlobStoreError          file storage failure, tagged by operation
    +-- PartialClearError       vector clear succeeded, some blobs survived

``kind`` is a stable identifier the HTTP layer uses to tell the caller
whether to re-upload (extraction / empty content) or wait and retry
(downstream services).
"""
from typing import List, Optional


class PdfChatError(Exception):
    """Base exception carrying a human-readable message."""

    kind = "internal"

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(message)


class ConfigurationError(PdfChatError):
    kind = "configuration"


class ExtractionError(PdfChatError):
    """The uploaded file could not be parsed, even after a repair pass."""

    kind = "extraction"


class EmptyContentError(PdfChatError):
    """Chunking produced nothing: the document has no extractable text."""

    kind = "empty-content"

    def __init__(self, message: str = "No extractable text found in document"):
        super().__init__(message)


class _ServiceError(PdfChatError):
    """Failure of an external service, keeping the underlying cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class EmbeddingServiceError(_ServiceError):
    kind = "embedding-service"


class GenerationServiceError(_ServiceError):
    kind = "generation-service"


class VectorStoreError(_ServiceError):
    """Vector store failure tagged with the failing operation.

    Operations: ``collection-create``, ``upsert``, ``query``, ``list``,
    ``delete``, ``clear``.
    """

    kind = "vector-store"

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None):
        self.operation = operation
        super().__init__(f"Vector store {operation} failed: {message}", cause)


class BlobStoreError(_ServiceError):
    """Blob store failure tagged with the failing operation (put/get/delete/list)."""

    kind = "blob-store"

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None):
        self.operation = operation
        super().__init__(f"Blob store {operation} failed: {message}", cause)


class PartialClearError(PdfChatError):
    """The vector collection was cleared but some blobs could not be deleted."""

    kind = "partial-clear"

    def __init__(self, removed: int, failed: List[str], reason: Optional[str] = None):
        self.removed = removed
        self.failed = list(failed)
        self.reason = reason
        detail = reason or f"{len(self.failed)} file(s) could not be deleted"
        super().__init__(f"Vector store cleared but blob cleanup was partial: {detail}")
