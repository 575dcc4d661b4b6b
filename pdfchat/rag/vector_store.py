"""Vector store gateway.

Handles:
- Chunk record and result types shared by every backend
- Collection resolution (idempotent get-or-create, cached per process)
- Upsert / query / list / delete / clear against a Chroma server over HTTP
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import httpx
import structlog

from pdfchat.errors import VectorStoreError

logger = structlog.get_logger()

# Metadata keys written with every chunk
META_DOCUMENT_ID = "documentId"
META_ORDINAL = "ordinalIndex"
META_FILE_NAME = "fileName"
META_CREATED_AT = "createdAt"
META_CHUNK_COUNT = "chunkCount"


def make_chunk_id(document_id: str, ordinal_index: int) -> str:
    """Composite record id: ``<documentId>:<ordinalIndex>``."""
    return f"{document_id}:{ordinal_index}"


@dataclass(frozen=True)
class CollectionHandle:
    """A resolved collection: server-assigned id plus logical name."""

    id: str
    name: str


@dataclass
class ChunkRecord:
    """One chunk ready to be written to the vector store."""

    document_id: str
    ordinal_index: int
    text: str
    embedding: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return make_chunk_id(self.document_id, self.ordinal_index)

    def full_metadata(self) -> Dict[str, Any]:
        """Metadata with the identity keys always present and authoritative."""
        meta = dict(self.metadata)
        meta[META_DOCUMENT_ID] = self.document_id
        meta[META_ORDINAL] = self.ordinal_index
        return meta


@dataclass
class RetrievalHit:
    """A single retrieved chunk with its metadata and distance."""

    text: str
    metadata: Dict[str, Any]
    distance: float

    @property
    def source_label(self) -> str:
        """Human-readable source: file name, else document id."""
        return (
            self.metadata.get(META_FILE_NAME)
            or self.metadata.get(META_DOCUMENT_ID)
            or "doc"
        )


@dataclass
class DocumentSummary:
    """One ingested document as seen from its chunk records."""

    document_id: str
    file_name: Optional[str]
    chunk_count: int
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentId": self.document_id,
            "fileName": self.file_name,
            "chunkCount": self.chunk_count,
            "createdAt": self.created_at,
        }


@dataclass
class DeleteResult:
    """Outcome of deleting one document's chunks."""

    chunks_deleted: int
    message: str


def summarize_documents(metadatas: Iterable[Optional[Dict[str, Any]]]) -> List[DocumentSummary]:
    """Group chunk metadata by document id, counting chunks per document.

    Documents are returned in first-seen order; records without a document
    id are ignored.
    """
    summaries: Dict[str, DocumentSummary] = {}
    for metadata in metadatas:
        if not metadata or not metadata.get(META_DOCUMENT_ID):
            continue
        document_id = metadata[META_DOCUMENT_ID]
        summary = summaries.get(document_id)
        if summary is None:
            summaries[document_id] = DocumentSummary(
                document_id=document_id,
                file_name=metadata.get(META_FILE_NAME),
                chunk_count=1,
                created_at=metadata.get(META_CREATED_AT),
            )
        else:
            summary.chunk_count += 1
    return list(summaries.values())


class VectorStore(ABC):
    """Contract every vector store backend implements, keyed by collection name."""

    def __init__(self, default_collection: str = "documents"):
        self.default_collection = default_collection

    def _name(self, collection: Optional[str]) -> str:
        return collection or self.default_collection

    @abstractmethod
    async def ensure_collection(self, name: Optional[str] = None) -> CollectionHandle:
        """Get or create a collection; never fails because it already exists."""

    @abstractmethod
    async def upsert(self, collection: Optional[str], records: List[ChunkRecord]) -> None:
        """Insert or overwrite records by composite id."""

    @abstractmethod
    async def query(
        self, collection: Optional[str], query_vector: List[float], top_k: int
    ) -> List[RetrievalHit]:
        """Nearest records, ascending distance; empty for empty or missing collections."""

    @abstractmethod
    async def list_documents(self, collection: Optional[str] = None) -> List[DocumentSummary]:
        """One summary per distinct document; empty when the collection is missing."""

    @abstractmethod
    async def delete_document(self, collection: Optional[str], document_id: str) -> DeleteResult:
        """Delete every chunk of a document; zero matches is a successful no-op."""

    @abstractmethod
    async def clear_collection(self, collection: Optional[str] = None) -> bool:
        """Drop the whole collection. Returns False if it did not exist."""

    async def ping(self) -> bool:
        """Whether the backend is reachable."""
        return True


class ChromaVectorStore(VectorStore):
    """Gateway to a Chroma server through its HTTP/JSON API."""

    API_PREFIX = "/api/v1"

    def __init__(
        self,
        base_url: str,
        default_collection: str = "documents",
        page_size: int = 1000,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the Chroma gateway.

        Args:
            base_url: Chroma server URL, e.g. http://localhost:8000
            default_collection: Collection used when callers pass None
            page_size: Records fetched per ``get`` call when scanning
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(default_collection)
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout
        self._transport = transport
        # name -> handle; entries are dropped when the server answers 404
        self._handles: Dict[str, CollectionHandle] = {}

        logger.info(
            "chroma_store_initialized",
            base_url=self.base_url,
            collection=self.default_collection,
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        collection: Optional[str] = None,
    ) -> Any:
        """Issue one request, wrapping every failure as VectorStoreError."""
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url + self.API_PREFIX,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
                response.raise_for_status()
                if not response.content:
                    return None
                return response.json()

        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 404 and collection is not None:
                self._handles.pop(collection, None)
            logger.error(
                "chroma_http_error",
                operation=operation,
                status_code=status,
                path=path,
            )
            raise VectorStoreError(operation, f"HTTP {status}: {e.response.text}", cause=e) from e
        except httpx.HTTPError as e:
            logger.error("chroma_transport_error", operation=operation, error=str(e), path=path)
            raise VectorStoreError(operation, str(e) or type(e).__name__, cause=e) from e
        except ValueError as e:
            # Non-JSON body
            raise VectorStoreError(operation, f"Malformed response: {e}", cause=e) from e

    # ------------------------------------------------------------------
    # Collection resolution
    # ------------------------------------------------------------------

    async def resolve_collection(
        self,
        name: Optional[str] = None,
        create: bool = False,
        operation: str = "collection-create",
    ) -> Optional[CollectionHandle]:
        """Resolve a collection name to its server id.

        Cached for the process lifetime; a 404 from any later call drops the
        cached entry so the next call re-resolves.

        Args:
            name: Collection name (default collection when None)
            create: Create the collection if it does not exist
            operation: Operation name reported if the lookup fails

        Returns:
            The handle, or None when missing and ``create`` is False
        """
        name = self._name(name)
        cached = self._handles.get(name)
        if cached is not None:
            return cached

        collections = await self._request(operation, "GET", "/collections") or []
        for entry in collections:
            if entry.get("name") == name:
                handle = CollectionHandle(id=str(entry["id"]), name=name)
                self._handles[name] = handle
                return handle

        if not create:
            return None

        created = await self._request(
            "collection-create",
            "POST",
            "/collections",
            json={
                "name": name,
                "metadata": {"description": "Document embeddings collection"},
                "get_or_create": True,
            },
        )
        handle = CollectionHandle(id=str(created["id"]), name=name)
        self._handles[name] = handle
        logger.info("chroma_collection_created", collection=name, collection_id=handle.id)
        return handle

    async def ensure_collection(self, name: Optional[str] = None) -> CollectionHandle:
        return await self.resolve_collection(name, create=True)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def upsert(self, collection: Optional[str], records: List[ChunkRecord]) -> None:
        """Insert or overwrite chunk records.

        Raises:
            VectorStoreError: ``collection-create`` or ``upsert``
        """
        if not records:
            return

        name = self._name(collection)
        handle = await self.resolve_collection(name, create=True)

        await self._request(
            "upsert",
            "POST",
            f"/collections/{handle.id}/upsert",
            json={
                "ids": [record.id for record in records],
                "embeddings": [record.embedding for record in records],
                "metadatas": [record.full_metadata() for record in records],
                "documents": [record.text for record in records],
            },
            collection=name,
        )

        logger.info("chroma_records_upserted", collection=name, count=len(records))

    async def count(self, collection: Optional[str] = None) -> int:
        """Number of records in a collection (0 when it does not exist)."""
        name = self._name(collection)
        handle = await self.resolve_collection(name, operation="query")
        if handle is None:
            return 0
        result = await self._request(
            "query", "GET", f"/collections/{handle.id}/count", collection=name
        )
        return int(result or 0)

    async def query(
        self, collection: Optional[str], query_vector: List[float], top_k: int
    ) -> List[RetrievalHit]:
        """Similarity search.

        ``top_k`` is clamped to the record count so small or empty
        collections never error.

        Raises:
            VectorStoreError: ``query``
        """
        name = self._name(collection)
        handle = await self.resolve_collection(name, operation="query")
        if handle is None:
            logger.info("chroma_query_missing_collection", collection=name)
            return []

        total = await self.count(name)
        n_results = min(max(1, top_k), total)
        if n_results == 0:
            logger.info("chroma_query_empty_collection", collection=name)
            return []

        result = await self._request(
            "query",
            "POST",
            f"/collections/{handle.id}/query",
            json={
                "query_embeddings": [query_vector],
                "n_results": n_results,
                "include": ["documents", "metadatas", "distances"],
            },
            collection=name,
        ) or {}

        documents = _first(result.get("documents"))
        metadatas = _first(result.get("metadatas"))
        distances = _first(result.get("distances"))

        if len(metadatas) != len(documents) or len(distances) != len(documents):
            logger.error(
                "chroma_query_malformed",
                collection=name,
                documents=len(documents),
                metadatas=len(metadatas),
                distances=len(distances),
            )
            raise VectorStoreError(
                "query",
                f"Malformed query response: {len(documents)} documents, "
                f"{len(metadatas)} metadatas, {len(distances)} distances",
            )

        hits = [
            RetrievalHit(text=document or "", metadata=metadata or {}, distance=float(distance))
            for document, metadata, distance in zip(documents, metadatas, distances)
        ]
        hits.sort(key=lambda hit: hit.distance)

        logger.info(
            "chroma_query_completed",
            collection=name,
            top_k=top_k,
            results_found=len(hits),
        )
        return hits[:n_results]

    async def _scan(
        self,
        operation: str,
        handle: CollectionHandle,
        where: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, List[Any]]:
        """Page through ``get`` collecting ids and metadatas."""
        ids: List[str] = []
        metadatas: List[Optional[Dict[str, Any]]] = []
        offset = 0

        while True:
            body: Dict[str, Any] = {
                "include": ["metadatas"],
                "limit": self.page_size,
                "offset": offset,
            }
            if where:
                body["where"] = where

            page = await self._request(
                operation,
                "POST",
                f"/collections/{handle.id}/get",
                json=body,
                collection=handle.name,
            ) or {}
            page_ids = page.get("ids") or []
            page_metadatas = page.get("metadatas") or [None] * len(page_ids)

            ids.extend(page_ids)
            metadatas.extend(page_metadatas)

            if len(page_ids) < self.page_size:
                break
            offset += len(page_ids)

        return {"ids": ids, "metadatas": metadatas}

    async def list_documents(self, collection: Optional[str] = None) -> List[DocumentSummary]:
        """Summaries of every document in the collection.

        Raises:
            VectorStoreError: ``list``
        """
        name = self._name(collection)
        handle = await self.resolve_collection(name, operation="list")
        if handle is None:
            return []

        scanned = await self._scan("list", handle)
        documents = summarize_documents(scanned["metadatas"])

        logger.info(
            "chroma_documents_listed",
            collection=name,
            documents=len(documents),
            chunks=len(scanned["ids"]),
        )
        return documents

    async def delete_document(self, collection: Optional[str], document_id: str) -> DeleteResult:
        """Delete all chunks whose metadata names ``document_id``.

        Raises:
            VectorStoreError: ``delete``
        """
        name = self._name(collection)
        handle = await self.resolve_collection(name, operation="delete")
        if handle is None:
            return DeleteResult(chunks_deleted=0, message="Collection does not exist")

        scanned = await self._scan("delete", handle, where={META_DOCUMENT_ID: document_id})
        ids = scanned["ids"]
        if not ids:
            return DeleteResult(chunks_deleted=0, message="No chunks found for this document")

        await self._request(
            "delete",
            "POST",
            f"/collections/{handle.id}/delete",
            json={"ids": ids},
            collection=name,
        )

        logger.info(
            "chroma_document_deleted",
            collection=name,
            document_id=document_id,
            chunks_deleted=len(ids),
        )
        return DeleteResult(chunks_deleted=len(ids), message=f"Deleted {len(ids)} chunks")

    async def clear_collection(self, collection: Optional[str] = None) -> bool:
        """Delete the entire collection in one call.

        Raises:
            VectorStoreError: ``clear``
        """
        name = self._name(collection)
        handle = await self.resolve_collection(name, operation="clear")
        if handle is None:
            return False

        await self._request("clear", "DELETE", f"/collections/{handle.id}", collection=name)
        self._handles.pop(name, None)

        logger.warning("chroma_collection_cleared", collection=name, collection_id=handle.id)
        return True

    async def ping(self) -> bool:
        try:
            await self._request("list", "GET", "/heartbeat")
        except VectorStoreError:
            return False
        return True


def _first(nested: Optional[List[Any]]) -> List[Any]:
    """Unwrap the per-query outer list of a Chroma query response."""
    if not nested:
        return []
    return nested[0] or []
