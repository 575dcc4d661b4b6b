"""FAISS-backed local vector store.

Handles:
- One exact-search index per collection, dimension taken from the first upsert
- Chunk text and metadata persisted next to the index as JSON
- The same upsert / query / list / delete / clear contract as the Chroma gateway
"""
import json
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
import numpy as np
import faiss
import structlog

from pdfchat.errors import VectorStoreError
from pdfchat.rag.vector_store import (
    META_DOCUMENT_ID,
    ChunkRecord,
    CollectionHandle,
    DeleteResult,
    DocumentSummary,
    RetrievalHit,
    VectorStore,
    summarize_documents,
)

logger = structlog.get_logger()


class _FaissCollection:
    """In-memory state of one collection plus its on-disk location."""

    def __init__(self, name: str, directory: Path):
        self.name = name
        self.directory = directory
        self.index_path = directory / "vectors.index"
        self.records_path = directory / "records.json"

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = None
        # chunk id -> {"vector_id": int, "text": str, "metadata": dict}
        self.records: Dict[str, Dict[str, Any]] = {}
        self.by_vector_id: Dict[int, str] = {}
        self.next_vector_id = 0

    def init_index(self, dimension: int) -> None:
        self.dimension = dimension
        # IndexFlatL2 (exact search) wrapped to allow removal by id
        self.index = faiss.IndexIDMap2(faiss.IndexFlatL2(dimension))

    def load(self) -> None:
        with open(self.records_path, "r") as f:
            state = json.load(f)

        self.dimension = state.get("dimension")
        self.next_vector_id = state.get("next_vector_id", 0)
        self.records = state.get("records", {})
        self.by_vector_id = {
            record["vector_id"]: chunk_id for chunk_id, record in self.records.items()
        }

        if self.index_path.exists():
            self.index = faiss.read_index(str(self.index_path))
        elif self.dimension is not None:
            self.init_index(self.dimension)

    def save(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

        if self.index is not None:
            faiss.write_index(self.index, str(self.index_path))

        with open(self.records_path, "w") as f:
            json.dump(
                {
                    "name": self.name,
                    "dimension": self.dimension,
                    "next_vector_id": self.next_vector_id,
                    "records": self.records,
                },
                f,
            )

    def remove(self, chunk_ids: List[str]) -> int:
        vector_ids = []
        for chunk_id in chunk_ids:
            record = self.records.pop(chunk_id, None)
            if record is None:
                continue
            self.by_vector_id.pop(record["vector_id"], None)
            vector_ids.append(record["vector_id"])

        if vector_ids and self.index is not None:
            self.index.remove_ids(np.array(vector_ids, dtype=np.int64))
        return len(vector_ids)


class FaissVectorStore(VectorStore):
    """Vector store kept on local disk, one directory per collection."""

    def __init__(self, index_dir: Path, default_collection: str = "documents"):
        """Initialize the FAISS vector store.

        Args:
            index_dir: Root directory; each collection gets a subdirectory
            default_collection: Collection used when callers pass None
        """
        super().__init__(default_collection)
        self.index_dir = Path(index_dir)
        self._collections: Dict[str, _FaissCollection] = {}

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            collection=self.default_collection,
        )

    def _collection(
        self, name: str, create: bool, operation: str
    ) -> Optional[_FaissCollection]:
        cached = self._collections.get(name)
        if cached is not None:
            return cached

        state = _FaissCollection(name, self.index_dir / name)
        try:
            if state.records_path.exists():
                state.load()
                logger.info(
                    "faiss_collection_loaded",
                    collection=name,
                    vector_count=state.index.ntotal if state.index is not None else 0,
                )
            elif create:
                state.save()
                logger.info("faiss_collection_created", collection=name)
            else:
                return None
        except (OSError, ValueError, RuntimeError) as e:
            raise VectorStoreError(operation, str(e), cause=e) from e

        self._collections[name] = state
        return state

    async def ensure_collection(self, name: Optional[str] = None) -> CollectionHandle:
        name = self._name(name)
        self._collection(name, create=True, operation="collection-create")
        return CollectionHandle(id=name, name=name)

    async def upsert(self, collection: Optional[str], records: List[ChunkRecord]) -> None:
        if not records:
            return

        name = self._name(collection)
        state = self._collection(name, create=True, operation="collection-create")

        # Last write wins for ids repeated within one batch
        latest: Dict[str, ChunkRecord] = {record.id: record for record in records}
        batch = list(latest.values())

        try:
            vectors = np.array([record.embedding for record in batch], dtype=np.float32)
            if vectors.ndim != 2:
                raise ValueError("Embeddings must all have the same dimension")

            if state.index is None:
                state.init_index(vectors.shape[1])
            elif vectors.shape[1] != state.dimension:
                raise ValueError(
                    f"Embedding dimension mismatch: expected {state.dimension}, "
                    f"got {vectors.shape[1]}"
                )

            state.remove([record.id for record in batch])

            start_id = state.next_vector_id
            vector_ids = np.arange(start_id, start_id + len(batch), dtype=np.int64)
            state.index.add_with_ids(vectors, vector_ids)
            state.next_vector_id = start_id + len(batch)

            for record, vector_id in zip(batch, vector_ids.tolist()):
                state.records[record.id] = {
                    "vector_id": vector_id,
                    "text": record.text,
                    "metadata": record.full_metadata(),
                }
                state.by_vector_id[vector_id] = record.id

            state.save()
        except (OSError, ValueError, RuntimeError) as e:
            # Drop the half-applied state; the next call reloads from disk
            self._collections.pop(name, None)
            raise VectorStoreError("upsert", str(e), cause=e) from e

        logger.info(
            "faiss_records_upserted",
            collection=name,
            count=len(batch),
            total_vectors=state.index.ntotal,
        )

    async def query(
        self, collection: Optional[str], query_vector: List[float], top_k: int
    ) -> List[RetrievalHit]:
        name = self._name(collection)
        state = self._collection(name, create=False, operation="query")
        if state is None or state.index is None or state.index.ntotal == 0:
            return []

        try:
            query = np.array([query_vector], dtype=np.float32)
            if query.shape[1] != state.dimension:
                raise ValueError(
                    f"Query dimension mismatch: expected {state.dimension}, "
                    f"got {query.shape[1]}"
                )

            # Ensure we don't request more results than we have
            k = min(max(1, top_k), state.index.ntotal)
            distances, labels = state.index.search(query, k)
        except (ValueError, RuntimeError) as e:
            raise VectorStoreError("query", str(e), cause=e) from e

        hits = []
        for vector_id, distance in zip(labels[0].tolist(), distances[0].tolist()):
            chunk_id = state.by_vector_id.get(vector_id)
            if chunk_id is None:
                continue
            record = state.records[chunk_id]
            hits.append(
                RetrievalHit(
                    text=record["text"],
                    metadata=dict(record["metadata"]),
                    distance=float(distance),
                )
            )

        hits.sort(key=lambda hit: hit.distance)

        logger.info("faiss_query_completed", collection=name, top_k=top_k, results_found=len(hits))
        return hits

    async def list_documents(self, collection: Optional[str] = None) -> List[DocumentSummary]:
        name = self._name(collection)
        state = self._collection(name, create=False, operation="list")
        if state is None:
            return []
        return summarize_documents(record["metadata"] for record in state.records.values())

    async def delete_document(self, collection: Optional[str], document_id: str) -> DeleteResult:
        name = self._name(collection)
        state = self._collection(name, create=False, operation="delete")
        if state is None:
            return DeleteResult(chunks_deleted=0, message="Collection does not exist")

        chunk_ids = [
            chunk_id
            for chunk_id, record in state.records.items()
            if record["metadata"].get(META_DOCUMENT_ID) == document_id
        ]
        if not chunk_ids:
            return DeleteResult(chunks_deleted=0, message="No chunks found for this document")

        try:
            deleted = state.remove(chunk_ids)
            state.save()
        except (OSError, RuntimeError) as e:
            self._collections.pop(name, None)
            raise VectorStoreError("delete", str(e), cause=e) from e

        logger.info(
            "faiss_document_deleted",
            collection=name,
            document_id=document_id,
            chunks_deleted=deleted,
        )
        return DeleteResult(chunks_deleted=deleted, message=f"Deleted {deleted} chunks")

    async def clear_collection(self, collection: Optional[str] = None) -> bool:
        name = self._name(collection)
        self._collections.pop(name, None)
        directory = self.index_dir / name
        if not directory.exists():
            return False

        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise VectorStoreError("clear", str(e), cause=e) from e

        logger.warning("faiss_collection_cleared", collection=name, path=str(directory))
        return True

    async def ping(self) -> bool:
        return True
