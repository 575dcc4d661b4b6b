"""Chroma gateway specifics: wire format, paging, caching and error mapping."""
import httpx
import pytest

from pdfchat.errors import VectorStoreError
from pdfchat.rag.vector_store import ChromaVectorStore, ChunkRecord

CHROMA_URL = "http://chroma.test"


def _records(document_id, count):
    return [
        ChunkRecord(
            document_id=document_id,
            ordinal_index=i,
            text=f"chunk {i}",
            embedding=[float(i), 1.0],
            metadata={"fileName": f"{document_id}.pdf"},
        )
        for i in range(count)
    ]


@pytest.mark.asyncio
async def test_upsert_payload(chroma_store, fake_chroma):
    """Test that upsert sends ids, embeddings, metadata and documents together."""
    await chroma_store.upsert("documents", _records("doc", 2))

    method, path, body = fake_chroma.requests[-1]
    assert method == "POST"
    assert path.endswith("/upsert")
    assert body["ids"] == ["doc:0", "doc:1"]
    assert body["documents"] == ["chunk 0", "chunk 1"]
    assert body["metadatas"][1] == {"fileName": "doc.pdf", "documentId": "doc", "ordinalIndex": 1}


@pytest.mark.asyncio
async def test_collection_is_created_with_get_or_create(chroma_store, fake_chroma):
    """Test that creation is idempotent on the server side too."""
    await chroma_store.ensure_collection()

    creates = [
        body
        for method, path, body in fake_chroma.requests
        if (method, path) == ("POST", "/collections")
    ]
    assert creates == [
        {
            "name": "documents",
            "metadata": {"description": "Document embeddings collection"},
            "get_or_create": True,
        }
    ]


@pytest.mark.asyncio
async def test_collection_id_is_cached(chroma_store, fake_chroma):
    """Test that the collection is looked up once per process."""
    await chroma_store.upsert("documents", _records("doc", 1))
    await chroma_store.upsert("documents", _records("doc", 1))

    lookups = [r for r in fake_chroma.requests if r[:2] == ("GET", "/collections")]
    assert len(lookups) == 1


@pytest.mark.asyncio
async def test_missing_collection_is_not_created_by_reads(chroma_store, fake_chroma):
    """Test that query, list and delete never create the collection."""
    await chroma_store.query("documents", [1.0, 1.0], 5)
    await chroma_store.list_documents("documents")
    await chroma_store.delete_document("documents", "doc")

    assert fake_chroma.collections == {}


@pytest.mark.asyncio
async def test_list_pages_through_large_collections(fake_chroma):
    """Test that listing follows limit/offset pages until a short page."""
    store = ChromaVectorStore(
        CHROMA_URL, page_size=2, transport=httpx.MockTransport(fake_chroma.handler)
    )
    await store.upsert("documents", _records("doc", 5))

    [summary] = await store.list_documents("documents")

    assert summary.chunk_count == 5
    offsets = [body["offset"] for _, path, body in fake_chroma.requests if path.endswith("/get")]
    assert offsets == [0, 2, 4]


@pytest.mark.asyncio
async def test_delete_scans_with_document_filter(chroma_store, fake_chroma):
    """Test that delete filters by document id and deletes by record id."""
    await chroma_store.upsert("documents", _records("alpha", 2) + _records("beta", 1))

    await chroma_store.delete_document("documents", "alpha")

    gets = [body for _, path, body in fake_chroma.requests if path.endswith("/get")]
    deletes = [body for _, path, body in fake_chroma.requests if path.endswith("/delete")]
    assert gets[-1]["where"] == {"documentId": "alpha"}
    assert deletes == [{"ids": ["alpha:0", "alpha:1"]}]


@pytest.mark.asyncio
async def test_server_error_is_tagged_with_operation(chroma_store, fake_chroma):
    """Test that a failing upsert raises VectorStoreError for 'upsert'."""
    fake_chroma.failures[("POST", "/upsert")] = 500

    with pytest.raises(VectorStoreError) as exc_info:
        await chroma_store.upsert("documents", _records("doc", 1))

    assert exc_info.value.operation == "upsert"
    assert exc_info.value.kind == "vector-store"
    assert "HTTP 500" in str(exc_info.value)


@pytest.mark.asyncio
async def test_connection_error_is_tagged_with_operation():
    """Test that an unreachable server raises VectorStoreError for the operation."""

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    store = ChromaVectorStore(CHROMA_URL, transport=httpx.MockTransport(handler))

    with pytest.raises(VectorStoreError) as exc_info:
        await store.list_documents()

    assert exc_info.value.operation == "list"
    assert isinstance(exc_info.value.cause, httpx.ConnectError)
    assert await store.ping() is False


@pytest.mark.asyncio
async def test_stale_collection_id_is_dropped_after_404(chroma_store, fake_chroma):
    """Test that a collection deleted elsewhere is re-resolved on the next call."""
    await chroma_store.upsert("documents", _records("doc", 2))
    fake_chroma.drop("documents")

    with pytest.raises(VectorStoreError) as exc_info:
        await chroma_store.query("documents", [1.0, 1.0], 5)
    assert exc_info.value.operation == "query"

    # The cached id was discarded, so the next call sees the collection is gone
    assert await chroma_store.query("documents", [1.0, 1.0], 5) == []

    await chroma_store.upsert("documents", _records("doc", 1))
    assert len(await chroma_store.query("documents", [1.0, 1.0], 5)) == 1


@pytest.mark.asyncio
async def test_query_response_with_missing_distances_is_refused(fake_chroma):
    """Test that a query reply whose arrays disagree in length raises for 'query'."""

    def handler(request):
        response = fake_chroma.handler(request)
        if not request.url.path.endswith("/query"):
            return response
        body = response.json()
        body["distances"] = [body["distances"][0][:1]]
        return httpx.Response(200, json=body)

    store = ChromaVectorStore(CHROMA_URL, transport=httpx.MockTransport(handler))
    await store.upsert("documents", _records("doc", 3))

    with pytest.raises(VectorStoreError) as exc_info:
        await store.query("documents", [1.0, 1.0], 3)

    assert exc_info.value.operation == "query"
    assert "Malformed query response" in str(exc_info.value)
