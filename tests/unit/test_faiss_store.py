"""FAISS backend specifics: persistence and dimension checks."""
import pytest

from pdfchat.errors import VectorStoreError
from pdfchat.rag.store_faiss import FaissVectorStore, _FaissCollection
from pdfchat.rag.vector_store import ChunkRecord


def _record(document_id, index, vector):
    return ChunkRecord(
        document_id=document_id,
        ordinal_index=index,
        text=f"{document_id}-{index}",
        embedding=vector,
        metadata={"fileName": f"{document_id}.pdf"},
    )


@pytest.mark.asyncio
async def test_state_survives_restart(tmp_path):
    """Test that a new store instance sees previously written records."""
    first = FaissVectorStore(tmp_path / "faiss")
    await first.upsert(None, [_record("alpha", 0, [1.0, 0.0]), _record("alpha", 1, [0.0, 1.0])])
    await first.delete_document(None, "ghost")

    second = FaissVectorStore(tmp_path / "faiss")
    hits = await second.query(None, [0.0, 1.0], 5)

    assert [hit.text for hit in hits] == ["alpha-1", "alpha-0"]
    [summary] = await second.list_documents()
    assert summary.chunk_count == 2


@pytest.mark.asyncio
async def test_deletes_survive_restart(tmp_path):
    """Test that deleted records stay deleted after reloading."""
    first = FaissVectorStore(tmp_path / "faiss")
    await first.upsert(None, [_record("alpha", 0, [1.0]), _record("beta", 0, [2.0])])
    await first.delete_document(None, "alpha")

    second = FaissVectorStore(tmp_path / "faiss")
    assert [hit.text for hit in await second.query(None, [1.0], 5)] == ["beta-0"]


@pytest.mark.asyncio
async def test_dimension_mismatch_on_upsert(faiss_store):
    """Test that vectors of a different dimension are refused."""
    await faiss_store.upsert(None, [_record("alpha", 0, [1.0, 2.0])])

    with pytest.raises(VectorStoreError) as exc_info:
        await faiss_store.upsert(None, [_record("beta", 0, [1.0, 2.0, 3.0])])

    assert exc_info.value.operation == "upsert"


@pytest.mark.asyncio
async def test_dimension_mismatch_on_query(faiss_store):
    """Test that a query vector of the wrong dimension is refused."""
    await faiss_store.upsert(None, [_record("alpha", 0, [1.0, 2.0])])

    with pytest.raises(VectorStoreError) as exc_info:
        await faiss_store.query(None, [1.0], 5)

    assert exc_info.value.operation == "query"


@pytest.mark.asyncio
async def test_repeated_id_within_batch_keeps_last(faiss_store):
    """Test that the last record wins when one batch repeats an id."""
    first = _record("alpha", 0, [1.0])
    last = ChunkRecord("alpha", 0, "latest text", [1.0], {})

    await faiss_store.upsert(None, [first, last])

    hits = await faiss_store.query(None, [1.0], 5)
    assert [hit.text for hit in hits] == ["latest text"]


def _failing_save(self):
    raise OSError("No space left on device")


@pytest.mark.asyncio
async def test_failed_upsert_save_leaves_no_visible_records(faiss_store, monkeypatch):
    """Test that records from an upsert that could not be persisted are not served."""
    await faiss_store.upsert(None, [_record("alpha", 0, [1.0, 0.0])])
    monkeypatch.setattr(_FaissCollection, "save", _failing_save)

    with pytest.raises(VectorStoreError) as excinfo:
        await faiss_store.upsert(None, [_record("beta", 0, [0.0, 1.0])])
    assert excinfo.value.operation == "upsert"

    hits = await faiss_store.query(None, [0.0, 1.0], 5)
    assert [hit.text for hit in hits] == ["alpha-0"]
    assert [summary.document_id for summary in await faiss_store.list_documents()] == ["alpha"]


@pytest.mark.asyncio
async def test_failed_delete_save_keeps_persisted_records(faiss_store, monkeypatch):
    """Test that a delete that could not be persisted does not hide the document."""
    await faiss_store.upsert(None, [_record("alpha", 0, [1.0]), _record("beta", 0, [2.0])])
    monkeypatch.setattr(_FaissCollection, "save", _failing_save)

    with pytest.raises(VectorStoreError) as excinfo:
        await faiss_store.delete_document(None, "alpha")
    assert excinfo.value.operation == "delete"

    hits = await faiss_store.query(None, [1.0], 5)
    assert [hit.text for hit in hits] == ["alpha-0", "beta-0"]
