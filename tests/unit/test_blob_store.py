"""Tests for the file-backed blob store."""
import pytest

from pdfchat.blob_store import FileBlobStore, is_valid_document_id
from pdfchat.errors import BlobStoreError


@pytest.mark.asyncio
async def test_put_get_roundtrip(blob_store):
    """Test that stored bytes come back unchanged and land under the id."""
    path = await blob_store.put("doc-1", b"%PDF-1.7 bytes")

    assert path.name == "doc-1.pdf"
    assert await blob_store.get("doc-1") == b"%PDF-1.7 bytes"


@pytest.mark.asyncio
async def test_put_replaces_existing(blob_store):
    """Test that writing twice keeps only the latest bytes."""
    await blob_store.put("doc-1", b"old")
    await blob_store.put("doc-1", b"new")
    assert await blob_store.get("doc-1") == b"new"


@pytest.mark.asyncio
async def test_get_missing_returns_none(blob_store):
    """Test that an unknown id is reported as absent."""
    assert await blob_store.get("missing") is None


@pytest.mark.asyncio
async def test_delete(blob_store):
    """Test that delete reports whether a file was removed."""
    await blob_store.put("doc-1", b"data")

    assert await blob_store.delete("doc-1") is True
    assert await blob_store.delete("doc-1") is False
    assert await blob_store.get("doc-1") is None


@pytest.mark.asyncio
async def test_list_ids(blob_store):
    """Test that only stored PDFs are listed, sorted."""
    assert await blob_store.list_ids() == []

    await blob_store.put("b-doc", b"1")
    await blob_store.put("a-doc", b"2")
    (blob_store.uploads_dir / "notes.txt").write_text("not a pdf")

    assert await blob_store.list_ids() == ["a-doc", "b-doc"]


@pytest.mark.parametrize("document_id", ["../etc/passwd", "a/b", "", ".hidden", "x y"])
def test_path_traversal_ids_rejected(document_id):
    """Test that ids that could leave the uploads directory are refused."""
    assert not is_valid_document_id(document_id)


@pytest.mark.asyncio
async def test_invalid_id_handling(blob_store):
    """Test put refuses, get and delete treat bad ids as absent."""
    with pytest.raises(BlobStoreError) as exc_info:
        await blob_store.put("../escape", b"data")

    assert exc_info.value.operation == "put"
    assert await blob_store.get("../escape") is None
    assert await blob_store.delete("../escape") is False


@pytest.mark.asyncio
async def test_put_failure_is_wrapped(tmp_path):
    """Test that an unwritable location raises BlobStoreError."""
    blocker = tmp_path / "blocker"
    blocker.write_text("a file where a directory should be")
    store = FileBlobStore(blocker / "uploads")

    with pytest.raises(BlobStoreError):
        await store.put("doc-1", b"data")
