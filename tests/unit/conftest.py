"""Pytest configuration and fixtures shared by the unit tests.

External services are replaced by in-process fakes reached through
``httpx.MockTransport``: a small Ollama (embeddings, chat, tags) and a small
Chroma server (collections, upsert, query, get, delete, count).
"""
import json
import uuid
from typing import Dict, List, Optional

import fitz
import httpx
import pytest

from pdfchat.blob_store import FileBlobStore
from pdfchat.config import Settings
from pdfchat.llm_client import OllamaClient
from pdfchat.rag.store_faiss import FaissVectorStore
from pdfchat.rag.vector_store import ChromaVectorStore

OLLAMA_URL = "http://ollama.test"
CHROMA_URL = "http://chroma.test"

EMBEDDING_LETTERS = "aeioustrnl"


def fake_embedding(text: str) -> List[float]:
    """Deterministic letter-frequency vector; similar texts land close together."""
    lowered = text.lower()
    return [float(lowered.count(letter)) for letter in EMBEDDING_LETTERS] + [1.0]


def make_pdf(*pages: str) -> bytes:
    """Build a PDF in memory, one page per argument (empty string = blank page)."""
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text, fontsize=11)
    data = doc.tobytes()
    doc.close()
    return data


class FakeOllama:
    """Answers /api/embeddings, /api/chat and /api/tags."""

    def __init__(self, models: Optional[List[str]] = None):
        self.models = models if models is not None else ["gemma3:12b", "mxbai-embed-large:latest"]
        self.embedding_status = 200
        self.chat_status = 200
        self.reply = "Generated answer"
        self.prompts: List[str] = []
        self.embedded: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path

        if path == "/api/tags":
            return httpx.Response(200, json={"models": [{"name": name} for name in self.models]})

        body = json.loads(request.content)

        if path == "/api/embeddings":
            if self.embedding_status != 200:
                return httpx.Response(self.embedding_status, json={"error": "model not loaded"})
            self.embedded.append(body["prompt"])
            return httpx.Response(200, json={"embedding": fake_embedding(body["prompt"])})

        if path == "/api/chat":
            if self.chat_status != 200:
                return httpx.Response(self.chat_status, json={"error": "generation failed"})
            self.prompts.append(body["messages"][-1]["content"])
            return httpx.Response(
                200,
                json={"message": {"role": "assistant", "content": self.reply}, "done": True},
            )

        return httpx.Response(404, json={"error": "not found"})


class FakeChroma:
    """Minimal in-memory Chroma v1 HTTP API."""

    PREFIX = "/api/v1"

    def __init__(self):
        # collection id -> {"name": str, "records": {record id: record}}
        self.collections: Dict[str, Dict] = {}
        self.requests: List[tuple] = []
        # (method, path fragment) -> status code to answer with
        self.failures: Dict[tuple, int] = {}

    def collection_named(self, name: str) -> Optional[Dict]:
        for collection in self.collections.values():
            if collection["name"] == name:
                return collection
        return None

    def drop(self, name: str) -> None:
        """Delete a collection behind the client's back."""
        for collection_id, collection in list(self.collections.items()):
            if collection["name"] == name:
                del self.collections[collection_id]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        assert path.startswith(self.PREFIX)
        path = path[len(self.PREFIX):]
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        for (method, fragment), status in self.failures.items():
            if request.method == method and fragment in path:
                return httpx.Response(status, json={"error": "injected failure"})

        parts = path.strip("/").split("/")

        if parts == ["heartbeat"]:
            return httpx.Response(200, json={"nanosecond heartbeat": 1})

        if parts == ["collections"]:
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json=[
                        {"id": collection_id, "name": collection["name"], "metadata": None}
                        for collection_id, collection in self.collections.items()
                    ],
                )
            existing = self.collection_named(body["name"])
            if existing is None:
                collection_id = str(uuid.uuid4())
                self.collections[collection_id] = {"name": body["name"], "records": {}}
            else:
                collection_id = next(
                    cid for cid, c in self.collections.items() if c is existing
                )
            return httpx.Response(
                200, json={"id": collection_id, "name": body["name"], "metadata": None}
            )

        collection = self.collections.get(parts[1])
        if collection is None:
            return httpx.Response(404, json={"error": "Collection does not exist"})

        if len(parts) == 2 and request.method == "DELETE":
            del self.collections[parts[1]]
            return httpx.Response(200, json=None)

        records = collection["records"]
        action = parts[2]

        if action == "count":
            return httpx.Response(200, json=len(records))

        if action == "upsert":
            for record_id, embedding, metadata, document in zip(
                body["ids"], body["embeddings"], body["metadatas"], body["documents"]
            ):
                records[record_id] = {
                    "embedding": embedding,
                    "metadata": metadata,
                    "document": document,
                }
            return httpx.Response(200, json=True)

        if action == "query":
            vector = body["query_embeddings"][0]
            ranked = sorted(
                records.items(),
                key=lambda item: sum(
                    (a - b) ** 2 for a, b in zip(item[1]["embedding"], vector)
                ),
            )[: body["n_results"]]
            return httpx.Response(
                200,
                json={
                    "ids": [[record_id for record_id, _ in ranked]],
                    "documents": [[record["document"] for _, record in ranked]],
                    "metadatas": [[record["metadata"] for _, record in ranked]],
                    "distances": [[
                        sum((a - b) ** 2 for a, b in zip(record["embedding"], vector))
                        for _, record in ranked
                    ]],
                },
            )

        if action == "get":
            where = body.get("where") or {}
            matching = [
                (record_id, record)
                for record_id, record in records.items()
                if all(record["metadata"].get(key) == value for key, value in where.items())
            ]
            offset = body.get("offset") or 0
            limit = body.get("limit")
            page = matching[offset:offset + limit] if limit is not None else matching[offset:]
            return httpx.Response(
                200,
                json={
                    "ids": [record_id for record_id, _ in page],
                    "metadatas": [record["metadata"] for _, record in page],
                },
            )

        if action == "delete":
            for record_id in body["ids"]:
                records.pop(record_id, None)
            return httpx.Response(200, json=body["ids"])

        return httpx.Response(404, json={"error": f"Unknown route {path}"})


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def fake_chroma() -> FakeChroma:
    return FakeChroma()


@pytest.fixture
def llm(fake_ollama: FakeOllama) -> OllamaClient:
    """Ollama client wired to the fake Ollama server."""
    return OllamaClient(
        base_url=OLLAMA_URL,
        chat_model="gemma3:12b",
        embedding_model="mxbai-embed-large:latest",
        transport=httpx.MockTransport(fake_ollama.handler),
    )


@pytest.fixture
def chroma_store(fake_chroma: FakeChroma) -> ChromaVectorStore:
    """Chroma gateway wired to the fake Chroma server."""
    return ChromaVectorStore(
        base_url=CHROMA_URL,
        default_collection="documents",
        page_size=1000,
        transport=httpx.MockTransport(fake_chroma.handler),
    )


@pytest.fixture
def faiss_store(tmp_path) -> FaissVectorStore:
    return FaissVectorStore(index_dir=tmp_path / "faiss", default_collection="documents")


@pytest.fixture
def blob_store(tmp_path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "uploads")


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing every store at the test's temporary directory."""
    return Settings(
        ollama_base_url=OLLAMA_URL,
        vector_backend="faiss",
        faiss_dir=tmp_path / "faiss",
        uploads_dir=tmp_path / "uploads",
        chunk_size=300,
        chunk_overlap=50,
        log_json=False,
        log_level="WARNING",
    )


@pytest.fixture
def text_pdf() -> bytes:
    """A two-page PDF with extractable text."""
    return make_pdf(
        "Solar panels convert sunlight into electricity.\nThey work best at noon.",
        "Wind turbines rotate blades to drive a generator.",
    )


@pytest.fixture
def image_only_pdf() -> bytes:
    """A PDF whose only page carries no text at all."""
    return make_pdf("")


@pytest.fixture
def pdf_factory():
    """Callable building in-memory PDFs, one page per text argument."""
    return make_pdf
