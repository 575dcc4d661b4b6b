"""Wires the pipeline components together from one Settings object."""
from dataclasses import dataclass
from typing import Optional
import structlog

from pdfchat.blob_store import FileBlobStore
from pdfchat.config import Settings
from pdfchat.documents import DocumentManager
from pdfchat.llm_client import OllamaClient
from pdfchat.rag.chunker import TextChunker
from pdfchat.rag.embeddings import EmbeddingClient
from pdfchat.rag.ingest import IngestPipeline
from pdfchat.rag.pdf_parser import PdfTextExtractor
from pdfchat.rag.retriever import Retriever
from pdfchat.rag.store_faiss import FaissVectorStore
from pdfchat.rag.vector_store import ChromaVectorStore, VectorStore

logger = structlog.get_logger()


@dataclass
class Services:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    llm: OllamaClient
    vector_store: VectorStore
    blob_store: FileBlobStore
    ingest: IngestPipeline
    retriever: Retriever
    documents: DocumentManager


def build_vector_store(settings: Settings) -> VectorStore:
    if settings.vector_backend == "faiss":
        return FaissVectorStore(
            index_dir=settings.faiss_dir,
            default_collection=settings.collection_name,
        )
    return ChromaVectorStore(
        base_url=settings.chroma_url,
        default_collection=settings.collection_name,
        page_size=settings.chroma_page_size,
        timeout=settings.request_timeout,
    )


def build_services(settings: Settings, llm: Optional[OllamaClient] = None) -> Services:
    """Construct every component from settings.

    Args:
        settings: Process configuration
        llm: Language model client to use instead of one built from settings
    """
    llm = llm or OllamaClient(
        base_url=settings.ollama_base_url,
        chat_model=settings.chat_model,
        embedding_model=settings.embedding_model,
        timeout=settings.request_timeout,
    )
    embedder = EmbeddingClient(llm, max_concurrency=settings.embedding_concurrency)
    vector_store = build_vector_store(settings)
    blob_store = FileBlobStore(settings.uploads_dir)

    services = Services(
        settings=settings,
        llm=llm,
        vector_store=vector_store,
        blob_store=blob_store,
        ingest=IngestPipeline(
            extractor=PdfTextExtractor(),
            chunker=TextChunker(settings.chunk_size, settings.chunk_overlap),
            embedder=embedder,
            vector_store=vector_store,
            blob_store=blob_store,
            collection_name=settings.collection_name,
        ),
        retriever=Retriever(
            embedder=embedder,
            vector_store=vector_store,
            llm=llm,
            collection_name=settings.collection_name,
            top_k=settings.retrieval_top_k,
        ),
        documents=DocumentManager(vector_store, blob_store, settings.collection_name),
    )

    logger.info(
        "services_built",
        vector_backend=settings.vector_backend,
        collection=settings.collection_name,
        embedding_model=settings.embedding_model,
        chat_model=settings.chat_model,
    )
    return services
