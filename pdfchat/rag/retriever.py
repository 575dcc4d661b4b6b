"""Retriever for question answering over ingested documents.

Handles:
- Query embedding generation
- Similarity search in the vector store
- Numbered, source-labelled context assembly
- Delegation to the generation service
"""
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
import structlog

from pdfchat.llm_client import OllamaClient
from pdfchat.rag.embeddings import EmbeddingClient
from pdfchat.rag.vector_store import RetrievalHit, VectorStore

logger = structlog.get_logger()

SOURCE_DELIMITER = "\n\n---\n\n"

RAG_PROMPT_TEMPLATE = (
    "You are a helpful assistant. Use ONLY the context to answer the user's question.\n"
    "If the answer is not contained in the context, say you don't know based on "
    "the provided documents.\n\n"
    'Context:\n"""\n{context}\n"""\n\n'
    "Question: {question}\n"
)


@dataclass
class RetrievedContext:
    """Context string plus the hits it was built from, closest first."""

    context: str
    hits: List[RetrievalHit] = field(default_factory=list)

    @property
    def sources(self) -> List[Dict[str, Any]]:
        return [hit.metadata for hit in self.hits]


@dataclass
class RagAnswer:
    """Generated answer and the metadata of the chunks it was based on."""

    answer_text: str
    sources: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {"reply": self.answer_text, "sources": self.sources}


def format_context(hits: List[RetrievalHit]) -> str:
    """Number hits from 1 and label each with its source.

    Returns an empty string when there are no hits.
    """
    return SOURCE_DELIMITER.join(
        f"Source {rank} ({hit.source_label}):\n{hit.text}"
        for rank, hit in enumerate(hits, 1)
    )


def build_prompt(context: str, question: str) -> str:
    return RAG_PROMPT_TEMPLATE.format(context=context, question=question)


class Retriever:
    """Semantic retriever for the RAG pipeline."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        vector_store: VectorStore,
        llm: OllamaClient,
        collection_name: Optional[str] = None,
        top_k: int = 5,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedding client for queries
            vector_store: Vector store gateway
            llm: Generation service
            collection_name: Collection to search (store default when None)
            top_k: Number of results when callers don't specify one
        """
        self.embedder = embedder
        self.vector_store = vector_store
        self.llm = llm
        self.collection_name = collection_name or vector_store.default_collection
        self.top_k = top_k

        logger.info(
            "retriever_initialized",
            collection=self.collection_name,
            top_k=self.top_k,
        )

    async def retrieve(self, query: str, top_k: Optional[int] = None) -> List[RetrievalHit]:
        """Retrieve the chunks closest to a query.

        Args:
            query: User query text
            top_k: Number of results (clamped to at least 1)

        Returns:
            Hits sorted by ascending distance; empty when nothing matches

        Raises:
            EmbeddingServiceError: If the query cannot be embedded
            VectorStoreError: If the search fails
        """
        top_k = max(1, self.top_k if top_k is None else top_k)

        logger.info("retrieval_started", query_length=len(query), top_k=top_k)

        query_embedding = await self.embedder.embed_query(query)
        hits = await self.vector_store.query(self.collection_name, query_embedding, top_k)

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(hits),
            top_distance=hits[0].distance if hits else None,
        )
        return hits

    async def retrieve_context(self, query: str, top_k: Optional[int] = None) -> RetrievedContext:
        """Retrieve and format context for the generation prompt."""
        hits = await self.retrieve(query, top_k=top_k)
        context = format_context(hits)

        logger.debug("context_formatted", num_chunks=len(hits), total_chars=len(context))

        return RetrievedContext(context=context, hits=hits)

    async def answer(self, question: str, top_k: Optional[int] = None) -> RagAnswer:
        """Answer a question from the retrieved context.

        An empty context is still sent to the model; the prompt tells it to
        say it doesn't know.

        Raises:
            EmbeddingServiceError, VectorStoreError, GenerationServiceError
        """
        retrieved = await self.retrieve_context(question, top_k=top_k)
        reply = await self.llm.complete(build_prompt(retrieved.context, question))

        logger.info(
            "rag_answer_generated",
            num_sources=len(retrieved.hits),
            response_length=len(reply),
        )
        return RagAnswer(answer_text=reply, sources=retrieved.sources)
