"""Paragraph-aware text chunking with character overlap.

Paragraphs are packed greedily into chunks of at most ``chunk_size``
characters. Every time a chunk is flushed, the next one is seeded with the
last ``chunk_overlap`` characters of the flushed one, so context survives
the split. Paragraphs longer than a whole chunk are sliced into windows
that advance by ``chunk_size - chunk_overlap`` characters.
"""
import re
from typing import List
from dataclasses import dataclass
import structlog

logger = structlog.get_logger()

PARAGRAPH_SEPARATOR = "\n\n"

_LINE_ENDINGS = re.compile(r"\r\n|\r")
_BLANK_LINE = re.compile(r"\n\s*\n")


@dataclass
class TextChunk:
    """A chunk of document text and its position in the document."""

    content: str
    chunk_index: int


def normalize_text(text: str) -> str:
    """Unify line endings to ``\\n`` and replace tabs with spaces."""
    return _LINE_ENDINGS.sub("\n", text).replace("\t", " ")


def split_paragraphs(text: str) -> List[str]:
    """Split normalized text on blank lines, dropping blank paragraphs."""
    return [para for para in _BLANK_LINE.split(text) if para.strip()]


class TextChunker:
    """Character-based, paragraph-aware chunker with overlap support."""

    def __init__(self, chunk_size: int = 1200, chunk_overlap: int = 200):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum size of each chunk in characters
            chunk_overlap: Characters carried over from one chunk into the next

        Raises:
            ValueError: If the sizes are not positive or overlap >= chunk size
        """
        if chunk_size <= 0 or chunk_overlap <= 0:
            raise ValueError("chunk_size and chunk_overlap must be positive")
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"Overlap ({chunk_overlap}) must be less than "
                f"chunk size ({chunk_size})"
            )

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split(self, text: str) -> List[str]:
        """Split text into trimmed, non-empty chunk strings.

        Args:
            text: Raw extracted text

        Returns:
            Ordered list of chunk strings, empty when the text has no content
        """
        if not text:
            return []

        size, overlap = self.chunk_size, self.chunk_overlap
        raw_chunks: List[str] = []
        current = ""

        for para in split_paragraphs(normalize_text(text)):
            candidate = current + PARAGRAPH_SEPARATOR + para if current else para
            if len(candidate) <= size:
                current = candidate
                continue

            if current:
                raw_chunks.append(current)
            tail = current[-overlap:] if current else ""
            current = tail + PARAGRAPH_SEPARATOR + para if tail else para

            # Oversized paragraph: emit full windows, keep the overlap as seed
            while len(current) > size:
                raw_chunks.append(current[:size])
                current = current[size - overlap :]

        if current:
            raw_chunks.append(current)

        return [chunk.strip() for chunk in raw_chunks if chunk.strip()]

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping, densely indexed chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects with 0-based contiguous indices
        """
        chunks = [
            TextChunk(content=content, chunk_index=index)
            for index, content in enumerate(self.split(text))
        ]

        if chunks:
            logger.info(
                "text_chunked",
                text_length=len(text),
                chunk_count=len(chunks),
                avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
            )
        else:
            logger.debug("text_chunked_empty", text_length=len(text or ""))

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }
