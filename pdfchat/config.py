"""Application configuration with sensible defaults."""
import os
from dataclasses import dataclass, field
from pathlib import Path

from pdfchat.errors import ConfigurationError

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"

VECTOR_BACKENDS = ("chroma", "faiss")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration, built once at process start."""

    # Server
    host: str = "0.0.0.0"
    port: int = 3001

    # Ollama (embeddings + generation)
    ollama_base_url: str = "http://localhost:11434"
    chat_model: str = "gemma3:12b"
    embedding_model: str = "mxbai-embed-large:latest"

    # Vector store
    vector_backend: str = "chroma"
    chroma_url: str = "http://localhost:8000"
    collection_name: str = "documents"
    chroma_page_size: int = 1000
    faiss_dir: Path = field(default_factory=lambda: DATA_DIR / "faiss")

    # Blob store
    uploads_dir: Path = field(default_factory=lambda: DATA_DIR / "uploads")
    max_upload_mb: int = 32

    # RAG parameters (character-based to avoid tokenizer inconsistencies)
    chunk_size: int = 1200
    chunk_overlap: int = 200
    retrieval_top_k: int = 5
    embedding_concurrency: int = 8

    # Transport
    request_timeout: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    def __post_init__(self):
        if self.chunk_size <= 0 or self.chunk_overlap <= 0:
            raise ConfigurationError("CHUNK_SIZE and CHUNK_OVERLAP must be positive")
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be less than "
                f"CHUNK_SIZE ({self.chunk_size})"
            )
        if self.embedding_concurrency < 1:
            raise ConfigurationError("EMBEDDING_CONCURRENCY must be at least 1")
        if self.chroma_page_size < 1:
            raise ConfigurationError("CHROMA_PAGE_SIZE must be at least 1")
        if self.vector_backend not in VECTOR_BACKENDS:
            raise ConfigurationError(
                f"Unknown VECTOR_BACKEND {self.vector_backend!r}, "
                f"expected one of {', '.join(VECTOR_BACKENDS)}"
            )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from environment variables, falling back to defaults.

        Raises:
            ConfigurationError: If a value is malformed or inconsistent
        """
        try:
            return cls(
                host=os.getenv("HOST", cls.host),
                port=int(os.getenv("PORT", str(cls.port))),
                ollama_base_url=os.getenv("OLLAMA_BASE_URL", cls.ollama_base_url),
                chat_model=os.getenv("CHAT_MODEL", cls.chat_model),
                embedding_model=os.getenv("EMBEDDING_MODEL", cls.embedding_model),
                vector_backend=os.getenv("VECTOR_BACKEND", cls.vector_backend).lower(),
                chroma_url=os.getenv("CHROMA_URL", cls.chroma_url).rstrip("/"),
                collection_name=os.getenv("CHROMA_COLLECTION", cls.collection_name),
                chroma_page_size=int(os.getenv("CHROMA_PAGE_SIZE", str(cls.chroma_page_size))),
                faiss_dir=Path(os.getenv("FAISS_DIR", str(DATA_DIR / "faiss"))),
                uploads_dir=Path(os.getenv("UPLOADS_DIR", str(DATA_DIR / "uploads"))),
                max_upload_mb=int(os.getenv("MAX_UPLOAD_MB", str(cls.max_upload_mb))),
                chunk_size=int(os.getenv("CHUNK_SIZE", str(cls.chunk_size))),
                chunk_overlap=int(os.getenv("CHUNK_OVERLAP", str(cls.chunk_overlap))),
                retrieval_top_k=int(os.getenv("RETRIEVAL_TOP_K", str(cls.retrieval_top_k))),
                embedding_concurrency=int(
                    os.getenv("EMBEDDING_CONCURRENCY", str(cls.embedding_concurrency))
                ),
                request_timeout=float(os.getenv("REQUEST_TIMEOUT", str(cls.request_timeout))),
                log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
                log_json=_env_bool("LOG_JSON", cls.log_json),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e
