#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and external services."""
import sys
import asyncio
from pathlib import Path

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("PDF Chat - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    in_venv = hasattr(sys, 'real_prefix') or (hasattr(sys, 'base_prefix') and sys.base_prefix != sys.prefix)
    if in_venv:
        print_success("Running in virtual environment")
    else:
        print_warning("Not running in virtual environment (recommended)")
        warnings.append("Not in venv")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("fitz", "PyMuPDF text extraction"),
        ("faiss", "FAISS vector store"),
        ("numpy", "Vector arrays"),
        ("pydantic", "Data validation"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Test configuration
    print_section("3. Configuration")

    try:
        # Add parent directory to path to import pdfchat
        sys.path.insert(0, str(Path(__file__).parent.parent))
        from pdfchat.config import Settings

        settings = Settings.from_env()

        print_success("Config loaded successfully")
        print_info(f"  Chat model: {settings.chat_model}")
        print_info(f"  Embedding model: {settings.embedding_model}")
        print_info(f"  Ollama URL: {settings.ollama_base_url}")
        print_info(f"  Vector backend: {settings.vector_backend}")
        print_info(f"  Collection: {settings.collection_name}")
        print_info(f"  Chunk size / overlap: {settings.chunk_size} / {settings.chunk_overlap} chars")
        print_info(f"  Uploads directory: {settings.uploads_dir}")

        if settings.uploads_dir.exists():
            print_success(f"Uploads directory exists: {settings.uploads_dir}")
        else:
            print_warning(f"Uploads directory missing (created on first upload): {settings.uploads_dir}")
            warnings.append("Uploads directory missing")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    import httpx

    # 4. Test Ollama connection
    print_section("4. Ollama Service")

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{settings.ollama_base_url}/api/tags")
            response.raise_for_status()
            data = response.json()

            print_success(f"Ollama service running at {settings.ollama_base_url}")

            models = {m['name'] for m in data.get('models', [])}
            print_info(f"Found {len(models)} models installed")

            for label, model in (("Chat", settings.chat_model), ("Embedding", settings.embedding_model)):
                if model in models:
                    print_success(f"{label} model available: {model}")
                else:
                    print_error(f"{label} model missing: {model}")
                    print_info(f"  Run: ollama pull {model}")
                    errors.append(f"Missing {label.lower()} model: {model}")

    except httpx.ConnectError:
        print_error("Cannot connect to Ollama service")
        print_info("  Make sure Ollama is running: ollama serve")
        errors.append("Ollama not running")
    except httpx.HTTPError as e:
        print_error(f"Ollama check failed: {e}")
        errors.append(f"Ollama error: {e}")

    # 5. Test embeddings with a simple request
    print_section("5. Embedding API Test")

    from pdfchat.errors import PdfChatError
    from pdfchat.llm_client import OllamaClient
    from pdfchat.rag.embeddings import EmbeddingClient

    try:
        llm = OllamaClient(
            base_url=settings.ollama_base_url,
            chat_model=settings.chat_model,
            embedding_model=settings.embedding_model,
            timeout=settings.request_timeout,
        )
        vector = await EmbeddingClient(llm).embed_query("test")
        print_success(f"Embedding API working (dimension: {len(vector)})")
    except PdfChatError as e:
        print_error(f"Embedding API test failed: {e}")
        errors.append(f"Embedding test failed: {e}")

    # 6. Vector store
    print_section("6. Vector Store")

    if settings.vector_backend == "chroma":
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(f"{settings.chroma_url}/api/v1/heartbeat")
                response.raise_for_status()
            print_success(f"Chroma reachable at {settings.chroma_url}")
        except httpx.HTTPError as e:
            print_error(f"Cannot reach Chroma at {settings.chroma_url}: {e}")
            print_info("  Start it with: chroma run --path ./data/chroma")
            errors.append("Chroma not reachable")
    else:
        print_success(f"Local FAISS store at {settings.faiss_dir}")

    # 7. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
