"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- PDF text extraction
- Paragraph-aware chunking with overlap
- Embedding generation
- Vector store gateways (Chroma over HTTP, local FAISS)
- Ingestion and retrieval orchestration
"""
