"""Chat with your PDFs: ingestion, retrieval and document management."""
