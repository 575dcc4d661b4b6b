"""Quart application exposing PDF upload, RAG chat and document management."""
import asyncio
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from quart import Blueprint, Quart, Response, current_app, jsonify, request
import httpx
import structlog

from pdfchat.config import Settings
from pdfchat.errors import (
    EmptyContentError,
    ExtractionError,
    PdfChatError,
)
from pdfchat.logging_setup import configure_logging
from pdfchat.services import Services, build_services

logger = structlog.get_logger()

MAX_MESSAGE_LENGTH = 2000

api = Blueprint("api", __name__, url_prefix="/api")
health = Blueprint("health", __name__, url_prefix="/health")


class ChatRequest(BaseModel):
    message: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)

    @field_validator("message")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Message cannot be empty")
        return value


class RagChatRequest(ChatRequest):
    topK: Optional[int] = None


def _services() -> Services:
    return current_app.extensions["pdfchat"]


def _error_response(error: PdfChatError, summary: str):
    """Map a core error to an HTTP response.

    Upload problems (bad file, no text) are the caller's to fix: 400.
    Downstream service failures are worth retrying later: 502.
    """
    if isinstance(error, (ExtractionError, EmptyContentError)):
        status = 400
    elif error.kind in ("configuration", "internal"):
        status = 500
    else:
        status = 502
    return jsonify({"error": summary, "kind": error.kind, "details": error.message}), status


async def _parse_body(model):
    data = await request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, (jsonify({"error": "Message is required"}), 400)
    try:
        return model(**data), None
    except ValidationError as e:
        details = e.errors(include_url=False, include_context=False)
        logger.warning("invalid_request_body", errors=details)
        return None, (jsonify({"error": "Invalid request", "details": details}), 400)


@api.route("/upload-pdf", methods=["POST"])
async def upload_pdf():
    """Ingest an uploaded PDF (multipart field ``file``).

    Returns JSON:
    {
        "status": "ok",
        "collection": "documents",
        "documentId": "uuid",
        "fileName": "report.pdf",
        "chunkCount": 12
    }
    """
    services = _services()
    files = await request.files
    upload = files.get("file")

    if upload is None:
        logger.warning("upload_without_file")
        return jsonify({"error": "No file uploaded"}), 400

    data = upload.read()
    file_name = upload.filename or "document.pdf"
    logger.info("upload_received", file_name=file_name, size=len(data))

    try:
        result = await services.ingest.ingest_pdf(data, file_name)
    except PdfChatError as e:
        return _error_response(e, "Upload failed")

    return jsonify(
        {
            "status": "ok",
            "collection": services.ingest.collection_name,
            **result.to_dict(),
        }
    )


async def _pdf_response(document_id: str, attachment_name: Optional[str] = None):
    try:
        data = await _services().documents.get_pdf(document_id)
    except PdfChatError as e:
        return _error_response(e, "Failed to retrieve PDF")

    if data is None:
        return jsonify({"error": "PDF not found"}), 404

    disposition = "inline"
    if attachment_name is not None:
        safe_name = attachment_name.replace('"', "").replace("\n", " ")
        disposition = f'attachment; filename="{safe_name}"'

    return Response(
        data,
        mimetype="application/pdf",
        headers={"Content-Disposition": disposition},
    )


@api.route("/pdf/<document_id>", methods=["GET"])
async def view_pdf(document_id: str):
    """Serve the stored PDF for in-browser viewing."""
    return await _pdf_response(document_id)


@api.route("/pdf/<document_id>/download", methods=["GET"])
async def download_pdf(document_id: str):
    """Serve the stored PDF as a download, optionally renamed via ?fileName=."""
    file_name = request.args.get("fileName") or f"{document_id}.pdf"
    return await _pdf_response(document_id, attachment_name=file_name)


@api.route("/chat-rag", methods=["POST"])
async def chat_rag():
    """Answer a question from the ingested documents.

    Expects JSON body:
    {
        "message": "question text",
        "topK": 5  // optional
    }

    Returns JSON:
    {
        "reply": "answer text",
        "sources": [{"documentId": "...", "fileName": "...", ...}, ...]
    }
    """
    body, error = await _parse_body(RagChatRequest)
    if error:
        return error

    try:
        answer = await _services().retriever.answer(body.message, top_k=body.topK)
    except PdfChatError as e:
        logger.error("rag_chat_failed", error=str(e), error_kind=e.kind)
        return _error_response(e, "RAG chat failed")

    return jsonify(answer.to_dict())


@api.route("/chat", methods=["POST"])
async def chat():
    """Plain chat with the language model, no retrieval."""
    body, error = await _parse_body(ChatRequest)
    if error:
        return error

    try:
        reply = await _services().llm.complete(body.message)
    except PdfChatError as e:
        return _error_response(e, "Chat failed")

    return jsonify({"reply": reply})


@api.route("/documents", methods=["GET"])
async def list_documents():
    """List ingested documents with their chunk counts."""
    try:
        documents = await _services().documents.list_documents()
    except PdfChatError as e:
        return _error_response(e, "Failed to fetch documents")

    return jsonify({"documents": [doc.to_dict() for doc in documents]})


@api.route("/documents/<document_id>", methods=["DELETE"])
async def delete_document(document_id: str):
    """Delete one document's chunks and its stored PDF."""
    try:
        outcome = await _services().documents.delete_document(document_id)
    except PdfChatError as e:
        return _error_response(e, "Failed to delete document")

    return jsonify(outcome.to_dict())


@api.route("/documents", methods=["DELETE"])
async def clear_documents():
    """Clear the whole collection and every stored PDF."""
    try:
        outcome = await _services().documents.clear_all()
    except PdfChatError as e:
        return _error_response(e, "Failed to clear documents")

    return jsonify(outcome.to_dict())


@api.route("/maintenance/reconcile", methods=["GET"])
async def reconcile():
    """Report documents present in only one of the two stores."""
    try:
        report = await _services().documents.reconcile()
    except PdfChatError as e:
        return _error_response(e, "Reconciliation failed")

    return jsonify(report.to_dict())


@health.route("/ready")
async def health_ready():
    """Readiness probe - check the language model service and the vector store."""
    services = _services()
    checks = {
        "status": "healthy",
        "ollama": False,
        "models": False,
        "vector_store": False,
    }

    try:
        models = await services.llm.list_models()
        checks["ollama"] = True
        checks["models"] = services.settings.chat_model in models
        if not checks["models"]:
            checks["error"] = f"Missing chat model: {services.settings.chat_model}"
    except httpx.HTTPError as e:
        logger.error("health_check_failed", error=str(e))
        checks["error"] = str(e)

    checks["vector_store"] = await services.vector_store.ping()

    if not (checks["ollama"] and checks["models"] and checks["vector_store"]):
        checks["status"] = "unhealthy"

    status_code = 200 if checks["status"] == "healthy" else 503
    return jsonify(checks), status_code


@health.route("/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> Quart:
    """Build the Quart app.

    Args:
        settings: Configuration (read from the environment when None)
        services: Pre-built services (built from ``settings`` when None)
    """
    if services is not None:
        settings = services.settings
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level, settings.log_json)

    app = Quart(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.extensions["pdfchat"] = services or build_services(settings)

    app.register_blueprint(api)
    app.register_blueprint(health)

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(413)
    async def too_large(error):
        return jsonify({"error": f"File too large (max {settings.max_upload_mb} MB)"}), 413

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error"}), 500

    logger.info("app_created", vector_backend=settings.vector_backend)
    return app


def run() -> None:
    """Serve the app with hypercorn."""
    from hypercorn.asyncio import serve
    from hypercorn.config import Config

    settings = Settings.from_env()
    config = Config()
    config.bind = [f"{settings.host}:{settings.port}"]
    asyncio.run(serve(create_app(settings), config))


if __name__ == "__main__":
    run()
