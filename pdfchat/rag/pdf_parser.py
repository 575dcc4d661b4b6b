"""PDF text extraction with a single repair pass.

Handles:
- Input validation (byte content carrying a PDF header)
- Page-by-page text extraction with PyMuPDF
- One permissive repair attempt for damaged or empty-password-encrypted files
"""
from typing import Union

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

from pdfchat.errors import ExtractionError

logger = structlog.get_logger()

PDF_MAGIC = b"%PDF-"
PDF_EOF = b"%%EOF"

# How far into the file a permissive reader looks for the header
HEADER_SEARCH_WINDOW = 1024

BytesLike = Union[bytes, bytearray, memoryview]


class PdfTextExtractor:
    """Extracts plain text from PDF bytes."""

    def extract_text(self, data: BytesLike) -> str:
        """Extract the text of every page, pages separated by a blank line.

        A strict parse is tried first. If it fails, the bytes are repaired
        once (leading garbage and trailing data stripped, empty-password
        encryption removed, cross-reference table rebuilt) and parsed again.

        Args:
            data: Raw uploaded file content

        Returns:
            Extracted text (may be empty for image-only documents)

        Raises:
            ExtractionError: If the content is not a PDF or cannot be parsed
        """
        if isinstance(data, str) or not isinstance(data, (bytes, bytearray, memoryview)):
            raise ExtractionError(
                f"Expected byte content, got {type(data).__name__}"
            )

        data = bytes(data)
        if PDF_MAGIC not in data[:HEADER_SEARCH_WINDOW]:
            raise ExtractionError("Uploaded file is not a PDF document")

        try:
            return self._parse(data)
        except (RuntimeError, ValueError) as e:
            logger.warning("pdf_parse_failed_attempting_repair", error=str(e))

        try:
            repaired = self._repair(data)
            text = self._parse(repaired)
        except (RuntimeError, ValueError) as e:
            logger.error("pdf_repair_failed", error=str(e))
            raise ExtractionError(
                f"Unable to parse PDF: {e}. The PDF may be severely corrupted "
                "or password-protected."
            ) from e

        logger.info("pdf_repaired_and_parsed", text_length=len(text))
        return text

    @staticmethod
    def _parse(data: bytes) -> str:
        """Strict parse: the header must lead the file and no password is allowed."""
        if not data.startswith(PDF_MAGIC):
            raise ValueError("PDF header is not at the start of the file")

        doc = fitz.open(stream=data, filetype="pdf")
        try:
            if doc.needs_pass:
                raise ValueError("document is encrypted")

            pages = [page.get_text("text") for page in doc]
        finally:
            doc.close()

        logger.debug("pdf_parsed", pages=len(pages))
        return "\n\n".join(pages)

    @staticmethod
    def _repair(data: bytes) -> bytes:
        """Rewrite the document into a clean, unencrypted PDF."""
        start = data.find(PDF_MAGIC)
        data = data[start:]
        end = data.rfind(PDF_EOF)
        if end != -1:
            data = data[: end + len(PDF_EOF)]

        doc = fitz.open(stream=data, filetype="pdf")
        try:
            if doc.needs_pass and not doc.authenticate(""):
                raise ValueError("document is password-protected")
            return doc.tobytes(
                garbage=3,
                clean=True,
                encryption=fitz.PDF_ENCRYPT_NONE,
            )
        finally:
            doc.close()
