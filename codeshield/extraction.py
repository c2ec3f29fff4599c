"""
Text extraction for uploaded knowledge documents.

Supports Markdown and plain text (UTF-8) and PDF (PyMuPDF).
"""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF

from .errors import EmptyContent, UnsupportedFileType
from .utils import setup_logging

logger = setup_logging()

TEXT_MIME_TYPES = {"text/markdown", "text/x-markdown", "text/plain"}
PDF_MIME_TYPES = {"application/pdf"}

TEXT_EXTENSIONS = {".md", ".markdown", ".txt"}
PDF_EXTENSIONS = {".pdf"}


class TextExtractor:
    """Turns uploaded file bytes into plain text."""

    def extract(self, file_bytes: bytes, mime_type: str | None, filename: str | None = None) -> str:
        """
        Extract text from an uploaded file.

        The MIME type decides first; the filename extension is used when the
        client sent a generic type such as application/octet-stream.

        Args:
            file_bytes: Raw upload
            mime_type: Content type reported by the client
            filename: Original filename

        Returns:
            Extracted text

        Raises:
            UnsupportedFileType: For anything but Markdown, text or PDF
            EmptyContent: If no text could be extracted
        """
        kind = self._detect_kind(mime_type, filename)

        if kind == "pdf":
            text = self._extract_pdf(file_bytes)
        elif kind == "text":
            text = file_bytes.decode("utf-8", errors="replace")
        else:
            raise UnsupportedFileType(
                f"Unsupported file type {mime_type or 'unknown'}"
                f"{f' ({filename})' if filename else ''}. Upload Markdown, text or PDF."
            )

        if not text.strip():
            raise EmptyContent(f"No text content found in {filename or 'upload'}")

        logger.info(f"Extracted {len(text)} characters from {filename or 'upload'} ({kind})")
        return text

    @staticmethod
    def _detect_kind(mime_type: str | None, filename: str | None) -> str | None:
        mime = (mime_type or "").split(";")[0].strip().lower()
        if mime in PDF_MIME_TYPES:
            return "pdf"
        if mime in TEXT_MIME_TYPES:
            return "text"

        suffix = Path(filename).suffix.lower() if filename else ""
        if suffix in PDF_EXTENSIONS:
            return "pdf"
        if suffix in TEXT_EXTENSIONS:
            return "text"
        return None

    @staticmethod
    def _extract_pdf(file_bytes: bytes) -> str:
        try:
            doc = fitz.open(stream=file_bytes, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise UnsupportedFileType(f"Could not read PDF: {e}") from e

        with doc:
            pages = [page.get_text() for page in doc]
        return "\n\n".join(text for text in pages if text.strip())
