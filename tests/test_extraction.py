"""Tests for uploaded document text extraction."""

import fitz
import pytest

from codeshield.errors import EmptyContent, UnsupportedFileType
from codeshield.extraction import TextExtractor


def make_pdf(text: str) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


class TestTextExtractor:
    def test_markdown_is_decoded(self):
        text = TextExtractor().extract("# Hashing\nUse argon2id.".encode("utf-8"), "text/markdown", "h.md")
        assert text == "# Hashing\nUse argon2id."

    def test_extension_used_for_generic_mime_type(self):
        text = TextExtractor().extract(b"Rotate keys.", "application/octet-stream", "notes.txt")
        assert text == "Rotate keys."

    def test_pdf_text(self):
        text = TextExtractor().extract(make_pdf("Use TLS everywhere."), "application/pdf", "tls.pdf")
        assert "Use TLS everywhere." in text

    def test_unsupported_type(self):
        with pytest.raises(UnsupportedFileType):
            TextExtractor().extract(b"\x89PNG", "image/png", "diagram.png")

    def test_blank_document(self):
        with pytest.raises(EmptyContent):
            TextExtractor().extract(b"   \n", "text/plain", "blank.txt")
