"""
Tests for document text extraction.
"""
import pytest

import fitz  # PyMuPDF

from apps.docs.extractor import (
    ExtractionError,
    PAGE_SEPARATOR,
    decode_text,
    extract_text,
)


def make_pdf(page_texts, **save_options) -> bytes:
    """Build an in-memory PDF with one text line per page."""
    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    data = doc.tobytes(**save_options)
    doc.close()
    return data


# ============================================================================
# Plain Text Tests
# ============================================================================

class TestPlainText:
    """Tests for .txt and .md uploads."""

    def test_single_page_without_form_feeds(self):
        result = extract_text(b"hello world", "notes.txt")
        assert result.text == "hello world"
        assert result.page_count == 1

    def test_form_feeds_declare_pages(self):
        """Each form feed declares one more page."""
        result = extract_text(b"a\fb\fc", "notes.md")
        assert result.page_count == 3

    def test_content_type_used_without_extension(self):
        result = extract_text(b"text", "upload", content_type="text/plain")
        assert result.text == "text"

    def test_invalid_utf8_replaced(self):
        """Undecodable bytes become replacement characters rather than failing."""
        assert decode_text(b"caf\xff\xfee", "x.txt") == "caf\ufffd\ufffde"


# ============================================================================
# PDF Tests
# ============================================================================

class TestPdf:
    """Tests for PDF extraction with PyMuPDF."""

    def test_pages_joined_with_form_feed(self):
        """Page texts are joined with form feeds and the page count is kept."""
        data = make_pdf(["First page", "Second page", "Third page"])

        result = extract_text(data, "slides.pdf")

        assert result.page_count == 3
        parts = result.text.split(PAGE_SEPARATOR)
        assert len(parts) == 3
        assert "First page" in parts[0]
        assert "Third page" in parts[2]

    def test_image_only_pages_still_counted(self):
        """Blank pages produce empty text but keep the declared count."""
        data = make_pdf(["", ""])

        result = extract_text(data, "scan.pdf")

        assert result.page_count == 2
        assert result.text.replace(PAGE_SEPARATOR, "").strip() == ""

    def test_encrypted_pdf_rejected(self):
        data = make_pdf(
            ["secret"],
            encryption=fitz.PDF_ENCRYPT_AES_256,
            owner_pw="owner",
            user_pw="user",
        )

        with pytest.raises(ExtractionError, match="encrypted"):
            extract_text(data, "locked.pdf")

    def test_corrupt_pdf_rejected(self):
        with pytest.raises(ExtractionError):
            extract_text(b"%PDF-1.4 this is not really a pdf", "broken.pdf")


# ============================================================================
# Error Tests
# ============================================================================

class TestErrors:
    """Tests for rejected uploads."""

    def test_empty_upload(self):
        with pytest.raises(ExtractionError, match="Empty upload"):
            extract_text(b"", "empty.txt")

    def test_unsupported_format(self):
        with pytest.raises(ExtractionError, match="Unsupported"):
            extract_text(b"PK\x03\x04", "slides.pptx")
