"""
Text extraction from uploaded documents.

Supports:
- .pdf: Text per page using PyMuPDF, pages joined with form feeds
- .txt: UTF-8 text (with fallback for encoding errors)
- .md: UTF-8 markdown, kept as-is

Returns the full text plus the declared page count. Any failure is raised
as ExtractionError; callers decide how to degrade.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\f"


class ExtractionError(Exception):
    """Raised when text extraction fails."""
    pass


@dataclass
class ExtractedText:
    """Full text of a document and its declared page count."""
    text: str
    page_count: int


def decode_text(data: bytes, filename: str) -> str:
    """Decode UTF-8 bytes; undecodable sequences become U+FFFD."""
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        logger.warning(f"UTF-8 decode failed for {filename}, using errors='replace'")
        return data.decode('utf-8', errors='replace')


def extract_text_from_plain(data: bytes, filename: str) -> ExtractedText:
    """
    Extract text from a plain text or markdown upload.

    Form feeds are treated as explicit page breaks; without any the
    document is a single page.
    """
    text = decode_text(data, filename)
    return ExtractedText(text=text, page_count=text.count(PAGE_SEPARATOR) + 1)


def extract_text_from_pdf(data: bytes, filename: str) -> ExtractedText:
    """
    Extract text from a PDF using PyMuPDF.

    This is best-effort: scanned or image-based pages yield empty text
    (no OCR). Encrypted PDFs are rejected.

    Raises:
        ExtractionError: If the PDF cannot be opened or read
    """
    try:
        import fitz  # PyMuPDF
    except ImportError:
        raise ExtractionError("PyMuPDF (fitz) not installed")

    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            if doc.needs_pass:
                raise ExtractionError(f"PDF is encrypted: {filename}")

            page_count = doc.page_count
            if page_count < 1:
                raise ExtractionError(f"PDF has no pages: {filename}")

            text = PAGE_SEPARATOR.join(page.get_text() for page in doc)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from PDF: {e}")

    if not text.replace(PAGE_SEPARATOR, "").strip():
        logger.warning(f"No text extracted from PDF {filename} (may be image-based)")

    return ExtractedText(text=text, page_count=page_count)


def extract_text(data: bytes, filename: str, content_type: Optional[str] = None) -> ExtractedText:
    """
    Extract text from an uploaded document.

    Determines the extraction method based on file extension or content type.

    Args:
        data: Raw file bytes
        filename: Original filename
        content_type: Optional MIME type hint

    Returns:
        ExtractedText with full text and page count

    Raises:
        ExtractionError: If extraction fails or format not supported
    """
    suffix = Path(filename).suffix.lower()

    logger.info(f"Extracting text from {filename} (suffix={suffix}, content_type={content_type})")

    if not data:
        raise ExtractionError(f"Empty upload: {filename}")

    if suffix == '.pdf' or content_type == 'application/pdf':
        return extract_text_from_pdf(data, filename)

    elif suffix in ('.txt', '.md', '.markdown') or content_type in (
        'text/plain', 'text/markdown', 'text/x-markdown'
    ):
        return extract_text_from_plain(data, filename)

    else:
        raise ExtractionError(f"Unsupported file format: {suffix or content_type}")
