"""
Document ingestion: extract -> paginate -> store.

Ingestion never hard-fails on bad input. When extraction fails
(unsupported, encrypted, corrupt) a single-page fallback document with a
diagnostic message is stored instead, with a shorter TTL. Store failures
still propagate as StoreError.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from apps.authn.audit import audit_document_ingested, audit_document_fallback
from apps.docs.extractor import extract_text, ExtractedText, ExtractionError
from apps.docs.models import Document, generate_document_id, utcnow
from apps.docs.paginator import paginate
from apps.docs.repository import DocumentRepository
from apps.store import keys

logger = logging.getLogger(__name__)


def fallback_page_text(filename: str) -> str:
    """Diagnostic text stored as the only page of a fallback document."""
    return (
        "This document could not be processed properly. It might be encrypted, "
        f"damaged, or in an unsupported format. Filename: {filename}"
    )


@dataclass
class IngestionResult:
    """Outcome of ingesting one upload."""
    document: Document
    fallback: bool = False
    error: Optional[str] = None


def ingest_document(
    data: bytes,
    filename: str,
    owner_user_id: Optional[str] = None,
    content_type: Optional[str] = None,
    repository: Optional[DocumentRepository] = None,
    extractor: Callable[..., ExtractedText] = extract_text,
    clock: Callable[[], datetime] = utcnow,
) -> IngestionResult:
    """
    Ingest an uploaded document and store its pages.

    Args:
        data: Raw file bytes
        filename: Original filename
        owner_user_id: User who uploaded the document
        content_type: Optional MIME type hint
        repository: Document repository (defaults to the configured store)
        extractor: Text extractor returning ExtractedText
        clock: Source of the ingestion timestamp

    Returns:
        IngestionResult with the stored document

    Raises:
        StoreError: If the store is unavailable
    """
    repository = repository or DocumentRepository()
    ingested_at = clock()
    document_id = generate_document_id(filename, ingested_at)

    logger.info(f"Ingesting {filename} ({len(data)} bytes) as {document_id}")

    try:
        extracted = extractor(data, filename, content_type)
        page_texts = paginate(extracted.text, extracted.page_count, filename)
    except ExtractionError as e:
        logger.warning(f"Extraction failed for {filename}, storing fallback document: {e}")
        return _store_fallback(repository, document_id, filename, owner_user_id, ingested_at, str(e))
    except Exception as e:
        logger.exception(f"Unexpected error while paginating {filename}")
        return _store_fallback(repository, document_id, filename, owner_user_id, ingested_at, str(e))

    document = Document(
        id=document_id,
        filename=filename,
        total_pages=len(page_texts),
        uploaded_at=ingested_at,
        owner_user_id=owner_user_id,
    )
    repository.save(
        document,
        page_texts,
        keys.get_ttl('DOCUMENT_TTL_SECONDS', keys.DOCUMENT_TTL),
    )

    audit_document_ingested(owner_user_id, document.id, document.total_pages)
    return IngestionResult(document=document)


def _store_fallback(
    repository: DocumentRepository,
    document_id: str,
    filename: str,
    owner_user_id: Optional[str],
    ingested_at: datetime,
    error: str,
) -> IngestionResult:
    document = Document(
        id=document_id,
        filename=filename,
        total_pages=1,
        uploaded_at=ingested_at,
        owner_user_id=owner_user_id,
        is_fallback=True,
    )
    repository.save(
        document,
        [fallback_page_text(filename)],
        keys.get_ttl('FALLBACK_DOCUMENT_TTL_SECONDS', keys.FALLBACK_DOCUMENT_TTL),
    )

    audit_document_fallback(owner_user_id, document.id, error)
    return IngestionResult(document=document, fallback=True, error=error)
