"""
Document and page persistence.

Documents live at document:{id} and pages at page:{id}:{n}. A document and
all of its pages are written in one transactional batch with the same TTL.
"""
import logging
from typing import List, Optional

from apps.docs.models import Document, Page
from apps.store import keys
from apps.store.client import KeyValueStore, get_store

logger = logging.getLogger(__name__)


class DocumentRepository:
    """Reads and writes Document/Page records in the key-value store."""

    def __init__(self, store: Optional[KeyValueStore] = None):
        self.store = store or get_store()

    def save(self, document: Document, page_texts: List[str], ttl_seconds: int) -> None:
        """
        Store a document together with exactly total_pages pages.

        Raises:
            ValueError: If the page count does not match the document
            StoreError: If the store is unavailable
        """
        if len(page_texts) != document.total_pages:
            raise ValueError(
                f"Document {document.id} declares {document.total_pages} pages, "
                f"got {len(page_texts)}"
            )

        items = {
            keys.page_key(document.id, page_number): Page(
                document_id=document.id,
                page_number=page_number,
                text=text,
            ).to_dict()
            for page_number, text in enumerate(page_texts, start=1)
        }
        items[keys.document_key(document.id)] = document.to_dict()

        self.store.set_many(items, ttl_seconds)
        logger.info(
            f"Stored document {document.id} ({document.filename}) with "
            f"{document.total_pages} pages, ttl={ttl_seconds}s"
        )

    def get_document(self, document_id: str) -> Optional[Document]:
        data = self.store.get(keys.document_key(document_id))
        if data is None:
            return None
        return Document.from_dict(data)

    def get_page(self, document_id: str, page_number: int) -> Optional[Page]:
        data = self.store.get(keys.page_key(document_id, page_number))
        if data is None:
            return None
        return Page.from_dict(data)

    def list_for_user(self, user_id: str) -> List[Document]:
        """List live documents owned by user_id, newest first."""
        documents = []
        for key in self.store.keys_by_prefix(keys.document_prefix()):
            data = self.store.get(key)
            if data is None:
                continue  # Expired between listing and reading
            document = Document.from_dict(data)
            if document.owner_user_id == user_id:
                documents.append(document)

        documents.sort(key=lambda d: d.uploaded_at, reverse=True)
        return documents

    def delete(self, document_id: str) -> bool:
        """
        Delete a document and all its pages.

        Returns:
            True if deleted, False if the document didn't exist
        """
        document = self.get_document(document_id)
        if document is None:
            return False

        page_keys = [
            keys.page_key(document_id, page_number)
            for page_number in range(1, document.total_pages + 1)
        ]
        self.store.delete(*page_keys, keys.document_key(document_id))
        logger.info(f"Deleted document {document_id} and {len(page_keys)} pages")
        return True
