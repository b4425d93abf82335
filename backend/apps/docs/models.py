"""
Document and Page records for the tutor.

Records live in the key-value store (no relational tables). Both are
immutable once written and expire with the document TTL.
"""
import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def generate_document_id(filename: str, ingested_at: datetime) -> str:
    """Derive a document id from filename and ingestion time (ms precision)."""
    millis = int(ingested_at.timestamp() * 1000)
    return hashlib.md5(f"{filename}{millis}".encode('utf-8')).hexdigest()


@dataclass(frozen=True)
class Document:
    """
    An ingested document.
    
    Fallback documents (extraction failed) always have a single diagnostic
    page and a shorter TTL.
    """
    id: str
    filename: str
    total_pages: int
    uploaded_at: datetime
    owner_user_id: Optional[str] = None
    is_fallback: bool = False
    
    def __post_init__(self):
        if self.total_pages < 1:
            raise ValueError(f"total_pages must be >= 1, got {self.total_pages}")
    
    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "filename": self.filename,
            "totalPages": self.total_pages,
            "uploadedAt": self.uploaded_at.isoformat(),
            "ownerUserId": self.owner_user_id,
            "isFallback": self.is_fallback,
        }
    
    @classmethod
    def from_dict(cls, data: dict) -> 'Document':
        return cls(
            id=data["id"],
            filename=data["filename"],
            total_pages=int(data["totalPages"]),
            uploaded_at=datetime.fromisoformat(data["uploadedAt"]),
            owner_user_id=data.get("ownerUserId"),
            is_fallback=bool(data.get("isFallback", False)),
        )


@dataclass(frozen=True)
class Page:
    """One page of a document (1-indexed)."""
    document_id: str
    page_number: int
    text: str
    
    def to_dict(self) -> dict:
        return {
            "documentId": self.document_id,
            "pageNumber": self.page_number,
            "text": self.text,
        }
    
    @classmethod
    def from_dict(cls, data: dict) -> 'Page':
        return cls(
            document_id=data["documentId"],
            page_number=int(data["pageNumber"]),
            text=data["text"],
        )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
