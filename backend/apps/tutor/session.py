"""
Per-user session state.

State is {activeDocumentId, currentPage}: both null, or a document with
a page in [1, totalPages]. The upper bound is checked against the stored
document; a document that has expired or was never stored only gets the
lower bound. Every write stores the whole state and refreshes the 24h TTL.
Read-modify-write runs under a per-user store lock so concurrent turns for
the same user cannot lose each other's updates.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from apps.docs.repository import DocumentRepository
from apps.store import keys
from apps.store.client import KeyValueStore, get_store

logger = logging.getLogger(__name__)

_UNSET = object()


class SessionStateError(Exception):
    """Raised when an update would break the session invariants."""
    pass


@dataclass
class SessionState:
    """Navigation position of one user."""
    active_document_id: Optional[str] = None
    current_page: Optional[int] = None

    @property
    def has_active_document(self) -> bool:
        return self.active_document_id is not None

    def to_dict(self) -> dict:
        return {
            "activeDocumentId": self.active_document_id,
            "currentPage": self.current_page,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SessionState':
        page = data.get("currentPage")
        return cls(
            active_document_id=data.get("activeDocumentId"),
            current_page=int(page) if page is not None else None,
        )


def validate_state(state: SessionState, total_pages: Optional[int] = None) -> None:
    """
    Check the session invariants.

    Raises:
        SessionStateError: If current_page is set without a document (or vice
            versa), or the page is below 1 or past total_pages
    """
    if (state.active_document_id is None) != (state.current_page is None):
        raise SessionStateError(
            "currentPage must be set exactly when a document is active"
        )
    if state.current_page is not None and state.current_page < 1:
        raise SessionStateError(f"Invalid page number: {state.current_page}")
    if state.current_page is not None and total_pages is not None and state.current_page > total_pages:
        raise SessionStateError(
            f"Invalid page number: {state.current_page}. The document has {total_pages} pages"
        )


class SessionStateManager:
    """Reads and writes session state in the key-value store."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl_seconds: Optional[int] = None,
        repository: Optional[DocumentRepository] = None,
    ):
        self.store = store or get_store()
        self.repository = repository or DocumentRepository(self.store)
        self.ttl_seconds = ttl_seconds or keys.get_ttl('SESSION_TTL_SECONDS', keys.SESSION_TTL)

    def _read(self, user_id: str) -> SessionState:
        data = self.store.get(keys.session_key(user_id))
        if data is None:
            return SessionState()
        return SessionState.from_dict(data)

    def _total_pages(self, state: SessionState) -> Optional[int]:
        if not state.has_active_document:
            return None
        document = self.repository.get_document(state.active_document_id)
        return document.total_pages if document is not None else None

    def _write(self, user_id: str, state: SessionState) -> SessionState:
        validate_state(state, self._total_pages(state))
        self.store.set(keys.session_key(user_id), state.to_dict(), self.ttl_seconds)
        return state

    def _locked(self, user_id: str):
        return self.store.lock(keys.session_lock_key(user_id))

    def set_active_document(self, user_id: str, document_id: str) -> SessionState:
        """Make document_id active; position always resets to page 1."""
        with self._locked(user_id):
            state = self._write(user_id, SessionState(active_document_id=document_id, current_page=1))
        logger.info(f"User {user_id} active document set to {document_id}")
        return state

    def get_state(self, user_id: str, active_document_id=_UNSET, current_page=_UNSET) -> SessionState:
        """
        Return the user's state, optionally updating fields first.

        Args:
            user_id: The user ID
            active_document_id: New document id (None clears the session).
                Switching to a different document resets the page to 1 unless
                current_page is also given.
            current_page: New page number

        Returns:
            The (possibly updated) state
        """
        if active_document_id is _UNSET and current_page is _UNSET:
            return self._read(user_id)

        with self._locked(user_id):
            state = self._read(user_id)

            if active_document_id is not _UNSET:
                if active_document_id is None:
                    state = SessionState()
                elif active_document_id != state.active_document_id:
                    state = SessionState(active_document_id=active_document_id, current_page=1)

            if current_page is not _UNSET:
                state.current_page = current_page

            return self._write(user_id, state)

    def update(self, user_id: str, mutate: Callable[[SessionState], Optional[SessionState]]) -> SessionState:
        """
        Atomically read, mutate and write the user's state.

        mutate receives the current state and returns the new state, or
        None to leave the stored state untouched.
        """
        with self._locked(user_id):
            state = self._read(user_id)
            new_state = mutate(state)
            if new_state is None:
                return state
            return self._write(user_id, new_state)

    def set_current_page(self, user_id: str, page_number: int) -> SessionState:
        """
        Move the user to page_number of the active document.

        Raises:
            SessionStateError: If no document is active or the page is outside
                the document
        """
        with self._locked(user_id):
            state = self._read(user_id)
            if not state.has_active_document:
                raise SessionStateError("No document is active")
            state.current_page = page_number
            return self._write(user_id, state)

    def clear(self, user_id: str) -> SessionState:
        """Drop the active document, keeping an empty session."""
        with self._locked(user_id):
            return self._write(user_id, SessionState())

    def delete(self, user_id: str) -> None:
        """Remove the session record entirely."""
        self.store.delete(keys.session_key(user_id))
