"""
Page navigation over the user's active document.

Every operation returns a NavigationResult whose text is either the page
content prefixed with a position marker, or a descriptive message when the
request can't be honoured (no active document, out-of-range page, already
at the first/last page). Rejected requests never change session state.

Marker format: [PDF: <filename> - Page <n> of <total>]
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from apps.docs.models import Document
from apps.docs.repository import DocumentRepository
from apps.tutor.intent import IntentKind, NavigationIntent
from apps.tutor.session import SessionState, SessionStateManager

logger = logging.getLogger(__name__)

NO_ACTIVE_DOCUMENT = "No document is currently active. Please upload a document first."
DOCUMENT_NOT_FOUND = "The active document could not be found. It may have expired or been removed."

MARKER_PATTERN = re.compile(r'\[PDF: (.+?) - Page (\d+) of (\d+)\]')


def format_marker(filename: str, page_number: int, total_pages: int) -> str:
    return f"[PDF: {filename} - Page {page_number} of {total_pages}]"


@dataclass(frozen=True)
class NavigationMarker:
    """Position parsed back out of a response."""
    name: str
    current_page: int
    total_pages: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "currentPage": self.current_page,
            "totalPages": self.total_pages,
        }


def parse_navigation_marker(text: str) -> Optional[NavigationMarker]:
    """Return the last position marker in text, if any."""
    matches = MARKER_PATTERN.findall(text or "")
    if not matches:
        return None
    name, page, total = matches[-1]
    return NavigationMarker(name=name, current_page=int(page), total_pages=int(total))


@dataclass
class NavigationResult:
    """
    Outcome of a navigation operation.

    page_included is True when text carries page content (and its marker).
    """
    text: str
    page_included: bool = False
    document: Optional[Document] = None
    page_number: Optional[int] = None

    @property
    def marker(self) -> Optional[str]:
        if not self.page_included or self.document is None:
            return None
        return format_marker(self.document.filename, self.page_number, self.document.total_pages)


class PageNavigator:
    """Navigation commands backed by session state and stored pages."""

    def __init__(
        self,
        sessions: Optional[SessionStateManager] = None,
        repository: Optional[DocumentRepository] = None,
    ):
        self.sessions = sessions or SessionStateManager()
        self.repository = repository or DocumentRepository(self.sessions.store)

    def _active_document(self, state: SessionState):
        """Return (document, error_result) for the state's active document."""
        if not state.has_active_document:
            return None, NavigationResult(text=NO_ACTIVE_DOCUMENT)

        document = self.repository.get_document(state.active_document_id)
        if document is None:
            logger.warning(f"Active document {state.active_document_id} is missing from the store")
            return None, NavigationResult(text=DOCUMENT_NOT_FOUND)

        return document, None

    def _page_result(self, document: Document, page_number: int) -> Optional[NavigationResult]:
        page = self.repository.get_page(document.id, page_number)
        if page is None:
            return None
        text = f"{format_marker(document.filename, page_number, document.total_pages)}\n\n{page.text}"
        return NavigationResult(
            text=text,
            page_included=True,
            document=document,
            page_number=page_number,
        )

    def _move_to(self, user_id: str, choose_target) -> NavigationResult:
        """
        Move to the page picked by choose_target(document, current_page).

        choose_target returns (target_page, None) or (None, rejection_text).
        The page is loaded before the session is written, all under the
        user's session lock.
        """
        outcome = {}

        def mutate(state: SessionState) -> Optional[SessionState]:
            document, error = self._active_document(state)
            if error is not None:
                outcome['result'] = error
                return None

            current_page = state.current_page or 1
            target, rejection = choose_target(document, current_page)
            if rejection is not None:
                outcome['result'] = NavigationResult(text=rejection, document=document)
                return None

            result = self._page_result(document, target)
            if result is None:
                outcome['result'] = NavigationResult(
                    text=f'Failed to load page {target} of "{document.filename}".',
                    document=document,
                )
                return None

            outcome['result'] = result
            return SessionState(active_document_id=document.id, current_page=target)

        self.sessions.update(user_id, mutate)
        return outcome['result']

    def current_page(self, user_id: str) -> NavigationResult:
        """Content of the user's current page."""
        state = self.sessions.get_state(user_id)
        document, error = self._active_document(state)
        if error is not None:
            return error

        page_number = min(state.current_page or 1, document.total_pages)
        result = self._page_result(document, page_number)
        if result is None:
            return NavigationResult(
                text=f'Page {page_number} could not be found in "{document.filename}".',
                document=document,
            )
        return result

    def next_page(self, user_id: str) -> NavigationResult:
        def choose(document: Document, current: int):
            if current >= document.total_pages:
                return None, (
                    f"Already at the last page ({current} of {document.total_pages}) "
                    f'of "{document.filename}".'
                )
            return current + 1, None

        return self._move_to(user_id, choose)

    def previous_page(self, user_id: str) -> NavigationResult:
        def choose(document: Document, current: int):
            if current <= 1:
                return None, f'Already at the first page of "{document.filename}".'
            return current - 1, None

        return self._move_to(user_id, choose)

    def go_to_page(self, user_id: str, page_number: int) -> NavigationResult:
        def choose(document: Document, current: int):
            if page_number < 1 or page_number > document.total_pages:
                return None, (
                    f'Invalid page number. "{document.filename}" has '
                    f"{document.total_pages} pages."
                )
            return page_number, None

        return self._move_to(user_id, choose)

    def apply(self, user_id: str, intent: NavigationIntent) -> NavigationResult:
        """Execute a classified navigation intent."""
        if intent.kind == IntentKind.NEXT_PAGE:
            return self.next_page(user_id)
        if intent.kind == IntentKind.PREVIOUS_PAGE:
            return self.previous_page(user_id)
        if intent.kind == IntentKind.GO_TO_PAGE:
            return self.go_to_page(user_id, intent.page)
        return self.current_page(user_id)

    def document_info(self, user_id: str) -> str:
        """Human-readable summary of the active document."""
        state = self.sessions.get_state(user_id)
        document, error = self._active_document(state)
        if error is not None:
            return error.text

        uploaded = document.uploaded_at.strftime("%Y-%m-%d %H:%M UTC")
        return (
            "Document Information:\n"
            f"- Filename: {document.filename}\n"
            f"- Total Pages: {document.total_pages}\n"
            f"- Current Page: {state.current_page}\n"
            f"- Uploaded: {uploaded}"
        )
