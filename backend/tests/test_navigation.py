"""
Tests for page navigation over the active document.
"""
import pytest
from datetime import datetime, timezone

from apps.docs.models import Document
from apps.docs.repository import DocumentRepository
from apps.store import keys
from apps.tutor.intent import NavigationIntent
from apps.tutor.navigation import (
    DOCUMENT_NOT_FOUND,
    NO_ACTIVE_DOCUMENT,
    PageNavigator,
    format_marker,
    parse_navigation_marker,
)
from apps.tutor.session import SessionState, SessionStateManager


@pytest.fixture
def navigator(store):
    """Navigator over a 5-page 'lecture.pdf' that is active for user u1."""
    repository = DocumentRepository(store)
    document = Document(
        id="doc1",
        filename="lecture.pdf",
        total_pages=5,
        uploaded_at=datetime(2024, 5, 1, 14, 5, tzinfo=timezone.utc),
        owner_user_id="u1",
    )
    repository.save(document, [f"Content {n}" for n in range(1, 6)], ttl_seconds=600)

    sessions = SessionStateManager(store)
    sessions.set_active_document("u1", "doc1")
    return PageNavigator(sessions=sessions, repository=repository)


def current_page_of(navigator, user_id="u1"):
    return navigator.sessions.get_state(user_id).current_page


# ============================================================================
# Marker Tests
# ============================================================================

class TestMarkers:
    """Tests for formatting and parsing position markers."""

    def test_format(self):
        assert format_marker("a.pdf", 2, 9) == "[PDF: a.pdf - Page 2 of 9]"

    def test_parse_returns_last_marker(self):
        text = "[PDF: a.pdf - Page 1 of 3]\n\nbody\n\n[PDF: a.pdf - Page 2 of 3]"
        marker = parse_navigation_marker(text)
        assert marker.to_dict() == {"name": "a.pdf", "currentPage": 2, "totalPages": 3}

    def test_parse_filename_with_spaces(self):
        marker = parse_navigation_marker("[PDF: My Notes v2.pdf - Page 4 of 10]")
        assert marker.name == "My Notes v2.pdf"

    def test_parse_without_marker(self):
        assert parse_navigation_marker("no marker here") is None
        assert parse_navigation_marker(None) is None


# ============================================================================
# Navigation Tests
# ============================================================================

class TestPageNavigator:
    """Tests for next/previous/go-to/current."""

    def test_current_page_prefixed_with_marker(self, navigator):
        result = navigator.current_page("u1")

        assert result.page_included is True
        assert result.text == "[PDF: lecture.pdf - Page 1 of 5]\n\nContent 1"
        assert result.marker == "[PDF: lecture.pdf - Page 1 of 5]"

    def test_next_page_advances(self, navigator):
        result = navigator.next_page("u1")

        assert result.page_number == 2
        assert result.text.endswith("Content 2")
        assert current_page_of(navigator) == 2

    def test_next_page_at_last_page_rejected(self, navigator):
        navigator.go_to_page("u1", 5)

        result = navigator.next_page("u1")

        assert result.page_included is False
        assert result.text == 'Already at the last page (5 of 5) of "lecture.pdf".'
        assert current_page_of(navigator) == 5

    def test_previous_page(self, navigator):
        navigator.go_to_page("u1", 3)

        result = navigator.previous_page("u1")

        assert result.page_number == 2
        assert current_page_of(navigator) == 2

    def test_previous_page_at_first_page_rejected(self, navigator):
        result = navigator.previous_page("u1")

        assert result.text == 'Already at the first page of "lecture.pdf".'
        assert current_page_of(navigator) == 1

    @pytest.mark.parametrize("page", [0, 6, -1])
    def test_go_to_out_of_range_rejected(self, navigator, page):
        """Out-of-range requests leave the position unchanged."""
        navigator.go_to_page("u1", 2)

        result = navigator.go_to_page("u1", page)

        assert result.text == 'Invalid page number. "lecture.pdf" has 5 pages.'
        assert current_page_of(navigator) == 2

    def test_missing_page_record_leaves_state(self, navigator, store):
        store.delete(keys.page_key("doc1", 3))

        result = navigator.go_to_page("u1", 3)

        assert result.text == 'Failed to load page 3 of "lecture.pdf".'
        assert current_page_of(navigator) == 1

    def test_no_active_document(self, navigator):
        result = navigator.next_page("u2")

        assert result.text == NO_ACTIVE_DOCUMENT
        assert navigator.sessions.get_state("u2") == SessionState()

    def test_expired_document(self, navigator, store):
        store.delete(keys.document_key("doc1"))

        assert navigator.current_page("u1").text == DOCUMENT_NOT_FOUND
        assert navigator.next_page("u1").text == DOCUMENT_NOT_FOUND

    def test_current_page_clamped_to_total(self, navigator, store):
        """A stale position past the end shows the last page."""
        store.set(keys.session_key("u1"), {"activeDocumentId": "doc1", "currentPage": 9}, 600)

        result = navigator.current_page("u1")

        assert result.page_number == 5

    def test_apply_dispatches_intents(self, navigator):
        assert navigator.apply("u1", NavigationIntent.next_page()).page_number == 2
        assert navigator.apply("u1", NavigationIntent.go_to_page(4)).page_number == 4
        assert navigator.apply("u1", NavigationIntent.previous_page()).page_number == 3
        assert navigator.apply("u1", NavigationIntent.none()).page_number == 3

    def test_document_info(self, navigator):
        navigator.go_to_page("u1", 2)

        assert navigator.document_info("u1") == (
            "Document Information:\n"
            "- Filename: lecture.pdf\n"
            "- Total Pages: 5\n"
            "- Current Page: 2\n"
            "- Uploaded: 2024-05-01 14:05 UTC"
        )

    def test_document_info_without_document(self, navigator):
        assert navigator.document_info("u2") == NO_ACTIVE_DOCUMENT
