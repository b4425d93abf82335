"""
Tests for per-user session state.
"""
import pytest
from unittest.mock import patch

from apps.docs.ingest import ingest_document
from apps.docs.repository import DocumentRepository
from apps.store import keys
from apps.store.client import StoreError
from apps.tutor.session import (
    SessionState,
    SessionStateError,
    SessionStateManager,
    validate_state,
)


def three_page_document(store):
    data = "\f".join(f"Page {n} text" for n in range(1, 4)).encode()
    return ingest_document(data, "notes.txt", owner_user_id="u1",
                           repository=DocumentRepository(store)).document


# ============================================================================
# SessionState Tests
# ============================================================================

class TestSessionState:
    """Tests for the state record and its invariants."""

    def test_empty_state_is_valid(self):
        validate_state(SessionState())

    def test_page_without_document_invalid(self):
        with pytest.raises(SessionStateError):
            validate_state(SessionState(current_page=2))

    def test_document_without_page_invalid(self):
        with pytest.raises(SessionStateError):
            validate_state(SessionState(active_document_id="d1"))

    def test_page_below_one_invalid(self):
        with pytest.raises(SessionStateError):
            validate_state(SessionState(active_document_id="d1", current_page=0))

    def test_page_past_total_invalid(self):
        with pytest.raises(SessionStateError):
            validate_state(SessionState(active_document_id="d1", current_page=4), total_pages=3)

    def test_dict_uses_wire_names(self):
        state = SessionState(active_document_id="d1", current_page=3)
        assert state.to_dict() == {"activeDocumentId": "d1", "currentPage": 3}
        assert SessionState.from_dict(state.to_dict()) == state


# ============================================================================
# SessionStateManager Tests
# ============================================================================

class TestSessionStateManager:
    """Tests for reading and writing state in the store."""

    def test_unknown_user_gets_empty_state(self, store):
        state = SessionStateManager(store).get_state("u1")
        assert state == SessionState()

    def test_set_active_document_resets_to_page_one(self, store):
        """Activating a document always starts at page 1."""
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")
        sessions.set_current_page("u1", 4)

        state = sessions.set_active_document("u1", "d2")

        assert state == SessionState(active_document_id="d2", current_page=1)
        assert sessions.get_state("u1") == state

    def test_get_state_switching_document_resets_page(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")
        sessions.set_current_page("u1", 3)

        state = sessions.get_state("u1", active_document_id="d2")

        assert state.current_page == 1

    def test_get_state_same_document_keeps_page(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")
        sessions.set_current_page("u1", 3)

        state = sessions.get_state("u1", active_document_id="d1")

        assert state.current_page == 3

    def test_get_state_with_none_clears(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        assert sessions.get_state("u1", active_document_id=None) == SessionState()

    def test_set_current_page_requires_document(self, store):
        with pytest.raises(SessionStateError):
            SessionStateManager(store).set_current_page("u1", 2)

    def test_invalid_page_not_written(self, store):
        """A rejected write leaves the stored state unchanged."""
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        with pytest.raises(SessionStateError):
            sessions.set_current_page("u1", 0)

        assert sessions.get_state("u1").current_page == 1

    def test_page_past_document_end_rejected(self, store):
        """currentPage may not exceed the stored document's page count."""
        document = three_page_document(store)
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", document.id)

        with pytest.raises(SessionStateError):
            sessions.set_current_page("u1", 99)

        assert sessions.get_state("u1").current_page == 1

    def test_last_page_accepted(self, store):
        document = three_page_document(store)
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", document.id)

        assert sessions.set_current_page("u1", 3).current_page == 3

    def test_get_state_update_past_end_rejected(self, store):
        document = three_page_document(store)
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", document.id)

        with pytest.raises(SessionStateError):
            sessions.get_state("u1", current_page=4)

    def test_update_none_leaves_state(self, store):
        """A mutate function returning None writes nothing."""
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        with patch.object(store, 'set', wraps=store.set) as mock_set:
            state = sessions.update("u1", lambda s: None)

        mock_set.assert_not_called()
        assert state.active_document_id == "d1"

    def test_update_writes_returned_state(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        sessions.update("u1", lambda s: SessionState(s.active_document_id, 2))

        assert sessions.get_state("u1").current_page == 2

    def test_writes_refresh_ttl(self, store):
        """Every write stores the state with the session TTL."""
        sessions = SessionStateManager(store, ttl_seconds=123)

        with patch.object(store, 'set', wraps=store.set) as mock_set:
            sessions.set_active_document("u1", "d1")

        assert mock_set.call_args.args == (
            keys.session_key("u1"),
            {"activeDocumentId": "d1", "currentPage": 1},
            123,
        )

    def test_clear_keeps_empty_session(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        sessions.clear("u1")

        assert store.get(keys.session_key("u1")) == {"activeDocumentId": None, "currentPage": None}

    def test_delete_removes_record(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        sessions.delete("u1")

        assert store.get(keys.session_key("u1")) is None

    def test_users_are_isolated(self, store):
        sessions = SessionStateManager(store)
        sessions.set_active_document("u1", "d1")

        assert sessions.get_state("u2") == SessionState()

    def test_lock_failure_propagates(self, store):
        """A write can't proceed when the user's lock is unavailable."""
        sessions = SessionStateManager(store)

        with patch.object(store, 'lock', side_effect=StoreError("lock busy")):
            with pytest.raises(StoreError):
                sessions.set_active_document("u1", "d1")

        assert store.get(keys.session_key("u1")) is None
