"""
Tests for document pagination.

Every strategy must end with exactly N non-empty pages.
"""
import pytest

from apps.docs.paginator import (
    empty_page_placeholder,
    missing_page_marker,
    paginate,
    reconcile_page_count,
    split_by_heuristics,
    split_evenly,
    split_into_pages,
)


# ============================================================================
# Heuristic Split Tests
# ============================================================================

class TestSplitByHeuristics:
    """Tests for the ordered page-break patterns."""

    def test_form_feed_split(self):
        """Form feeds are the first heuristic tried."""
        splits, strategy = split_by_heuristics("one\ftwo\fthree", 3)
        assert splits == ["one", "two", "three"]
        assert strategy == "form_feed"

    def test_page_number_lines(self):
        """Lines holding only a number act as page breaks."""
        text = "intro text\n1\nsecond page\n2\nthird page"
        splits, strategy = split_by_heuristics(text, 3)
        assert strategy == "page_number_line"
        assert len(splits) == 3

    def test_page_x_of_y_lines(self):
        """'Page X of Y' lines act as page breaks."""
        text = "alpha\nPage 1 of 3\nbeta\nPage 2 of 3\ngamma"
        splits, strategy = split_by_heuristics(text, 3)
        assert strategy == "page_x_of_y_line"
        assert [s.strip() for s in splits] == ["alpha", "beta", "gamma"]

    def test_count_outside_range_rejected(self):
        """A split count outside [0.5N, 1.5N] doesn't qualify."""
        splits, strategy = split_by_heuristics("a\fb", 10)
        assert splits == []
        assert strategy == "none"

    def test_unbroken_text_qualifies_for_small_counts(self):
        """For N=2 a single piece is within [1, 3], so the first pattern wins."""
        splits, strategy = split_by_heuristics("alpha\nPage 1 of 2\nbeta", 2)
        assert splits == ["alpha\nPage 1 of 2\nbeta"]
        assert strategy == "form_feed"

    def test_no_breaks_rejected(self):
        """Text without any break does not qualify once N is large."""
        splits, strategy = split_by_heuristics("plain text without breaks", 4)
        assert splits == []


# ============================================================================
# Even Split and Reconcile Tests
# ============================================================================

class TestSplitEvenly:
    """Tests for character-count splitting."""

    def test_exact_division(self):
        assert split_evenly("aabbcc", 3) == ["aa", "bb", "cc"]

    def test_uses_ceiling_size(self):
        """Slices are ceil(len/N) long; the tail may be shorter."""
        assert split_evenly("abcdefg", 3) == ["abc", "def", "g"]

    def test_short_text_leaves_empty_tail(self):
        """Fewer characters than pages leaves trailing empty slices."""
        assert split_evenly("ab", 4) == ["a", "b", "", ""]

    def test_empty_text(self):
        assert split_evenly("", 3) == ["", "", ""]


class TestReconcilePageCount:
    """Tests for padding and merging."""

    def test_pads_with_markers(self):
        pages = reconcile_page_count(["a", "b"], 4)
        assert pages == ["a", "b", missing_page_marker(3), missing_page_marker(4)]

    def test_merges_overflow_into_last_page(self):
        pages = reconcile_page_count(["a", "b", "c", "d"], 2)
        assert pages == ["a", "b\n\nc\n\nd"]

    def test_exact_count_unchanged(self):
        assert reconcile_page_count(["a", "b"], 2) == ["a", "b"]


# ============================================================================
# split_into_pages / paginate Tests
# ============================================================================

class TestSplitIntoPages:
    """Tests for the full splitting pipeline."""

    @pytest.mark.parametrize("num_pages", [1, 2, 3, 5, 8])
    def test_always_exactly_n_pages(self, num_pages):
        """Any text yields exactly N pages."""
        text = "Lorem ipsum dolor sit amet " * 20
        assert len(split_into_pages(text, num_pages)) == num_pages

    def test_single_page_is_whole_text(self):
        assert split_into_pages("all of it", 1) == ["all of it"]

    def test_zero_pages_treated_as_one(self):
        assert split_into_pages("text", 0) == ["text"]

    def test_crlf_normalized(self):
        """Windows line endings should not break page-number detection."""
        text = "first\r\n1\r\nsecond\r\n2\r\nthird"
        assert [p.strip() for p in split_into_pages(text, 3)] == ["first", "second", "third"]

    def test_falls_back_to_even_split(self):
        """Without usable breaks the text is split by length."""
        pages = split_into_pages("abcdefgh", 4)
        assert pages == ["ab", "cd", "ef", "gh"]

    def test_single_piece_falls_back_to_even_split(self):
        """An in-range split that found no break is replaced by the even split."""
        text = "alpha\nPage 1 of 2\nbeta"
        assert split_into_pages(text, 2) == split_evenly(text, 2)

    def test_form_feed_overflow_merged(self):
        """Extra form-feed splits within range merge into the last page."""
        pages = split_into_pages("p1\fp2\fp3\fp4\fp5", 4)
        assert pages == ["p1", "p2", "p3", "p4\n\np5"]

    def test_form_feed_shortfall_padded(self):
        """Too few form-feed splits within range are padded with markers."""
        pages = split_into_pages("p1\fp2\fp3", 4)
        assert pages == ["p1", "p2", "p3", missing_page_marker(4)]


class TestPaginate:
    """Tests for final page text."""

    def test_pages_are_trimmed(self):
        assert paginate("  one \f\n two\n", 2, "a.txt") == ["one", "two"]

    def test_blank_pages_get_placeholder(self):
        """Blank pages are replaced so every page has text."""
        pages = paginate("one\f   \fthree", 3, "notes.pdf")
        assert pages[1] == empty_page_placeholder(2, "notes.pdf")
        assert all(page for page in pages)

    def test_empty_text_yields_n_placeholders(self):
        """Empty text with N > 1 still yields N non-empty pages."""
        pages = paginate("", 3, "scan.pdf")
        assert pages == [empty_page_placeholder(n, "scan.pdf") for n in (1, 2, 3)]

    def test_five_clean_pages(self):
        """A document with clean form feeds keeps its pages."""
        text = "\f".join(f"Content of page {n}" for n in range(1, 6))
        pages = paginate(text, 5, "lecture.pdf")
        assert pages == [f"Content of page {n}" for n in range(1, 6)]
