"""
Deterministic pagination of extracted document text.

Extractors hand back one block of text plus a declared page count N.
Pagination rebuilds exactly N pages:

1. Split on page-break heuristics, in order (form feeds, lines holding only
   a number, "Page X of Y" lines). The first split whose count falls within
   [0.5N, 1.5N] wins, even when that split is a single piece.
2. If nothing qualified, or the winner found no break at all, split evenly
   by character count.
3. Pad with placeholder pages or merge the overflow into the last page
   until there are exactly N.
4. Blank pages get a placeholder naming the page and file.

This is a best-effort reconstruction for documents without clear markers.
"""
import math
import re
import logging
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Ordered page-break heuristics
PAGE_BREAK_PATTERNS: List[Tuple[str, re.Pattern]] = [
    ('form_feed', re.compile(r'\f')),
    ('page_number_line', re.compile(r'\n\s*\d+\s*\n')),
    ('page_x_of_y_line', re.compile(r'\n\s*Page\s+\d+\s+of\s+\d+\s*\n', re.IGNORECASE)),
]

# Accepted split count range, as a fraction of the declared page count
MIN_SPLIT_RATIO = 0.5
MAX_SPLIT_RATIO = 1.5

# Separator used when merging overflow splits into the last page
MERGE_SEPARATOR = "\n\n"


def missing_page_marker(page_number: int) -> str:
    """Text for a page that the splitter could not produce."""
    return f"[Page {page_number} appears to be empty or contains only images/non-text content]"


def empty_page_placeholder(page_number: int, filename: str) -> str:
    """Text for a page whose extracted text is blank."""
    return f'Content from page {page_number} of "{filename}" could not be extracted as text.'


def normalize_line_endings(text: str) -> str:
    return text.replace('\r\n', '\n').replace('\r', '\n')


def split_by_heuristics(text: str, num_pages: int) -> Tuple[List[str], str]:
    """
    Try each page-break pattern in order.

    Returns:
        (splits, strategy name), or ([], 'none') when no pattern qualifies.
        For small N a single unbroken piece is already in range and wins.
    """
    low = num_pages * MIN_SPLIT_RATIO
    high = num_pages * MAX_SPLIT_RATIO

    for name, pattern in PAGE_BREAK_PATTERNS:
        splits = pattern.split(text)
        if low <= len(splits) <= high:
            return splits, name

    return [], 'none'


def split_evenly(text: str, num_pages: int) -> List[str]:
    """
    Split text into num_pages slices of ceil(len / num_pages) characters.

    Trailing slices are empty when the text is short.
    """
    size = math.ceil(len(text) / num_pages) if text else 0
    return [
        text[i * size:min((i + 1) * size, len(text))]
        for i in range(num_pages)
    ]


def reconcile_page_count(splits: List[str], num_pages: int) -> List[str]:
    """Pad or merge splits so exactly num_pages remain."""
    pages = list(splits)

    if len(pages) < num_pages:
        for page_number in range(len(pages) + 1, num_pages + 1):
            pages.append(missing_page_marker(page_number))
    elif len(pages) > num_pages:
        overflow = pages[num_pages - 1:]
        pages = pages[:num_pages - 1] + [MERGE_SEPARATOR.join(overflow)]

    return pages


def split_into_pages(text: str, num_pages: int) -> List[str]:
    """
    Split raw text into exactly num_pages untrimmed page texts.

    Args:
        text: Full extracted text
        num_pages: Declared page count (values below 1 are treated as 1)

    Returns:
        List of exactly max(1, num_pages) strings
    """
    num_pages = max(1, num_pages)
    text = normalize_line_endings(text or "")

    if num_pages == 1:
        return [text]

    splits, strategy = split_by_heuristics(text, num_pages)

    if len(splits) <= 1:
        splits = split_evenly(text, num_pages)
        strategy = 'even_split'

    pages = reconcile_page_count(splits, num_pages)

    logger.info(
        f"Split {len(text)} characters into {len(pages)} pages "
        f"(strategy={strategy}, raw_splits={len(splits)})"
    )

    return pages


def paginate(text: str, num_pages: int, filename: str) -> List[str]:
    """
    Produce the final text of every page, 1..num_pages.

    Each page is trimmed; blank pages are replaced with a placeholder so
    every page has non-empty text.
    """
    pages = split_into_pages(text, num_pages)

    return [
        page.strip() or empty_page_placeholder(page_number, filename)
        for page_number, page in enumerate(pages, start=1)
    ]
