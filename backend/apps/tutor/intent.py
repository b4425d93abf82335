"""
Navigation intent classification.

Maps free text to one of NextPage, PreviousPage, GoToPage(n) or
NoNavigation with case-insensitive phrase matching. Next/previous phrases
are checked before page-number phrases; the first match wins.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IntentKind(str, Enum):
    NEXT_PAGE = "next_page"
    PREVIOUS_PAGE = "previous_page"
    GO_TO_PAGE = "go_to_page"
    NONE = "none"


@dataclass(frozen=True)
class NavigationIntent:
    """A classified navigation command; page is set only for GO_TO_PAGE."""
    kind: IntentKind
    page: Optional[int] = None

    @property
    def is_navigation(self) -> bool:
        return self.kind != IntentKind.NONE

    @classmethod
    def next_page(cls) -> 'NavigationIntent':
        return cls(IntentKind.NEXT_PAGE)

    @classmethod
    def previous_page(cls) -> 'NavigationIntent':
        return cls(IntentKind.PREVIOUS_PAGE)

    @classmethod
    def go_to_page(cls, page: int) -> 'NavigationIntent':
        return cls(IntentKind.GO_TO_PAGE, page)

    @classmethod
    def none(cls) -> 'NavigationIntent':
        return cls(IntentKind.NONE)


NEXT_PAGE_PATTERN = re.compile(
    r'go to (the )?next page|next page|show next page',
    re.IGNORECASE
)

PREVIOUS_PAGE_PATTERN = re.compile(
    r'go to (the )?previous page|previous page|show previous page|go back',
    re.IGNORECASE
)

GO_TO_PAGE_PATTERN = re.compile(
    r'go to page (\d+)|show page (\d+)|page (\d+)',
    re.IGNORECASE
)


def classify_navigation(text: str) -> NavigationIntent:
    """
    Classify a user message into a navigation intent.

    Args:
        text: Raw user message

    Returns:
        NavigationIntent (kind NONE when nothing matches)
    """
    if not text:
        return NavigationIntent.none()

    if NEXT_PAGE_PATTERN.search(text):
        return NavigationIntent.next_page()

    if PREVIOUS_PAGE_PATTERN.search(text):
        return NavigationIntent.previous_page()

    match = GO_TO_PAGE_PATTERN.search(text)
    if match:
        number = next(group for group in match.groups() if group is not None)
        return NavigationIntent.go_to_page(int(number))

    return NavigationIntent.none()
