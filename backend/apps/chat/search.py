"""
Web search augmentation.

Uses the Tavily search API. Search is best effort: any failure (missing API
key, HTTP error, timeout, malformed payload) yields an empty SearchResponse
and the turn proceeds without augmentation.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.tavily.com"
DEFAULT_MAX_RESULTS = 3
DEFAULT_SEARCH_DEPTH = "basic"
DEFAULT_TIMEOUT = 15
SNIPPET_MAX_CHARS = 300

MIN_QUERY_LENGTH = 15

# Messages about the document itself are answered from the page, not the web
DOCUMENT_VOCABULARY = ("slide", "pdf", "document", "page", "next", "previous")

INFORMATIONAL_CUES = re.compile(
    r"\b(what|how|why|who|when|where|define|explain|latest|recent|current|news about)\b"
    r"|search for|search the web|look up|find information|tell me about",
    re.IGNORECASE
)


class SearchError(Exception):
    """Raised when the search provider call fails."""
    pass


@dataclass
class SearchResult:
    """One search hit."""
    title: str
    url: str
    content: str

    @classmethod
    def from_dict(cls, data: dict) -> 'SearchResult':
        return cls(
            title=data.get("title") or "",
            url=data.get("url") or "",
            content=data.get("content") or "",
        )


@dataclass
class SearchResponse:
    """Search hits plus the provider's synthesized answer, if any."""
    results: List[SearchResult] = field(default_factory=list)
    answer: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.results and not self.answer


def needs_web_search(message: str) -> bool:
    """
    Decide whether a message should be augmented with web search.

    True only when the message is longer than 15 characters, mentions no
    document or navigation vocabulary, and reads like an informational
    query (a question mark or a cue such as "what", "explain", "latest").
    """
    if not message or len(message.strip()) <= MIN_QUERY_LENGTH:
        return False

    lowered = message.lower()
    if any(word in lowered for word in DOCUMENT_VOCABULARY):
        return False

    return "?" in message or bool(INFORMATIONAL_CUES.search(message))


def is_search_configured() -> bool:
    return bool(getattr(settings, 'TAVILY_API_KEY', ''))


def _request_search(
    query: str,
    max_results: int,
    search_depth: str,
    include_answer: bool,
) -> SearchResponse:
    """
    Call the search API.

    Raises:
        SearchError: On any transport, HTTP or payload error
    """
    base_url = getattr(settings, 'TAVILY_BASE_URL', DEFAULT_BASE_URL).rstrip('/')
    timeout = getattr(settings, 'SEARCH_TIMEOUT', DEFAULT_TIMEOUT)

    try:
        response = requests.post(
            f"{base_url}/search",
            json={
                "query": query,
                "topic": "general",
                "search_depth": search_depth,
                "max_results": max_results,
                "include_answer": include_answer,
                "include_raw_content": False,
                "include_images": False,
            },
            headers={
                "Authorization": f"Bearer {settings.TAVILY_API_KEY}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )
    except requests.exceptions.Timeout:
        raise SearchError("Search API timed out")
    except requests.exceptions.ConnectionError:
        raise SearchError(f"Cannot connect to search API at {base_url}")
    except requests.exceptions.RequestException as e:
        raise SearchError(f"Request failed: {e}")

    if response.status_code != 200:
        raise SearchError(f"Search API returned {response.status_code}")

    try:
        data = response.json()
    except ValueError:
        raise SearchError("Search API returned invalid JSON")

    results = [
        SearchResult.from_dict(item)
        for item in data.get("results") or []
        if isinstance(item, dict)
    ]
    return SearchResponse(results=results, answer=data.get("answer") or None)


def search_web(
    query: str,
    max_results: Optional[int] = None,
    search_depth: Optional[str] = None,
    include_answer: bool = True,
) -> SearchResponse:
    """
    Search the web for query.

    Args:
        query: Search query (the user's message)
        max_results: Number of hits, SEARCH_MAX_RESULTS when None
        search_depth: "basic" or "advanced", SEARCH_DEPTH when None
        include_answer: Ask the provider for a synthesized answer

    Returns:
        SearchResponse, empty when search is unavailable or fails
    """
    if not is_search_configured():
        logger.warning("TAVILY_API_KEY not configured, skipping web search")
        return SearchResponse()

    max_results = max_results or int(getattr(settings, 'SEARCH_MAX_RESULTS', DEFAULT_MAX_RESULTS))
    search_depth = search_depth or getattr(settings, 'SEARCH_DEPTH', DEFAULT_SEARCH_DEPTH)

    logger.info(f"Searching the web: depth={search_depth}, max_results={max_results}")

    try:
        response = _request_search(query, max_results, search_depth, include_answer)
    except SearchError as e:
        logger.warning(f"Web search failed, continuing without it: {e}")
        return SearchResponse()

    logger.info(f"Web search complete: {len(response.results)} results")
    return response


def format_search_context(response: SearchResponse) -> str:
    """Render search results as a prompt section; empty string when nothing was found."""
    if response.is_empty:
        return ""

    lines = ["Web search results:"]
    if response.answer:
        lines.append(f"Summary: {response.answer}")

    for i, result in enumerate(response.results, 1):
        snippet = result.content[:SNIPPET_MAX_CHARS]
        if len(result.content) > SNIPPET_MAX_CHARS:
            snippet += "..."
        lines.append(f"[{i}] {result.title} ({result.url})\n{snippet}")

    return "\n\n".join(lines)
