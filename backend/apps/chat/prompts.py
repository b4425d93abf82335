"""
Prompt text for the tutor.

Holds the system instruction, user-facing fallback messages, response
footers and the composition of the outbound prompt for a turn.
"""
from typing import Optional

SYSTEM_INSTRUCTION = """You are a patient, professional tutor who helps students work through their course documents one page at a time.

RULES:
1. Teach the content of each page thoroughly: break it down, explain difficult terms and highlight the key ideas.
2. Make sure the student understands a page before suggesting they move on.
3. Answer specific questions about the document and summarize it on request.
4. If you don't know an answer, say so. Never invent facts.
5. After every three pages, offer a short check of understanding (three questions about the pages covered) before continuing.
6. When the student wants to stop, summarize what was covered and the key takeaways.
7. When web search results are provided, use them to give accurate and up-to-date information.
8. Keep track of the conversation so far, including the student's name and the documents they uploaded.

FORMATTING:
- Use Markdown: headings, bullet and numbered lists, bold for key terms, code blocks for technical content and tables for comparisons.

DOCUMENT NAVIGATION:
The student moves through a document by writing "next page", "previous page" or "go to page N".
Page content is delivered to you in this format:

[PDF: filename.pdf - Page N of TOTAL]
Content of the page...

When you explain a page, start your reply with that same marker line so the student always knows where they are.
When a document has just been uploaded, introduce it, explain its first page in detail and tell the student how to continue to the next page."""

# User-facing fallbacks; none of these ever carry internal error details
RATE_LIMITED = "Rate limit exceeded. Please try again later."
NO_USER_MESSAGE = "No user message found. Please provide a message to continue."
INVALID_REQUEST = "There was an error processing your message data. Please try again."
GENERATION_FAILED = (
    "I'm having trouble processing your request right now. "
    "Please try again with a simpler question or try again later."
)
SERVICE_UNAVAILABLE = (
    "I'm currently experiencing technical difficulties and couldn't process your request. "
    "Please try again in a few moments, or ask a different question."
)
UNEXPECTED_ERROR = "I encountered an unexpected error processing your request. Please try again later."

DEFAULT_USER_MESSAGE = "Hello"

WEB_SEARCH_FOOTER = "_I've searched the web to provide you with the most up-to-date information on this topic._"
NAVIGATION_FOOTER = (
    '_You can navigate through the document by saying "next page", '
    '"previous page", or "go to page X"._'
)


def build_upload_prompt(page_text: str) -> str:
    """Prompt sent on the turn that uploaded a document, carrying its first page."""
    return (
        "I've uploaded a document. Here's the content of the first page:\n\n"
        f"{page_text}\n\n"
        "Please help me understand this content. I'll let you know when I want "
        "to move to other pages."
    )


def build_turn_prompt(
    message: str,
    page_text: Optional[str] = None,
    search_context: Optional[str] = None,
    uploaded: bool = False,
) -> str:
    """
    Compose the outbound prompt for a turn.

    Args:
        message: The user's message
        page_text: Marker-prefixed page content, when a document is active
        search_context: Rendered web search results, when augmentation ran
        uploaded: True when this turn ingested a document

    Returns:
        The prompt text sent to the model
    """
    if uploaded and page_text:
        sections = [build_upload_prompt(page_text)]
        if message and message != DEFAULT_USER_MESSAGE:
            sections.insert(0, message)
    else:
        sections = [message]
        if page_text:
            sections.append(page_text)

    if search_context:
        sections.append(
            "[SEARCH RESULTS] I've searched the web for information related to this question. "
            f"Here's what I found:\n\n{search_context}"
        )

    return "\n\n".join(sections)


def add_footers(text: str, searched: bool = False, navigated: bool = False) -> str:
    """Append the web search and navigation notes to a response."""
    if searched:
        text = f"{text}\n\n{WEB_SEARCH_FOOTER}"
    if navigated:
        text = f"{text}\n\n{NAVIGATION_FOOTER}"
    return text
