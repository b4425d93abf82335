"""
Tutor app.

Provides:
- Per-user session state (active document, current page)
- Chat history store
- Navigation intent classification and page navigation
"""
