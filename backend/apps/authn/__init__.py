"""
Authn app.

Provides:
- Anonymous cookie identity
- Sliding-window rate limiting
- Structured audit logging
"""
