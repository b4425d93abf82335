"""
Persistent store app.

Provides:
- TTL key-value store contract with Redis and in-memory backends
- Bounded retry with exponential backoff
- Persisted key layout
"""
