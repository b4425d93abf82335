"""
Persisted key layout.

All keys share a configurable prefix (STORE_KEY_PREFIX) so several
deployments can share one Redis database.
"""
from django.conf import settings

# TTL defaults in seconds
SESSION_TTL = 24 * 60 * 60
DOCUMENT_TTL = 30 * 24 * 60 * 60
FALLBACK_DOCUMENT_TTL = 24 * 60 * 60
CHAT_HISTORY_TTL = 30 * 24 * 60 * 60


def key_prefix() -> str:
    return getattr(settings, 'STORE_KEY_PREFIX', 'tutor:')


def session_key(user_id: str) -> str:
    return f"{key_prefix()}session:{user_id}"


def session_lock_key(user_id: str) -> str:
    return f"{key_prefix()}lock:session:{user_id}"


def chat_history_key(user_id: str) -> str:
    return f"{key_prefix()}chat-history:{user_id}"


def chat_message_key(user_id: str, message_id: str) -> str:
    return f"{key_prefix()}chat-message:{user_id}:{message_id}"


def document_key(document_id: str) -> str:
    return f"{key_prefix()}document:{document_id}"


def document_prefix() -> str:
    return f"{key_prefix()}document:"


def page_key(document_id: str, page_number: int) -> str:
    return f"{key_prefix()}page:{document_id}:{page_number}"


def ratelimit_key(client_key: str) -> str:
    return f"{key_prefix()}ratelimit:{client_key}"


def get_ttl(name: str, default: int) -> int:
    """Read a TTL setting, falling back to the module default."""
    return int(getattr(settings, name, default))
