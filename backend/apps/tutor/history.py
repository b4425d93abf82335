"""
Per-user chat history.

Each message is stored at chat-message:{user}:{id}; the user's history list
at chat-history:{user} holds message ids, most recent first. Reads resolve
ids, drop expired records and return messages oldest first.
"""
import uuid
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from django.conf import settings

from apps.store import keys
from apps.store.client import KeyValueStore, StoreError, get_store

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"
VALID_ROLES = (ROLE_USER, ROLE_ASSISTANT)

DEFAULT_HISTORY_LIMIT = 100

NO_HISTORY_TEXT = "No chat history found."
TRANSCRIPT_DELIMITER = "---\n\n"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S UTC"

WELCOME_MESSAGE = (
    "# Welcome to your document tutor\n\n"
    "I'm here to help you learn from your course material. You can:\n\n"
    "- **Upload a document** (PDF, text or markdown) and I'll walk you through it page by page\n"
    "- **Navigate** by saying \"next page\", \"previous page\" or \"go to page 3\"\n"
    "- **Ask questions** about the content or request explanations of difficult concepts\n\n"
    "What would you like to study today?"
)


def generate_message_id() -> str:
    return uuid.uuid4().hex


def parse_timestamp(value) -> datetime:
    """Parse an ISO string or epoch milliseconds into an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Message:
    """One chat message; immutable once written."""
    id: str
    role: str
    content: str
    timestamp: datetime

    def __post_init__(self):
        if self.role not in VALID_ROLES:
            raise ValueError(f"Invalid role: {self.role}")

    @classmethod
    def create(cls, role: str, content: str, message_id: Optional[str] = None) -> 'Message':
        return cls(
            id=message_id or generate_message_id(),
            role=role,
            content=content,
            timestamp=datetime.now(timezone.utc),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Message':
        return cls(
            id=str(data["id"]),
            role=data["role"],
            content=data.get("content", ""),
            timestamp=parse_timestamp(data["timestamp"]),
        )


class ChatHistoryStore:
    """Append-only message log per user."""

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl_seconds: Optional[int] = None,
        max_length: Optional[int] = None,
    ):
        self.store = store or get_store()
        self.ttl_seconds = ttl_seconds or keys.get_ttl('CHAT_HISTORY_TTL_SECONDS', keys.CHAT_HISTORY_TTL)
        self.max_length = max_length or int(getattr(settings, 'CHAT_HISTORY_LIMIT', DEFAULT_HISTORY_LIMIT))

    def save(self, user_id: str, message: Message) -> None:
        """
        Write the message and prepend its id to the user's history.

        The list is capped at max_length; ids pushed out of the cap have
        their records deleted.
        """
        history_key = keys.chat_history_key(user_id)

        self.store.set(keys.chat_message_key(user_id, message.id), message.to_dict(), self.ttl_seconds)
        length = self.store.list_push(history_key, message.id)

        if length > self.max_length:
            overflow_ids = self.store.list_range(history_key, self.max_length, -1)
            self.store.list_trim(history_key, 0, self.max_length - 1)
            if overflow_ids:
                self.store.delete(*[keys.chat_message_key(user_id, mid) for mid in overflow_ids])

        self.store.expire(history_key, self.ttl_seconds)

    def fetch(self, user_id: str, limit: Optional[int] = None) -> List[Message]:
        """
        Return up to limit most recent messages, oldest first.

        Ids whose record expired or is missing are skipped.
        """
        limit = limit or self.max_length
        message_ids = self.store.list_range(keys.chat_history_key(user_id), 0, limit - 1)

        messages = []
        seen = set()
        # Oldest first so the stable sort keeps insertion order on equal timestamps
        for message_id in reversed(message_ids):
            if message_id in seen:
                continue
            seen.add(message_id)

            data = self.store.get(keys.chat_message_key(user_id, message_id))
            if data is None:
                continue
            messages.append(Message.from_dict(data))

        messages.sort(key=lambda m: m.timestamp)
        return messages

    def add_welcome_message(self, user_id: str) -> Message:
        """Persist and return the synthetic welcome message."""
        welcome = Message.create(ROLE_ASSISTANT, WELCOME_MESSAGE)
        self.save(user_id, welcome)
        return welcome

    def fetch_or_welcome(self, user_id: str, limit: Optional[int] = None) -> List[Message]:
        """Fetch history, bootstrapping a welcome message when it is empty."""
        messages = self.fetch(user_id, limit)
        if not messages:
            logger.info(f"Empty history for user {user_id}, adding welcome message")
            messages = [self.add_welcome_message(user_id)]
        return messages

    def clear(self, user_id: str) -> None:
        """
        Delete every message record, then the history list.

        A message that can't be deleted is logged and skipped.
        """
        history_key = keys.chat_history_key(user_id)
        message_ids = self.store.list_range(history_key, 0, -1)

        for message_id in message_ids:
            try:
                self.store.delete(keys.chat_message_key(user_id, message_id))
            except StoreError as e:
                logger.warning(f"Failed to delete message {message_id} for user {user_id}: {e}")

        self.store.delete(history_key)
        logger.info(f"Cleared {len(message_ids)} messages for user {user_id}")

    def export(self, user_id: str) -> str:
        """Render the history as a plain-text transcript."""
        messages = self.fetch(user_id)

        if not messages:
            return NO_HISTORY_TEXT

        assistant_name = getattr(settings, 'ASSISTANT_NAME', 'Tutor')
        blocks = []
        for message in messages:
            label = "You" if message.role == ROLE_USER else assistant_name
            time = message.timestamp.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)
            blocks.append(f"{label} ({time}):\n{message.content}\n\n")

        return TRANSCRIPT_DELIMITER.join(blocks)
