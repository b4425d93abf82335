"""
Key-value store adapter.

Uniform get/set/delete/list over a TTL-capable backend. The Redis backend
wraps every operation in the store retry policy (3 attempts, 300ms doubling);
when all attempts fail a StoreError carrying the last backend error is raised.
Values are JSON-encoded on the way in and decoded on the way out.
"""
import json
import time
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import redis
from django.conf import settings

from apps.store.retry import retry_with_backoff, RetryExhausted, STORE_RETRY_CONFIG

logger = logging.getLogger(__name__)

# Lock defaults (seconds)
LOCK_TIMEOUT = 10.0
LOCK_BLOCKING_TIMEOUT = 5.0


class StoreError(Exception):
    """Raised when the backing store cannot complete an operation."""
    pass


class KeyValueStore(ABC):
    """Abstract TTL key-value store."""
    
    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None if absent/expired."""
        pass
    
    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store value under key with a TTL."""
        pass
    
    @abstractmethod
    def set_many(self, items: Dict[str, Any], ttl_seconds: int) -> None:
        """Store several values atomically with the same TTL."""
        pass
    
    @abstractmethod
    def delete(self, *keys: str) -> int:
        """Delete keys, returning how many existed."""
        pass
    
    @abstractmethod
    def keys_by_prefix(self, prefix: str) -> List[str]:
        """List live keys starting with prefix."""
        pass
    
    @abstractmethod
    def list_push(self, key: str, value: str) -> int:
        """Prepend value to the list at key, returning the new length."""
        pass
    
    @abstractmethod
    def list_range(self, key: str, start: int, stop: int) -> List[str]:
        """Return list items from start to stop inclusive (negative indexes allowed)."""
        pass
    
    @abstractmethod
    def list_trim(self, key: str, start: int, stop: int) -> None:
        """Keep only items from start to stop inclusive."""
        pass
    
    @abstractmethod
    def expire(self, key: str, ttl_seconds: int) -> bool:
        """Refresh the TTL of an existing key."""
        pass
    
    @abstractmethod
    def lock(self, name: str, timeout: float = LOCK_TIMEOUT,
             blocking_timeout: float = LOCK_BLOCKING_TIMEOUT):
        """Context manager holding an exclusive lock on name."""
        pass
    
    @abstractmethod
    def ping(self) -> bool:
        """Return True if the backend is reachable."""
        pass


def _encode(value: Any) -> str:
    return json.dumps(value)


def _decode(raw: Optional[str]) -> Optional[Any]:
    if raw is None:
        return None
    return json.loads(raw)


def _redis_slice(items: list, start: int, stop: int) -> list:
    """Slice with Redis LRANGE semantics (inclusive stop, negative from the end)."""
    end = len(items) + stop + 1 if stop < 0 else stop + 1
    return list(items[start:end])


class RedisStore(KeyValueStore):
    """Redis-backed store with bounded retries."""
    
    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        retry_config: Optional[dict] = None,
    ):
        self.url = url or getattr(settings, 'REDIS_URL', 'redis://redis:6379/0')
        self.retry_config = retry_config or STORE_RETRY_CONFIG
        self._redis = client
    
    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            self._redis = redis.from_url(self.url, decode_responses=True)
        return self._redis
    
    def _call(self, operation: str, func: Callable):
        """Run a backend call under the retry policy, surfacing StoreError."""
        try:
            return retry_with_backoff(
                func,
                config=self.retry_config,
                exceptions=(redis.RedisError,),
            )
        except RetryExhausted as e:
            logger.error(
                f"Store operation '{operation}' failed after {e.attempts} attempts: "
                f"{e.last_exception}"
            )
            raise StoreError(
                f"Store operation '{operation}' failed after {e.attempts} attempts"
            ) from e.last_exception
        except redis.RedisError as e:
            logger.error(f"Store operation '{operation}' failed: {e}")
            raise StoreError(f"Store operation '{operation}' failed: {e}") from e
    
    def get(self, key: str) -> Optional[Any]:
        return _decode(self._call('get', lambda: self.redis.get(key)))
    
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        payload = _encode(value)
        self._call('set', lambda: self.redis.set(key, payload, ex=ttl_seconds))
    
    def set_many(self, items: Dict[str, Any], ttl_seconds: int) -> None:
        payloads = {key: _encode(value) for key, value in items.items()}
        
        def write_all():
            with self.redis.pipeline(transaction=True) as pipe:
                for key, payload in payloads.items():
                    pipe.set(key, payload, ex=ttl_seconds)
                return pipe.execute()
        
        self._call('set_many', write_all)
    
    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._call('delete', lambda: self.redis.delete(*keys)))
    
    def keys_by_prefix(self, prefix: str) -> List[str]:
        return self._call(
            'keys_by_prefix',
            lambda: list(self.redis.scan_iter(match=f"{prefix}*", count=500))
        )
    
    def list_push(self, key: str, value: str) -> int:
        return int(self._call('list_push', lambda: self.redis.lpush(key, value)))
    
    def list_range(self, key: str, start: int, stop: int) -> List[str]:
        return self._call('list_range', lambda: self.redis.lrange(key, start, stop))
    
    def list_trim(self, key: str, start: int, stop: int) -> None:
        self._call('list_trim', lambda: self.redis.ltrim(key, start, stop))
    
    def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(self._call('expire', lambda: self.redis.expire(key, ttl_seconds)))
    
    @contextmanager
    def lock(self, name: str, timeout: float = LOCK_TIMEOUT,
             blocking_timeout: float = LOCK_BLOCKING_TIMEOUT) -> Iterator[None]:
        lock = self.redis.lock(name, timeout=timeout, blocking_timeout=blocking_timeout)
        acquired = self._call('lock', lock.acquire)
        if not acquired:
            raise StoreError(f"Could not acquire lock {name} within {blocking_timeout}s")
        try:
            yield
        finally:
            try:
                lock.release()
            except redis.exceptions.LockError as e:
                # Lock expired while held; the write already happened
                logger.warning(f"Lock {name} was released early: {e}")
    
    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except redis.RedisError as e:
            logger.error(f"Redis ping failed: {e}")
            return False


class InMemoryStore(KeyValueStore):
    """
    Process-local store with TTL semantics.
    
    Valid only within a single process; used for development and tests.
    Values are kept JSON-encoded so callers never share mutable state.
    """
    
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}
        self._mutex = threading.RLock()
        self._locks: Dict[str, threading.Lock] = {}
    
    def _live(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value
    
    def _expiry(self, ttl_seconds: int) -> float:
        return self._clock() + ttl_seconds
    
    def get(self, key: str) -> Optional[Any]:
        with self._mutex:
            raw = self._live(key)
            if raw is None or isinstance(raw, list):
                return None
            return _decode(raw)
    
    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._mutex:
            self._data[key] = (_encode(value), self._expiry(ttl_seconds))
    
    def set_many(self, items: Dict[str, Any], ttl_seconds: int) -> None:
        encoded = {key: _encode(value) for key, value in items.items()}
        with self._mutex:
            expires_at = self._expiry(ttl_seconds)
            for key, payload in encoded.items():
                self._data[key] = (payload, expires_at)
    
    def delete(self, *keys: str) -> int:
        deleted = 0
        with self._mutex:
            for key in keys:
                if self._live(key) is not None:
                    deleted += 1
                self._data.pop(key, None)
        return deleted
    
    def keys_by_prefix(self, prefix: str) -> List[str]:
        with self._mutex:
            return [
                key for key in list(self._data)
                if key.startswith(prefix) and self._live(key) is not None
            ]
    
    def list_push(self, key: str, value: str) -> int:
        with self._mutex:
            current = self._live(key)
            expires_at = self._data[key][1] if current is not None else None
            items = [value] + (current if isinstance(current, list) else [])
            self._data[key] = (items, expires_at)
            return len(items)
    
    def list_range(self, key: str, start: int, stop: int) -> List[str]:
        with self._mutex:
            items = self._live(key)
            if not isinstance(items, list):
                return []
            return _redis_slice(items, start, stop)
    
    def list_trim(self, key: str, start: int, stop: int) -> None:
        with self._mutex:
            items = self._live(key)
            if not isinstance(items, list):
                return
            self._data[key] = (_redis_slice(items, start, stop), self._data[key][1])
    
    def expire(self, key: str, ttl_seconds: int) -> bool:
        with self._mutex:
            value = self._live(key)
            if value is None:
                return False
            self._data[key] = (value, self._expiry(ttl_seconds))
            return True
    
    @contextmanager
    def lock(self, name: str, timeout: float = LOCK_TIMEOUT,
             blocking_timeout: float = LOCK_BLOCKING_TIMEOUT) -> Iterator[None]:
        with self._mutex:
            lock = self._locks.setdefault(name, threading.Lock())
        if not lock.acquire(timeout=blocking_timeout):
            raise StoreError(f"Could not acquire lock {name} within {blocking_timeout}s")
        try:
            yield
        finally:
            lock.release()
    
    def ping(self) -> bool:
        return True


# Singleton instance
_store: Optional[KeyValueStore] = None


def get_store() -> KeyValueStore:
    """
    Get the configured store instance (lazy initialization).
    
    Uses STORE_BACKEND to pick the backend:
    - "redis" (default): shared Redis at REDIS_URL
    - "memory": process-local store
    """
    global _store
    if _store is None:
        backend = getattr(settings, 'STORE_BACKEND', 'redis').lower()
        if backend == 'memory':
            logger.info("Using in-memory key-value store")
            _store = InMemoryStore()
        else:
            logger.info("Using Redis key-value store")
            _store = RedisStore()
    return _store


def reset_store():
    """Reset the cached store instance. Useful for testing."""
    global _store
    _store = None
