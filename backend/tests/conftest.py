"""
Shared pytest configuration.

Configures Django against the in-memory store and resets every cached
singleton between tests.
"""
import os

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')
os.environ['STORE_BACKEND'] = 'memory'
os.environ['RATE_LIMIT_BACKEND'] = 'memory'
os.environ.pop('DISABLE_RATE_LIMITING', None)
os.environ.setdefault('GEMINI_API_KEY', '')
os.environ.setdefault('TAVILY_API_KEY', '')

import django  # noqa: E402

django.setup()

import pytest  # noqa: E402
from unittest.mock import patch  # noqa: E402

from apps.authn.ratelimit import reset_limiter  # noqa: E402
from apps.chat.llm_client import reset_llm_client  # noqa: E402
from apps.store.client import InMemoryStore, reset_store  # noqa: E402


@pytest.fixture(autouse=True)
def reset_singletons():
    """Fresh store, limiter and LLM client for every test."""
    reset_store()
    reset_limiter()
    reset_llm_client()
    yield
    reset_store()
    reset_limiter()
    reset_llm_client()


@pytest.fixture(autouse=True)
def no_backoff_sleep():
    """Retries run without real waits."""
    with patch('apps.store.retry.time.sleep') as mock_sleep:
        yield mock_sleep


@pytest.fixture
def store():
    """An empty in-memory store."""
    return InMemoryStore()
