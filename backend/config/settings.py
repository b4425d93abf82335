"""
Django settings for the document tutor backend.
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = os.getenv('SECRET_KEY', 'django-insecure-dev-key-change-in-production')

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = os.getenv('DEBUG', 'False').lower() in ('true', '1', 'yes')

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
]

# Application definition
INSTALLED_APPS = [
    'apps.store',
    'apps.authn',
    'apps.docs',
    'apps.tutor',
    'apps.chat',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = []

WSGI_APPLICATION = 'config.wsgi.application'
ASGI_APPLICATION = 'config.asgi.application'

# No relational database: all state lives in the key-value store
DATABASES = {}

# Internationalization
LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = False
USE_TZ = True

# =============================================================================
# Key-value store
# =============================================================================
REDIS_URL = os.getenv('REDIS_URL', 'redis://redis:6379/0')

# "redis" in deployments, "memory" for single-process development and tests
STORE_BACKEND = os.getenv('STORE_BACKEND', 'redis')
STORE_KEY_PREFIX = os.getenv('STORE_KEY_PREFIX', 'tutor:')

# Record lifetimes (seconds)
SESSION_TTL_SECONDS = int(os.getenv('SESSION_TTL_SECONDS', 60 * 60 * 24))  # 24h
DOCUMENT_TTL_SECONDS = int(os.getenv('DOCUMENT_TTL_SECONDS', 60 * 60 * 24 * 30))  # 30 days
FALLBACK_DOCUMENT_TTL_SECONDS = int(os.getenv('FALLBACK_DOCUMENT_TTL_SECONDS', 60 * 60 * 24))  # 24h
CHAT_HISTORY_TTL_SECONDS = int(os.getenv('CHAT_HISTORY_TTL_SECONDS', 60 * 60 * 24 * 30))  # 30 days

# Maximum number of messages kept and returned per user
CHAT_HISTORY_LIMIT = int(os.getenv('CHAT_HISTORY_LIMIT', '100'))

# =============================================================================
# Rate limiting (per client IP, sliding window)
# =============================================================================
RATE_LIMIT_MAX_REQUESTS = int(os.getenv('RATE_LIMIT_MAX_REQUESTS', '10'))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '60'))
RATE_LIMIT_BACKEND = os.getenv('RATE_LIMIT_BACKEND', STORE_BACKEND)

# Overall cap on one turn; no LLM retry is started past it
TURN_TIME_BUDGET_SECONDS = int(os.getenv('TURN_TIME_BUDGET_SECONDS', '60'))

# =============================================================================
# LLM provider
# =============================================================================
# "gemini" (default), "openai" or "ollama"
LLM_PROVIDER = os.getenv('LLM_PROVIDER', 'gemini')

LLM_TEMPERATURE = float(os.getenv('LLM_TEMPERATURE', '0.7'))
LLM_MAX_TOKENS = int(os.getenv('LLM_MAX_TOKENS', '8192'))

GEMINI_API_KEY = os.getenv('GEMINI_API_KEY', '')
GEMINI_MODEL = os.getenv('GEMINI_MODEL', 'gemini-2.0-flash')
GEMINI_TIMEOUT = int(os.getenv('GEMINI_TIMEOUT', '120'))

OPENAI_API_KEY = os.getenv('OPENAI_API_KEY', '')
OPENAI_BASE_URL = os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1')
OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
OPENAI_TIMEOUT = int(os.getenv('OPENAI_TIMEOUT', '120'))

OLLAMA_BASE_URL = os.getenv('OLLAMA_BASE_URL', 'http://ollama:11434')
OLLAMA_CHAT_MODEL = os.getenv('OLLAMA_CHAT_MODEL', 'llama3.2')
OLLAMA_CHAT_TIMEOUT = int(os.getenv('OLLAMA_CHAT_TIMEOUT', '600'))  # 10 min

# =============================================================================
# Web search (Tavily)
# =============================================================================
# Leave empty to disable search augmentation
TAVILY_API_KEY = os.getenv('TAVILY_API_KEY', '')
TAVILY_BASE_URL = os.getenv('TAVILY_BASE_URL', 'https://api.tavily.com')
SEARCH_MAX_RESULTS = int(os.getenv('SEARCH_MAX_RESULTS', '3'))
SEARCH_DEPTH = os.getenv('SEARCH_DEPTH', 'basic')
SEARCH_TIMEOUT = int(os.getenv('SEARCH_TIMEOUT', '15'))

# =============================================================================
# File Upload Configuration
# =============================================================================
# Maximum file size in bytes (50MB default)
MAX_UPLOAD_SIZE = int(os.getenv('MAX_UPLOAD_SIZE', 50 * 1024 * 1024))
DATA_UPLOAD_MAX_MEMORY_SIZE = MAX_UPLOAD_SIZE

# =============================================================================
# Identity
# =============================================================================
USER_ID_COOKIE = os.getenv('USER_ID_COOKIE', 'userId')
USER_ID_COOKIE_MAX_AGE = int(os.getenv('USER_ID_COOKIE_MAX_AGE', 60 * 60 * 24 * 30))  # 30 days

# Label for assistant messages in exported transcripts
ASSISTANT_NAME = os.getenv('ASSISTANT_NAME', 'Tutor')

# =============================================================================
# Logging
# =============================================================================
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{levelname} {asctime} {module} {message}',
            'style': '{',
        },
        'json': {
            'format': '%(message)s',  # Audit logs are already JSON
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'INFO',
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'audit': {
            'handlers': ['audit'],
            'level': 'INFO',
            'propagate': False,
        },
    },
}
