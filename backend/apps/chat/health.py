"""
Health check endpoints for Kubernetes/Docker probes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

from apps.chat.llm_client import LLMError, get_model_name
from apps.store.client import StoreError, get_store

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_store() -> tuple[str, bool]:
    """Check key-value store connectivity."""
    try:
        if get_store().ping():
            return 'ok', True
        return 'error: ping failed', False
    except StoreError as e:
        logger.error(f"Store health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_llm() -> tuple[str, bool]:
    """
    Check the LLM provider is configured (optional, degrades gracefully).

    Without a model, turns still answer with the apologetic fallback and
    history/navigation endpoints keep working.
    """
    provider = getattr(settings, 'LLM_PROVIDER', 'gemini')
    try:
        return f'ok: {provider}/{get_model_name()}', True
    except LLMError as e:
        logger.warning(f"LLM health check failed: {e}")
        return f'degraded: {str(e)[:30]}', True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.

    Returns 200 only if all critical dependencies are reachable.
    Used to determine if the pod should receive traffic.
    """
    checks = {}
    all_ok = True

    # Store (critical: sessions, documents and history live there)
    status, ok = check_store()
    checks['store'] = status
    if not ok:
        all_ok = False

    # LLM (optional - doesn't block readiness)
    status, _ = check_llm()
    checks['llm'] = status

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)
