"""
Session views.

- GET /api/session - Current navigation state and active document summary
- POST /api/session/clear - Drop the active document
- DELETE /api/session - Remove the session record
"""
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.identity import identity_required
from apps.store.client import StoreError
from apps.tutor.navigation import PageNavigator
from apps.tutor.session import SessionStateManager

logger = logging.getLogger(__name__)


def store_unavailable() -> JsonResponse:
    return JsonResponse(
        {'error': 'Session store temporarily unavailable', 'code': 'STORE_UNAVAILABLE'},
        status=503
    )


@csrf_exempt
@require_http_methods(["GET", "DELETE"])
@identity_required
def session(request):
    """
    GET returns:
        {
            "userId": "...",
            "state": {"activeDocumentId": "...", "currentPage": 2},
            "documentInfo": "Document Information:\\n- Filename: ..."
        }

    DELETE removes the session entirely.
    """
    sessions = SessionStateManager()

    try:
        if request.method == "DELETE":
            sessions.delete(request.user_id)
            return JsonResponse({'deleted': True})

        state = sessions.get_state(request.user_id)
        info = PageNavigator(sessions).document_info(request.user_id)
    except StoreError as e:
        logger.error(f"Session lookup failed for user {request.user_id}: {e}")
        return store_unavailable()

    return JsonResponse({
        'userId': request.user_id,
        'state': state.to_dict(),
        'documentInfo': info,
    })


@csrf_exempt
@require_http_methods(["POST"])
@identity_required
def clear_session(request):
    """POST /api/session/clear - keep the session but drop the active document."""
    try:
        state = SessionStateManager().clear(request.user_id)
    except StoreError as e:
        logger.error(f"Session clear failed for user {request.user_id}: {e}")
        return store_unavailable()

    return JsonResponse({'state': state.to_dict()})
