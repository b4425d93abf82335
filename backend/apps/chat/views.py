"""
Chat API views.

Provides endpoints for:
- POST /api/chat - Submit a turn (optionally with document uploads)
- GET /api/chat/history - Chat history plus the active document position
- POST /api/chat/history/clear - Clear history (re-adds the welcome message)
- GET /api/chat/history/export - Download the transcript as plain text
"""
import json
import logging
from pathlib import Path

from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.authn.audit import audit_history_cleared, get_client_ip
from apps.authn.identity import identity_required
from apps.authn.ratelimit import add_rate_limit_headers, rate_limit_response
from apps.chat import prompts
from apps.chat.orchestrator import Attachment, TurnOrchestrator
from apps.docs.repository import DocumentRepository
from apps.store.client import StoreError
from apps.tutor.history import ChatHistoryStore
from apps.tutor.session import SessionStateManager

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_SIZE = 50 * 1024 * 1024  # 50MB

EXTENSION_CONTENT_TYPES = {
    '.pdf': 'application/pdf',
    '.txt': 'text/plain',
    '.md': 'text/markdown',
    '.markdown': 'text/markdown',
}


def normalize_content_type(content_type: str, filename: str) -> str:
    """
    Normalize content type, using file extension as fallback.

    Some browsers/clients send incorrect MIME types, so we also check extension.
    """
    if content_type in ('application/octet-stream', 'binary/octet-stream', '', None):
        return EXTENSION_CONTENT_TYPES.get(Path(filename).suffix.lower(), content_type or '')
    return content_type


def parse_turn_request(request):
    """
    Read turns and uploads from a multipart or JSON request.

    Multipart requests carry a "messages" field (JSON array) and any number
    of "files"; JSON requests carry {"messages": [...]}.

    Returns:
        (turns, attachments)

    Raises:
        ValueError: If the messages payload is missing or malformed
    """
    content_type = request.content_type or ''

    if content_type.startswith('multipart/form-data'):
        raw_messages = request.POST.get('messages')
        if not raw_messages:
            raise ValueError("No messages provided")
        turns = json.loads(raw_messages)
        uploads = request.FILES.getlist('files')
    else:
        body = json.loads(request.body or b'{}')
        if not isinstance(body, dict):
            raise ValueError("Request body must be a JSON object")
        turns = body.get('messages')
        uploads = []

    if not isinstance(turns, list):
        raise ValueError("messages must be a list")

    max_size = getattr(settings, 'MAX_UPLOAD_SIZE', DEFAULT_MAX_UPLOAD_SIZE)
    attachments = []
    for upload in uploads:
        if upload.size > max_size:
            raise ValueError(
                f"File too large: {upload.name}. Maximum size: {max_size // (1024 * 1024)}MB"
            )
        attachments.append(Attachment(
            filename=upload.name,
            data=upload.read(),
            content_type=normalize_content_type(upload.content_type, upload.name),
        ))

    return turns, attachments


def active_document_position(user_id: str):
    """Return {name, currentPage, totalPages} for the active document, or None."""
    state = SessionStateManager().get_state(user_id)
    if not state.has_active_document:
        return None

    document = DocumentRepository().get_document(state.active_document_id)
    if document is None:
        return None

    return {
        "name": document.filename,
        "currentPage": state.current_page,
        "totalPages": document.total_pages,
    }


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(identity_required, name='dispatch')
class ChatView(View):
    """
    POST /api/chat

    Submit one conversational turn.

    Request (multipart/form-data):
        messages: '[{"role": "user", "content": "next page"}]'
        files: optional document uploads

    Request (application/json):
        {"messages": [{"role": "user", "content": "What is osmosis?"}]}

    Response:
        {
            "response": "[PDF: notes.pdf - Page 2 of 5] ...",
            "navigation": {"name": "notes.pdf", "currentPage": 2, "totalPages": 5}
        }

    Returns 429 with Retry-After when the caller's IP is rate limited.
    """

    def post(self, request):
        client_ip = get_client_ip(request)
        orchestrator = TurnOrchestrator()

        # Limited callers are turned away before the body or uploads are read
        limit = orchestrator.check_rate_limit(client_ip)
        if not limit.allowed:
            return rate_limit_response(limit)

        try:
            turns, attachments = parse_turn_request(request)
        except json.JSONDecodeError:
            return JsonResponse({"error": prompts.INVALID_REQUEST}, status=400)
        except ValueError as e:
            logger.warning(f"Invalid turn request: {e}")
            return JsonResponse({"error": str(e)}, status=400)

        try:
            result = orchestrator.handle_turn(
                user_id=request.user_id,
                client_ip=client_ip,
                turns=turns,
                attachments=attachments,
                request=request,
                rate_limit=limit,
            )
        except Exception:
            logger.exception(f"Unexpected error handling turn for user {request.user_id}")
            return JsonResponse({"response": prompts.UNEXPECTED_ERROR, "navigation": None})

        if result.is_rate_limited:
            return rate_limit_response(result.rate_limit)

        response = JsonResponse(result.to_dict())
        if result.rate_limit is not None:
            add_rate_limit_headers(response, result.rate_limit)
        return response


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(identity_required, name='dispatch')
class HistoryView(View):
    """
    GET /api/chat/history

    Response:
        {
            "messages": [{"id": "...", "role": "assistant", "content": "...", "timestamp": "..."}],
            "activeDocument": {"name": "notes.pdf", "currentPage": 1, "totalPages": 5}
        }

    An empty history is bootstrapped with the welcome message.
    """

    def get(self, request):
        try:
            messages = ChatHistoryStore().fetch_or_welcome(request.user_id)
            position = active_document_position(request.user_id)
        except StoreError as e:
            logger.error(f"Failed to load history for user {request.user_id}: {e}")
            return JsonResponse({"error": "Chat history temporarily unavailable"}, status=503)

        return JsonResponse({
            "messages": [m.to_dict() for m in messages],
            "activeDocument": position,
        })


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(identity_required, name='dispatch')
class ClearHistoryView(View):
    """
    POST /api/chat/history/clear

    Deletes every message, then re-adds the welcome message.

    Response:
        {"messages": [<welcome message>]}
    """

    def post(self, request):
        history = ChatHistoryStore()
        try:
            history.clear(request.user_id)
            welcome = history.add_welcome_message(request.user_id)
        except StoreError as e:
            logger.error(f"Failed to clear history for user {request.user_id}: {e}")
            return JsonResponse({"error": "Chat history temporarily unavailable"}, status=503)

        audit_history_cleared(request)
        return JsonResponse({"messages": [welcome.to_dict()]})


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(identity_required, name='dispatch')
class ExportHistoryView(View):
    """
    GET /api/chat/history/export

    Returns the transcript as a text/plain attachment.
    """

    def get(self, request):
        try:
            transcript = ChatHistoryStore().export(request.user_id)
        except StoreError as e:
            logger.error(f"Failed to export history for user {request.user_id}: {e}")
            return JsonResponse({"error": "Chat history temporarily unavailable"}, status=503)

        response = HttpResponse(transcript, content_type='text/plain; charset=utf-8')
        response['Content-Disposition'] = 'attachment; filename="chat-history.txt"'
        return response
