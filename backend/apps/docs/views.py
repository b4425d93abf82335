"""
Document management views.

Provides endpoints for:
- GET /api/docs - List the caller's documents
- GET /api/docs/<id> - Get document details
- GET /api/docs/<id>/pages/<n> - Get one page's text
- POST /api/docs/<id>/delete - Delete a document and its pages

Documents are uploaded through chat turns (see apps.chat.views).
"""
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.identity import identity_required
from apps.authn.audit import audit_document_deleted
from apps.store.client import StoreError
from apps.tutor.session import SessionStateManager
from .repository import DocumentRepository

logger = logging.getLogger(__name__)


def not_found(what: str = 'Document') -> JsonResponse:
    return JsonResponse(
        {'error': f'{what} not found', 'code': 'NOT_FOUND'},
        status=404
    )


def store_unavailable() -> JsonResponse:
    return JsonResponse(
        {'error': 'Document store temporarily unavailable', 'code': 'STORE_UNAVAILABLE'},
        status=503
    )


def get_owned_document(repository: DocumentRepository, document_id: str, user_id: str):
    """Return the document if it exists and belongs to user_id, else None."""
    document = repository.get_document(document_id)
    if document is None or document.owner_user_id != user_id:
        return None
    return document


@csrf_exempt
@require_http_methods(["GET"])
@identity_required
def list_documents(request):
    """
    List all live documents uploaded by the caller, newest first.

    GET /api/docs

    Returns:
        {
            "documents": [
                {
                    "id": "9f86d081884c7d65...",
                    "filename": "notes.pdf",
                    "totalPages": 5,
                    "uploadedAt": "2024-01-01T00:00:00+00:00",
                    "ownerUserId": "...",
                    "isFallback": false
                }
            ]
        }
    """
    try:
        documents = DocumentRepository().list_for_user(request.user_id)
    except StoreError as e:
        logger.error(f"Failed to list documents for user {request.user_id}: {e}")
        return store_unavailable()

    return JsonResponse({'documents': [d.to_dict() for d in documents]})


@csrf_exempt
@require_http_methods(["GET"])
@identity_required
def get_document(request, document_id):
    """
    Get details for a specific document, including whether it is the
    caller's active document and the current page.

    GET /api/docs/<document_id>
    """
    repository = DocumentRepository()
    try:
        document = get_owned_document(repository, document_id, request.user_id)
        if document is None:
            return not_found()
        state = SessionStateManager().get_state(request.user_id)
    except StoreError as e:
        logger.error(f"Failed to load document {document_id}: {e}")
        return store_unavailable()

    data = document.to_dict()
    is_active = state.active_document_id == document.id
    data['active'] = is_active
    data['currentPage'] = state.current_page if is_active else None
    return JsonResponse(data)


@csrf_exempt
@require_http_methods(["GET"])
@identity_required
def get_page(request, document_id, page_number):
    """
    Get the text of one page.

    GET /api/docs/<document_id>/pages/<page_number>

    Returns:
        {
            "documentId": "...",
            "pageNumber": 2,
            "text": "Page content...",
            "filename": "notes.pdf",
            "totalPages": 5
        }
    """
    repository = DocumentRepository()
    try:
        document = get_owned_document(repository, document_id, request.user_id)
        if document is None:
            return not_found()
        page = repository.get_page(document.id, page_number)
    except StoreError as e:
        logger.error(f"Failed to load page {page_number} of {document_id}: {e}")
        return store_unavailable()

    if page is None:
        return not_found('Page')

    data = page.to_dict()
    data['filename'] = document.filename
    data['totalPages'] = document.total_pages
    return JsonResponse(data)


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
@identity_required
def delete_document(request, document_id):
    """
    Delete a document with all its pages.

    POST /api/docs/<document_id>/delete

    If it was the caller's active document the session is cleared too.
    """
    repository = DocumentRepository()
    sessions = SessionStateManager()
    try:
        document = get_owned_document(repository, document_id, request.user_id)
        if document is None:
            return not_found()

        repository.delete(document.id)

        if sessions.get_state(request.user_id).active_document_id == document.id:
            sessions.clear(request.user_id)
    except StoreError as e:
        logger.error(f"Failed to delete document {document_id}: {e}")
        return store_unavailable()

    audit_document_deleted(request, document.id)
    return JsonResponse({'deleted': True, 'id': document.id})
