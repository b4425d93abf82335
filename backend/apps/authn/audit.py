"""
Audit logging for operations.

Every event is one JSON line on the dedicated "audit" logger:

    {"timestamp", "event_type", "user_id", "request_id", "client_ip",
     "outcome", "metadata"}

Message text never appears in an event; turns are described by lengths,
flags and counts only.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Dedicated audit logger
audit_logger = logging.getLogger('audit')

MAX_ERROR_LENGTH = 200


class AuditEvent:
    """Audit event types."""
    TURN_COMPLETED = 'turn.completed'
    TURN_FAILED = 'turn.failed'

    DOCUMENT_INGESTED = 'document.ingested'
    DOCUMENT_FALLBACK = 'document.fallback'
    DOCUMENT_DELETED = 'document.deleted'

    HISTORY_CLEARED = 'history.cleared'

    RATELIMIT_EXCEEDED = 'ratelimit.exceeded'


def get_client_ip(request) -> str:
    """Client IP, preferring the first X-Forwarded-For hop behind a proxy."""
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR') or 'unknown'


def get_request_id(request) -> str:
    """Correlation id from the request, or a short fresh one."""
    return (
        getattr(request, 'request_id', None)
        or request.META.get('HTTP_X_REQUEST_ID')
        or uuid.uuid4().hex[:8]
    )


def log_audit(
    event_type: str,
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Emit one audit event.

    Args:
        event_type: One of the AuditEvent constants
        user_id: Opaque user id from the identity cookie
        request_id: Correlation id
        client_ip: Caller address
        outcome: 'success' or 'failure'
        metadata: Event-specific counters and ids
    """
    audit_logger.info(json.dumps({
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'user_id': user_id,
        'request_id': request_id,
        'client_ip': client_ip,
        'outcome': outcome,
        'metadata': metadata or {},
    }))


def log_request_event(request, event_type: str, outcome: str = 'success', **metadata):
    """Emit an event with user, request id and IP taken from the request."""
    log_audit(
        event_type,
        user_id=getattr(request, 'user_id', None),
        request_id=get_request_id(request),
        client_ip=get_client_ip(request),
        outcome=outcome,
        metadata=metadata,
    )


def audit_turn_completed(request, message_length: int, page_included: bool,
                         search_used: bool, documents_ingested: int):
    log_request_event(
        request,
        AuditEvent.TURN_COMPLETED,
        message_length=message_length,
        page_included=page_included,
        search_used=search_used,
        documents_ingested=documents_ingested,
    )


def audit_turn_failed(request, stage: str, error: str):
    """A turn answered with a fallback; stage is 'generation' or 'store'."""
    log_request_event(
        request,
        AuditEvent.TURN_FAILED,
        outcome='failure',
        stage=stage,
        error=error[:MAX_ERROR_LENGTH],
    )


def audit_document_ingested(user_id: Optional[str], document_id: str, total_pages: int):
    log_audit(
        AuditEvent.DOCUMENT_INGESTED,
        user_id=user_id,
        metadata={'document_id': document_id, 'total_pages': total_pages},
    )


def audit_document_fallback(user_id: Optional[str], document_id: str, error: str):
    log_audit(
        AuditEvent.DOCUMENT_FALLBACK,
        user_id=user_id,
        outcome='failure',
        metadata={'document_id': document_id, 'error': error[:MAX_ERROR_LENGTH]},
    )


def audit_document_deleted(request, document_id: str):
    log_request_event(request, AuditEvent.DOCUMENT_DELETED, document_id=document_id)


def audit_history_cleared(request):
    log_request_event(request, AuditEvent.HISTORY_CLEARED)


def audit_ratelimit_exceeded(client_key: str, limit: int, window: int):
    log_audit(
        AuditEvent.RATELIMIT_EXCEEDED,
        client_ip=client_key,
        outcome='failure',
        metadata={'limit': limit, 'window': window},
    )
