"""
Audit logging for security and compliance.

Provides structured JSON logging for key events without exposing query text
or document content.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Dedicated audit logger
audit_logger = logging.getLogger('audit')


class AuditEvent:
    """Standard audit event types."""
    # Auth events
    AUTH_TOKEN_REJECTED = 'auth.token_rejected'

    # Document events
    DOCUMENT_ADDED = 'document.added'

    # RAG events
    RAG_QUERY = 'rag.query'

    # Chat events
    CHAT_TURN = 'chat.turn'


def get_client_ip(request) -> str:
    """Extract client IP from request, handling proxies."""
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        # First IP in the chain is the client
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', 'unknown')


def get_request_id(request) -> str:
    """Get or generate a request ID for correlation."""
    request_id = getattr(request, 'request_id', None)
    if not request_id:
        request_id = request.META.get('HTTP_X_REQUEST_ID')
    if not request_id:
        request_id = str(uuid.uuid4())[:8]
    return request_id


def log_audit(
    event_type: str,
    user_id: Optional[int] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log a structured audit event.

    Args:
        event_type: One of AuditEvent constants
        user_id: Authenticated user ID
        request_id: Correlation ID for request tracing
        client_ip: Client IP address
        outcome: 'success' or 'failure'
        metadata: Event-specific data (no PII/secrets)
    """
    event = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'event_type': event_type,
        'user_id': user_id,
        'request_id': request_id,
        'client_ip': client_ip,
        'outcome': outcome,
        'metadata': metadata or {}
    }

    # Log as structured JSON
    audit_logger.info(json.dumps(event))


def log_audit_from_request(
    request,
    event_type: str,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """Log an audit event with request context auto-populated."""
    log_audit(
        event_type=event_type,
        user_id=getattr(request, 'user_id', None),
        request_id=get_request_id(request),
        client_ip=get_client_ip(request),
        outcome=outcome,
        metadata=metadata
    )


# Convenience functions for common events

def audit_auth_rejected(request, reason: str):
    """Log failed token validation."""
    log_audit_from_request(
        request,
        AuditEvent.AUTH_TOKEN_REJECTED,
        outcome='failure',
        metadata={
            'reason': reason,
            'path': request.path,
        }
    )


def audit_documents_added(request, document_ids, datasets):
    """Log successful ingestion."""
    log_audit_from_request(
        request,
        AuditEvent.DOCUMENT_ADDED,
        metadata={
            'document_ids': list(document_ids),
            'datasets': sorted(set(datasets)),
        }
    )


def audit_rag_query(request, query_length: int, budget: Dict[str, Any], source_count: int):
    """Log RAG query (without the actual query text)."""
    log_audit_from_request(
        request,
        AuditEvent.RAG_QUERY,
        metadata={
            'query_length': query_length,
            'budget': budget,
            'source_count': source_count,
        }
    )


def audit_chat_turn(request, session_id: str, message_count: int):
    """Log a persisted chat turn."""
    log_audit_from_request(
        request,
        AuditEvent.CHAT_TURN,
        metadata={
            'session_id': session_id,
            'message_count': message_count,
        }
    )
