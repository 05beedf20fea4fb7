"""
Audit logging for security and compliance.

Provides structured JSON logging for key events without exposing
question text or document content.
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
    DOCS_INDEXED = 'docs.indexed'

    # RAG events
    CHAT_QUERY = 'chat.query'


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
    user_id: Optional[str] = None,
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log a structured audit event.

    Args:
        event_type: One of AuditEvent constants
        user_id: Session subject
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

    audit_logger.info(json.dumps(event))


def log_audit_from_request(
    request,
    event_type: str,
    outcome: str = 'success',
    metadata: Optional[Dict[str, Any]] = None
):
    """
    Log an audit event with request context auto-populated.
    """
    user_id = None
    if hasattr(request, 'user_claims') and request.user_claims:
        user_id = getattr(request.user_claims, 'sub', None)

    log_audit(
        event_type=event_type,
        user_id=user_id,
        request_id=get_request_id(request),
        client_ip=get_client_ip(request),
        outcome=outcome,
        metadata=metadata
    )


# Convenience functions for common events

def audit_chat_query(
    request,
    model: str,
    question_length: int,
    document_count: int,
    source_count: int,
    outcome: str = 'success',
):
    """Log a chat request (without the question or any document text)."""
    log_audit_from_request(
        request,
        AuditEvent.CHAT_QUERY,
        outcome=outcome,
        metadata={
            'model': model,
            'question_length': question_length,
            'document_count': document_count,
            'source_count': source_count,
        }
    )


def audit_docs_indexed(request, document_count: int, skipped_count: int):
    """Log a document extraction run."""
    log_audit_from_request(
        request,
        AuditEvent.DOCS_INDEXED,
        metadata={
            'document_count': document_count,
            'skipped_count': skipped_count,
        }
    )


def audit_auth_rejected(request, reason: str):
    """Log failed session validation."""
    log_audit_from_request(
        request,
        AuditEvent.AUTH_TOKEN_REJECTED,
        outcome='failure',
        metadata={
            'reason': reason[:200],
        }
    )
