"""
Authentication decorator for session-protected endpoints.
"""
import logging
from typing import Optional, Callable
from functools import wraps

from django.http import JsonResponse, HttpRequest

from .audit import audit_auth_rejected
from .session import validate_session_token, SessionValidationError

logger = logging.getLogger(__name__)


def get_token_from_request(request: HttpRequest) -> Optional[str]:
    """
    Extract Bearer token from Authorization header.

    Args:
        request: The Django HTTP request

    Returns:
        The token string if found, None otherwise
    """
    auth_header = request.META.get('HTTP_AUTHORIZATION', '')

    if not auth_header:
        return None

    parts = auth_header.split()

    if len(parts) != 2 or parts[0].lower() != 'bearer':
        return None

    return parts[1]


def auth_required(view_func: Callable) -> Callable:
    """
    Decorator that requires a valid session token.

    Validates the token and attaches the claims to request.user_claims.
    Rejects with 401 before the view runs.

    Usage:
        @auth_required
        def my_view(request):
            user_id = request.user_claims.sub
            ...
    """
    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs):
        token = get_token_from_request(request)

        if not token:
            return JsonResponse({'error': 'Unauthorized'}, status=401)

        try:
            claims = validate_session_token(token)
        except SessionValidationError as e:
            logger.warning(f"Session validation failed: {e}")
            audit_auth_rejected(request, reason=str(e))
            return JsonResponse({'error': 'Unauthorized'}, status=401)

        request.user_claims = claims
        logger.debug(f"Authenticated user: sub={claims.sub}")
        return view_func(request, *args, **kwargs)

    return wrapper
