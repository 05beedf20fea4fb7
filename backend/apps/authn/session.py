"""
Session token validation.

Sign-in is handled by the web front-end, which forwards its session as an
HMAC-signed JWT. We verify the signature and expiry and expose the claims
the pipeline needs.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import jwt
from django.conf import settings

logger = logging.getLogger(__name__)


class SessionValidationError(Exception):
    """Raised when a session token is missing, invalid or expired."""
    pass


@dataclass
class SessionClaims:
    """Validated session claims."""
    sub: str  # Subject (user ID)
    email: Optional[str]
    name: Optional[str]
    google_access_token: Optional[str]  # Needed to read the user's Drive
    raw_claims: Dict[str, Any]


def validate_session_token(token: str) -> SessionClaims:
    """
    Validate a session token issued by the front-end.

    Performs the following validations:
    1. Verify signature with SESSION_SECRET
    2. Verify token carries and has not passed its expiry
    3. Verify a subject (or email) is present

    Args:
        token: The JWT token string (without 'Bearer ' prefix)

    Returns:
        SessionClaims with validated claims

    Raises:
        SessionValidationError: If validation fails
    """
    secret = getattr(settings, 'SESSION_SECRET', '')
    if not secret:
        logger.error("SESSION_SECRET is not configured; rejecting all sessions")
        raise SessionValidationError("Session validation not configured")

    algorithms = getattr(settings, 'SESSION_ALGORITHMS', ['HS256'])

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=algorithms,
            options={
                'require': ['exp'],
                'verify_signature': True,
                'verify_exp': True,
                'verify_aud': False,
            }
        )
    except jwt.ExpiredSignatureError:
        raise SessionValidationError("Session has expired")
    except jwt.InvalidTokenError as e:
        raise SessionValidationError(f"Invalid session token: {e}")

    sub = claims.get('sub') or claims.get('email')
    if not sub:
        raise SessionValidationError("Session token missing subject")

    return SessionClaims(
        sub=str(sub),
        email=claims.get('email'),
        name=claims.get('name'),
        google_access_token=claims.get('accessToken') or claims.get('access_token'),
        raw_claims=claims,
    )
