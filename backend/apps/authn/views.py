"""
Authentication views.
"""
import logging

from django.http import JsonResponse, HttpRequest
from django.views.decorators.http import require_http_methods

from .middleware import auth_required

logger = logging.getLogger(__name__)


@require_http_methods(["GET"])
@auth_required
def me(request: HttpRequest) -> JsonResponse:
    """
    GET /api/me

    Returns the authenticated user's information.

    Response:
        {
            "id": "<sub>",
            "email": "<email or null>",
            "name": "<name or null>",
            "driveAccess": true
        }
    """
    claims = request.user_claims

    return JsonResponse({
        'id': claims.sub,
        'email': claims.email,
        'name': claims.name,
        'driveAccess': bool(claims.google_access_token),
    })
