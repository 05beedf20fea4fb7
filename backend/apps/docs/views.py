"""
Document extraction views.

Provides:
- POST /api/index-docs - Extract text from the user's Google Docs
"""
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_docs_indexed
from .drive import DriveAPIError, fetch_indexed_documents

logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(["POST"])
@auth_required
def index_docs(request):
    """
    POST /api/index-docs

    Response:
        {
            "documents": [
                {"id": "...", "title": "...", "content": "...",
                 "url": "...", "lastModified": "..."}
            ],
            "count": 1
        }
    """
    access_token = request.user_claims.google_access_token
    if not access_token:
        return JsonResponse({'error': 'Unauthorized'}, status=401)

    timeout = getattr(settings, 'GOOGLE_API_TIMEOUT', 30)

    try:
        documents, skipped = fetch_indexed_documents(access_token, timeout=timeout)
    except DriveAPIError as e:
        if e.status_code == 401:
            return JsonResponse({'error': 'Unauthorized'}, status=401)
        logger.error(f"Index docs failed: {e}")
        return JsonResponse({'error': 'Internal server error'}, status=500)

    audit_docs_indexed(request, document_count=len(documents), skipped_count=skipped)

    return JsonResponse({
        'documents': [doc.to_dict() for doc in documents],
        'count': len(documents),
    })
