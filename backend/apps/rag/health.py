"""
Health check endpoints for Kubernetes/Docker health checks.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we answer questions?)
"""
import logging
from datetime import datetime, timezone

from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

from apps.rag.config import ProviderConfig

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness check endpoint.

    Returns 200 if the Django process is running.
    Does NOT check configuration - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_embedding_provider(config: ProviderConfig) -> tuple[str, bool]:
    """An embedding credential is required to index anything."""
    if config.has_gemini:
        return 'ok: gemini', True
    if config.has_openai:
        return 'ok: openai', True
    return 'error: no embedding API key', False


def check_generation_provider(config: ProviderConfig) -> tuple[str, bool]:
    """At least one chat provider must be configured."""
    configured = [
        name for name, present in (
            ('gemini', config.has_gemini),
            ('openai', config.has_openai),
            ('anthropic', config.has_anthropic),
        ) if present
    ]
    if configured:
        return 'ok: ' + ','.join(configured), True
    return 'error: no generation API key', False


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness check endpoint.

    Returns 200 only if the pipeline can run end to end. Provider
    reachability is not checked: each check would cost an API call.
    """
    config = ProviderConfig.from_settings()
    checks = {}
    all_ok = True

    status, ok = check_embedding_provider(config)
    checks['embeddings'] = status
    if not ok:
        all_ok = False

    status, ok = check_generation_provider(config)
    checks['generation'] = status
    if not ok:
        all_ok = False

    if not all_ok:
        logger.warning(f"Readiness check failed: {checks}")

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)
