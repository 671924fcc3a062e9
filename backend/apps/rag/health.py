"""
Health check endpoints for container probes.

- /healthz - Liveness (is process running?)
- /readyz - Readiness (can we serve traffic?)
"""
import logging
from datetime import datetime, timezone

import httpx
from django.http import JsonResponse
from django.views.decorators.http import require_GET
from django.views.decorators.csrf import csrf_exempt

from apps.rag.llm_client import LLMError, get_llm_client
from apps.rag.store import DocumentStoreError, get_document_store

logger = logging.getLogger(__name__)


def get_timestamp() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


@csrf_exempt
@require_GET
def healthz(request):
    """
    Liveness probe endpoint.

    Returns 200 if the Django process is running.
    Does NOT check dependencies - that's for readiness.
    """
    return JsonResponse({
        'status': 'healthy',
        'timestamp': get_timestamp()
    })


def check_database() -> tuple[str, bool]:
    """Check the document store's database."""
    try:
        get_document_store().check()
        return 'ok', True
    except DocumentStoreError as e:
        logger.error(f"Database health check failed: {e}")
        return f'error: {str(e)[:50]}', False


def check_llm() -> tuple[str, bool]:
    """
    Check LLM provider connectivity (optional, degrades gracefully).

    A provider outage shouldn't stop the process from answering probes.
    """
    try:
        if get_llm_client().ping():
            return 'ok', True
        return 'unreachable', True
    except (httpx.HTTPError, LLMError) as e:
        logger.warning(f"LLM health check failed: {e}")
        return f'degraded: {str(e)[:30]}', True


@csrf_exempt
@require_GET
def readyz(request):
    """
    Readiness probe endpoint.

    Returns 200 only if all critical dependencies are reachable.
    """
    checks = {}
    all_ok = True

    # Database (critical)
    status, ok = check_database()
    checks['database'] = status
    if not ok:
        all_ok = False

    # LLM provider (doesn't block readiness)
    status, _ = check_llm()
    checks['llm'] = status

    response_data = {
        'status': 'ready' if all_ok else 'not_ready',
        'timestamp': get_timestamp(),
        'checks': checks
    }

    return JsonResponse(response_data, status=200 if all_ok else 503)
