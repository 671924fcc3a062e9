"""
Authentication and CORS middleware.
"""
import logging
from typing import Optional, Callable
from functools import wraps

from django.conf import settings
from django.http import HttpResponse, JsonResponse, HttpRequest

from .audit import audit_auth_rejected
from .tokens import get_token_cache, TokenCacheError

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
    Decorator that requires a valid access token.

    Resolves the token to its user and attaches the ID to request.user_id.

    Usage:
        @auth_required
        def my_view(request):
            user_id = request.user_id
            ...
    """
    @wraps(view_func)
    def wrapper(request: HttpRequest, *args, **kwargs):
        token = get_token_from_request(request)

        if not token:
            audit_auth_rejected(request, 'missing_token')
            return JsonResponse(
                {'error': 'Authorization header missing or invalid'},
                status=401
            )

        try:
            user_id = get_token_cache().lookup(token)
        except TokenCacheError as e:
            logger.error(f"Token lookup failed: {e}")
            return JsonResponse(
                {'error': 'Authorization service unavailable'},
                status=503
            )

        if user_id is None:
            logger.warning("Access token rejected")
            audit_auth_rejected(request, 'invalid_token')
            return JsonResponse(
                {'error': 'Invalid or expired access token'},
                status=401
            )

        request.user_id = user_id
        logger.debug(f"Authenticated user {user_id}")
        return view_func(request, *args, **kwargs)

    return wrapper


class CorsMiddleware:
    """
    Adds permissive CORS headers and answers preflight requests.
    """

    allow_methods = 'POST, GET, OPTIONS, PUT, DELETE'
    allow_headers = (
        'Accept, Content-Type, Content-Length, Accept-Encoding, '
        'X-CSRF-Token, Authorization'
    )

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        if request.method == 'OPTIONS':
            response = HttpResponse(status=200)
        else:
            response = self.get_response(request)

        response['Access-Control-Allow-Origin'] = getattr(settings, 'CORS_ALLOW_ORIGIN', '*')
        response['Access-Control-Allow-Methods'] = self.allow_methods
        response['Access-Control-Allow-Headers'] = self.allow_headers
        return response
