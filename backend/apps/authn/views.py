"""
Authentication views.
"""
import logging

from django.contrib.auth import get_user_model
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
            "id": 1,
            "username": "alice"
        }
    """
    user = get_user_model().objects.filter(pk=request.user_id).first()

    return JsonResponse({
        'id': request.user_id,
        'username': user.get_username() if user else None,
    })
