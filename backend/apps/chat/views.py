"""
Conversational chat view.

POST /api/chat - Continue (or start) a session without retrieval.
"""
import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_chat_turn
from apps.rag.embeddings import normalize_query, QueryValidationError
from apps.rag.llm_client import LLMError, LLMMessage, get_llm_client
from .models import MessageRole
from .sessions import (
    SessionNotFound,
    SessionStoreError,
    SessionValidationError,
    get_or_create_session,
    record_turn,
    session_messages,
)

logger = logging.getLogger(__name__)


@csrf_exempt
@require_http_methods(["POST"])
@auth_required
def chat(request):
    """
    Send the session's transcript plus a new user message to the LLM.

    POST /api/chat

    Request body:
        {
            "query": "And how do I roll back?",
            "sessionId": "<uuid>",      // optional, a new session when absent
            "model": "gpt-4o-mini"      // optional
        }

    Response:
        {"sessionId": "<uuid>", "response": "..."}
    """
    user_id = request.user_id

    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON', 'code': 'INVALID_JSON'}, status=400)

    if not isinstance(data, dict):
        return JsonResponse(
            {'error': 'Request body must be a JSON object', 'code': 'INVALID_JSON'},
            status=400
        )

    query = data.get('query', '')
    try:
        normalize_query(query)
    except QueryValidationError as e:
        return JsonResponse({'error': str(e), 'code': 'INVALID_QUERY'}, status=400)

    session_id = data.get('sessionId') or None
    model = data.get('model') or None
    if session_id is not None and not isinstance(session_id, str):
        return JsonResponse(
            {'error': 'sessionId must be a string', 'code': 'INVALID_SESSION'},
            status=400
        )
    if model is not None and not isinstance(model, str):
        return JsonResponse({'error': 'model must be a string', 'code': 'INVALID_QUERY'}, status=400)

    try:
        session = get_or_create_session(session_id, user_id, model or '')
    except SessionValidationError as e:
        return JsonResponse({'error': str(e), 'code': 'INVALID_SESSION'}, status=400)
    except SessionNotFound:
        return JsonResponse({'error': 'Session not found', 'code': 'SESSION_NOT_FOUND'}, status=404)
    except SessionStoreError:
        return JsonResponse(
            {'error': 'Failed to retrieve session', 'code': 'SESSION_STORE_ERROR'},
            status=500
        )

    messages = session_messages(session)
    messages.append(LLMMessage(role=MessageRole.USER.value, content=query))

    try:
        reply = get_llm_client().chat(messages, model=model)
    except LLMError as e:
        logger.error(f"Chat completion failed for session {session.id}: {e}")
        return JsonResponse(
            {'error': 'Language model unavailable', 'code': 'LLM_UNAVAILABLE'},
            status=503
        )

    try:
        record_turn(session, query, reply.content)
    except SessionStoreError:
        return JsonResponse(
            {'error': 'Failed to save session', 'code': 'SESSION_STORE_ERROR'},
            status=500
        )

    audit_chat_turn(request, str(session.id), len(session.messages))

    return JsonResponse({
        'sessionId': str(session.id),
        'response': reply.content,
    })
