"""
RAG API views.

Provides endpoints for:
- GET /api/query - Retrieval only (ranked documents, no LLM)
- POST /api/query - Full RAG: retrieve, prompt the LLM, resolve citations
"""
import logging
import json
from typing import Optional

from django.conf import settings
from django.http import JsonResponse
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django.utils.decorators import method_decorator

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_rag_query, audit_chat_turn
from apps.chat.sessions import SessionNotFound, SessionStoreError, SessionValidationError
from apps.rag.embeddings import normalize_query, QueryValidationError
from apps.rag.llm_client import LLMError
from apps.rag.pipeline import answer_query
from apps.rag.retrieval import retrieve, RetrievalError
from apps.rag.store import (
    DocumentStoreError,
    RetrievalBudget,
    SearchValidationError,
)

logger = logging.getLogger(__name__)


class BudgetParameterError(Exception):
    """Raised when topK / maxWords are missing, malformed or combined."""
    pass


def parse_positive_int(value, name: str) -> int:
    """Accept ints and integer strings (query parameters); reject bools."""
    if isinstance(value, bool):
        raise BudgetParameterError(f"{name} must be a positive integer")
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            raise BudgetParameterError(f"{name} must be a positive integer")
    if not isinstance(value, int) or value < 1:
        raise BudgetParameterError(f"{name} must be a positive integer")
    return value


def parse_budget(top_k, max_words, default: RetrievalBudget) -> RetrievalBudget:
    """
    Build the retrieval budget from the request.

    topK selects count mode, maxWords selects word mode. Giving both is an
    error; giving neither uses the endpoint default.
    """
    if top_k is not None and max_words is not None:
        raise BudgetParameterError("Provide either topK or maxWords, not both")
    if top_k is not None:
        return RetrievalBudget.top_k(parse_positive_int(top_k, "topK"))
    if max_words is not None:
        return RetrievalBudget.max_words(parse_positive_int(max_words, "maxWords"))
    return default


def optional_string(body: dict, key: str) -> Optional[str]:
    value = body.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise QueryValidationError(f"{key} must be a string")
    return value.strip() or None


def error_response(message: str, code: str, status: int) -> JsonResponse:
    return JsonResponse({"error": message, "code": code}, status=status)


@method_decorator(csrf_exempt, name='dispatch')
@method_decorator(auth_required, name='dispatch')
class QueryView(View):
    """
    GET /api/query?query=...&topK=5&dataset=notes

    Retrieval only. Returns the ranked documents without calling the LLM.

    Response:
        {
            "responses": [
                {"id": 3, "title": "...", "url": "...", "text": "..."}
            ]
        }

    POST /api/query

    Full RAG pipeline: retrieve + LLM generation + citation links.

    Request body:
        {
            "query": "How do I deploy?",
            "topK": 5,                  // optional, count budget
            "maxWords": 512,            // optional, word budget (default)
            "dataset": "ops",           // optional, default "default"
            "model": "gpt-4o-mini",     // optional, completion model
            "embeddingModel": "...",    // optional, embedding model
            "sessionId": "<uuid>"       // optional, append to a session
        }

    Response:
        {
            "response": "Use the script ([Deploy guide](https://wiki/deploy)).",
            "model": "gpt-4o-mini",
            "sources": [{"id": 3, "title": "...", "url": "...", ...}],
            "sessionId": "<uuid>"       // only when a session was used
        }
    """

    def get(self, request):
        user_id = request.user_id

        query = request.GET.get("query", "")
        try:
            normalize_query(query)
        except QueryValidationError as e:
            return error_response(str(e), "INVALID_QUERY", 400)

        default_top_k = getattr(settings, 'RAG_DEFAULT_TOP_K', 5)
        try:
            budget = parse_budget(
                request.GET.get("topK"),
                request.GET.get("maxWords"),
                RetrievalBudget.top_k(default_top_k),
            )
        except BudgetParameterError as e:
            return error_response(str(e), "INVALID_BUDGET", 400)

        dataset = request.GET.get("dataset") or None

        try:
            candidates = retrieve(query, dataset, user_id, budget)
        except SearchValidationError as e:
            return error_response(str(e), "INVALID_SEARCH", 400)
        except RetrievalError:
            return error_response("Could not get query embedding", "EMBEDDING_FAILED", 503)
        except DocumentStoreError:
            return error_response("Failed to search documents", "STORE_ERROR", 500)

        audit_rag_query(request, len(query), budget.to_dict(), len(candidates))

        return JsonResponse({
            "responses": [
                {
                    "id": c.document_id,
                    "title": c.title,
                    "url": c.url,
                    "text": c.body,
                }
                for c in candidates
            ]
        })

    def post(self, request):
        user_id = request.user_id

        try:
            body = json.loads(request.body)
        except json.JSONDecodeError:
            return error_response("Invalid JSON", "INVALID_JSON", 400)

        if not isinstance(body, dict):
            return error_response("Request body must be a JSON object", "INVALID_JSON", 400)

        query = body.get("query", "")
        try:
            # Validated only; the prompt and transcript keep the text as sent
            normalize_query(query)
            dataset = optional_string(body, "dataset")
            model = optional_string(body, "model")
            embedding_model = optional_string(body, "embeddingModel")
            session_id = optional_string(body, "sessionId")
        except QueryValidationError as e:
            return error_response(str(e), "INVALID_QUERY", 400)

        default_max_words = getattr(settings, 'RAG_MAX_WORDS', 512)
        try:
            budget = parse_budget(
                body.get("topK"),
                body.get("maxWords"),
                RetrievalBudget.max_words(default_max_words),
            )
        except BudgetParameterError as e:
            return error_response(str(e), "INVALID_BUDGET", 400)

        logger.info(
            f"RAG query from user {user_id}: {len(query)} chars, "
            f"budget={budget.mode.value}:{budget.value}"
        )

        try:
            answer = answer_query(
                query,
                user_id,
                budget,
                dataset_name=dataset,
                model=model,
                embedding_model=embedding_model,
                session_id=session_id,
            )
        except (SearchValidationError, SessionValidationError) as e:
            return error_response(str(e), "INVALID_REQUEST", 400)
        except SessionNotFound:
            return error_response("Session not found", "SESSION_NOT_FOUND", 404)
        except RetrievalError:
            return error_response("Could not get query embedding", "EMBEDDING_FAILED", 503)
        except LLMError as e:
            logger.error(f"Completion failed for user {user_id}: {e}")
            return error_response("Language model unavailable", "LLM_UNAVAILABLE", 503)
        except DocumentStoreError:
            return error_response("Failed to search documents", "STORE_ERROR", 500)
        except SessionStoreError:
            return error_response("Failed to save session", "SESSION_STORE_ERROR", 500)

        audit_rag_query(request, len(query), budget.to_dict(), len(answer.candidates))
        if answer.session_id:
            audit_chat_turn(request, answer.session_id, answer.message_count)

        return JsonResponse(answer.to_dict())
