"""
Document ingestion views.

Provides endpoints for:
- POST /api/documents - Embed and store one document
- POST /api/bulk/documents - Embed and store several documents at once
"""
import json
import logging

from django.conf import settings
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods
from django.views.decorators.csrf import csrf_exempt

from apps.authn.middleware import auth_required
from apps.authn.audit import audit_documents_added
from apps.rag.embeddings import embed_text
from apps.rag.llm_client import EmbeddingError
from apps.rag.store import DocumentStoreError, DocumentValidationError, get_document_store
from .models import DEFAULT_DATASET_NAME

logger = logging.getLogger(__name__)


def parse_document_payload(data) -> dict:
    """
    Validate one document object from a request body.

    Returns:
        Dict with title, url, body and dataset

    Raises:
        DocumentValidationError: Missing or mistyped fields
    """
    if not isinstance(data, dict):
        raise DocumentValidationError("Each document must be a JSON object")

    title = data.get('title')
    body = data.get('body')
    url = data.get('url') or ''
    dataset = data.get('dataset') or DEFAULT_DATASET_NAME

    if not isinstance(title, str) or not title.strip():
        raise DocumentValidationError("title is required")
    if not isinstance(body, str) or not body.strip():
        raise DocumentValidationError("body is required")
    if not isinstance(url, str):
        raise DocumentValidationError("url must be a string")
    if not isinstance(dataset, str):
        raise DocumentValidationError("dataset must be a string")

    return {
        'title': title.strip(),
        'url': url.strip(),
        'body': body,
        'dataset': dataset.strip() or DEFAULT_DATASET_NAME,
    }


def document_response(document) -> dict:
    return {
        'id': document.id,
        'title': document.title,
        'url': document.url,
        'dataset': document.dataset.name,
        'wordCount': document.word_count,
    }


@csrf_exempt
@require_http_methods(["POST"])
@auth_required
def add_document(request):
    """
    Add a document to one of the user's datasets.

    POST /api/documents

    Request body:
        {
            "title": "Deploy guide",
            "url": "https://wiki/deploy",   // optional
            "body": "To deploy ...",
            "dataset": "ops"                 // optional, default "default"
        }

    Returns 201 with the stored document's id and dataset.
    """
    user_id = request.user_id

    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON', 'code': 'INVALID_JSON'}, status=400)

    try:
        payload = parse_document_payload(data)
    except DocumentValidationError as e:
        return JsonResponse({'error': str(e), 'code': 'INVALID_DOCUMENT'}, status=400)

    # The embedding is computed before anything is written
    try:
        embedding = embed_text(payload['body'])
    except EmbeddingError as e:
        logger.error(f"Could not get document embedding: {e}")
        return JsonResponse(
            {'error': 'Could not get document embedding', 'code': 'EMBEDDING_FAILED'},
            status=503
        )

    try:
        document = get_document_store().add_document(
            user_id=user_id,
            dataset_name=payload['dataset'],
            title=payload['title'],
            body=payload['body'],
            embedding=embedding,
            url=payload['url'],
        )
    except DocumentValidationError as e:
        logger.error(f"Embedding rejected by the store: {e}")
        return JsonResponse({'error': str(e), 'code': 'INVALID_EMBEDDING'}, status=500)
    except DocumentStoreError:
        return JsonResponse(
            {'error': 'Failed to add document', 'code': 'STORE_ERROR'},
            status=500
        )

    audit_documents_added(request, [document.id], [payload['dataset']])

    return JsonResponse(document_response(document), status=201)


@csrf_exempt
@require_http_methods(["POST"])
@auth_required
def add_documents_bulk(request):
    """
    Add several documents in one request.

    POST /api/bulk/documents

    Request body:
        {
            "documents": [
                {"title": "...", "body": "...", "url": "...", "dataset": "..."},
                ...
            ]
        }

    Every document is embedded first; then all are stored in one
    transaction. Any failure stores nothing.
    """
    user_id = request.user_id

    try:
        data = json.loads(request.body)
    except json.JSONDecodeError:
        return JsonResponse({'error': 'Invalid JSON', 'code': 'INVALID_JSON'}, status=400)

    items = data.get('documents') if isinstance(data, dict) else None
    if not isinstance(items, list) or not items:
        return JsonResponse(
            {'error': 'documents must be a non-empty list', 'code': 'INVALID_DOCUMENT'},
            status=400
        )

    max_documents = getattr(settings, 'MAX_BULK_DOCUMENTS', 100)
    if len(items) > max_documents:
        return JsonResponse(
            {
                'error': f'Too many documents. Maximum is {max_documents} per request',
                'code': 'TOO_MANY_DOCUMENTS',
            },
            status=400
        )

    try:
        payloads = [parse_document_payload(item) for item in items]
    except DocumentValidationError as e:
        return JsonResponse({'error': str(e), 'code': 'INVALID_DOCUMENT'}, status=400)

    try:
        for payload in payloads:
            payload['embedding'] = embed_text(payload['body'])
    except EmbeddingError as e:
        logger.error(f"Could not get document embedding: {e}")
        return JsonResponse(
            {'error': 'Could not get document embedding', 'code': 'EMBEDDING_FAILED'},
            status=503
        )

    try:
        documents = get_document_store().add_documents(user_id, payloads)
    except DocumentValidationError as e:
        logger.error(f"Embedding rejected by the store: {e}")
        return JsonResponse({'error': str(e), 'code': 'INVALID_EMBEDDING'}, status=500)
    except DocumentStoreError:
        return JsonResponse(
            {'error': 'Failed to add documents', 'code': 'STORE_ERROR'},
            status=500
        )

    audit_documents_added(
        request,
        [document.id for document in documents],
        [payload['dataset'] for payload in payloads],
    )

    return JsonResponse(
        {'documents': [document_response(document) for document in documents]},
        status=201
    )
