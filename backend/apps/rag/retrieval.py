"""
Retrieval service for RAG queries.

Embeds the user's query and runs a user-scoped, budgeted similarity search
against the configured document store.
"""
import logging
from typing import List, Optional

from apps.docs.models import DEFAULT_DATASET_NAME
from apps.rag.embeddings import embed_text
from apps.rag.llm_client import EmbeddingError
from apps.rag.store import (
    BaseDocumentStore,
    RetrievalBudget,
    RetrievalCandidate,
    get_document_store,
)

logger = logging.getLogger(__name__)


class RetrievalError(Exception):
    """Raised when the query could not be embedded."""
    pass


def retrieve(
    query_text: str,
    dataset_name: Optional[str],
    user_id: int,
    budget: RetrievalBudget,
    model: Optional[str] = None,
    store: Optional[BaseDocumentStore] = None,
) -> List[RetrievalCandidate]:
    """
    Retrieve the documents most relevant to a query.

    Holds no state of its own, so concurrent calls are independent.

    Args:
        query_text: Normalized query text
        dataset_name: Dataset to search; "default" when empty
        user_id: Authenticated user the search is scoped to
        budget: Count or word budget
        model: Embedding model override
        store: Document store; the configured one when omitted

    Returns:
        Ranked candidates, possibly empty

    Raises:
        RetrievalError: The embedding provider failed (not retried)
        SearchValidationError, DocumentStoreError: From the store, unchanged
    """
    dataset_name = dataset_name or DEFAULT_DATASET_NAME
    store = store or get_document_store()

    try:
        query_vector = embed_text(query_text, model=model)
    except EmbeddingError as e:
        logger.error(f"Query embedding failed: {e}")
        raise RetrievalError(f"Could not generate query embedding: {e}") from e

    logger.debug(f"Query embedding generated: {len(query_vector)} dimensions")

    return store.search(query_vector, dataset_name, user_id, budget)
