"""
Embedding service for queries and ingested documents.

Uses the configured LLM client so queries and documents are embedded by the
same model.
"""
import logging
import re
from typing import List, Optional

from django.conf import settings

from apps.rag.llm_client import EmbeddingError, get_llm_client

logger = logging.getLogger(__name__)

# Longest query accepted after whitespace normalization
MAX_QUERY_LENGTH = 2000


class QueryValidationError(Exception):
    """Raised when query validation fails."""
    pass


def normalize_query(query: str) -> str:
    """
    Normalize a user query for embedding.

    - Strip leading/trailing whitespace
    - Collapse multiple whitespace to single space
    - Raise if empty

    Args:
        query: Raw user question

    Returns:
        Normalized query string

    Raises:
        QueryValidationError: If query is empty after normalization
    """
    if not query or not isinstance(query, str):
        raise QueryValidationError("Query cannot be empty")

    # Strip and collapse whitespace
    normalized = re.sub(r'\s+', ' ', query.strip())

    if not normalized:
        raise QueryValidationError("Query cannot be empty")

    if len(normalized) > MAX_QUERY_LENGTH:
        raise QueryValidationError(f"Query too long (max {MAX_QUERY_LENGTH} characters)")

    return normalized


def expected_dimensions() -> int:
    return getattr(settings, 'EMBEDDING_DIMENSIONS', 768)


def embed_text(text: str, model: Optional[str] = None) -> List[float]:
    """
    Generate an embedding vector for a query or document body.

    Args:
        text: Text to embed
        model: Embedding model overriding the configured one

    Returns:
        Embedding vector as list of floats

    Raises:
        EmbeddingError: If the provider fails or returns nothing
    """
    if not text or not text.strip():
        raise EmbeddingError("Cannot generate embedding for empty text")

    embedding = get_llm_client().embed(text, model=model or None)

    # Validate dimension; the store rejects mismatched vectors
    if len(embedding) != expected_dimensions():
        logger.warning(
            f"Embedding dimension mismatch: expected {expected_dimensions()}, "
            f"got {len(embedding)}"
        )

    return embedding
