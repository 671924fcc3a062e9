"""
Document store: scoped vector similarity search with retrieval budgets.

Two variants share one contract and are selected once at startup:
- PgVectorDocumentStore: PostgreSQL + pgvector, ranking and the running word
  sum are computed by the database.
- SQLiteDocumentStore: any Django database; scoped rows are ranked in Python
  with numpy and the word budget is accumulated client-side.

Every search is scoped to exactly one (dataset name, user) pair. Documents of
another user are never read, even when dataset names collide.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from itertools import islice
from typing import Iterable, List, Optional, Sequence

import numpy as np
from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F, Sum, Window
from django.db.models.expressions import RowRange
from pgvector.django import L2Distance

from apps.docs.models import Dataset, Document, count_words

logger = logging.getLogger(__name__)


class SearchValidationError(Exception):
    """Raised when search arguments are rejected before querying."""
    pass


class DocumentValidationError(Exception):
    """Raised when a document cannot be ingested as given."""
    pass


class DocumentStoreError(Exception):
    """Raised when the backing database fails."""
    pass


class BudgetMode(str, Enum):
    """How much retrieved text a search may return."""
    COUNT = 'count'  # at most N documents
    WORDS = 'words'  # at most N cumulative body words


@dataclass(frozen=True)
class RetrievalBudget:
    """A retrieval budget: a mode plus its positive limit."""
    mode: BudgetMode
    value: int

    @classmethod
    def top_k(cls, limit: int) -> 'RetrievalBudget':
        return cls(BudgetMode.COUNT, limit)

    @classmethod
    def max_words(cls, limit: int) -> 'RetrievalBudget':
        return cls(BudgetMode.WORDS, limit)

    def to_dict(self) -> dict:
        return {"mode": self.mode.value, "value": self.value}


@dataclass
class RetrievalCandidate:
    """A document ranked against one query vector."""
    document_id: int
    title: str
    url: str
    body: str
    word_count: int
    distance: float  # Euclidean distance, lower = more similar
    rank: int  # 1-based position in the ranked result

    def to_prompt_dict(self) -> dict:
        """Fields the LLM sees; the id is what it cites."""
        return {
            "id": self.document_id,
            "title": self.title,
            "url": self.url,
            "body": self.body,
        }

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict (excludes body for response size)."""
        return {
            "id": self.document_id,
            "title": self.title,
            "url": self.url,
            "wordCount": self.word_count,
            "distance": round(self.distance, 4),
            "rank": self.rank,
        }


def take_within_word_budget(
    ranked: Iterable[RetrievalCandidate],
    max_words: int,
) -> List[RetrievalCandidate]:
    """
    Keep ranked candidates while the inclusive running word count fits.

    The top-ranked candidate is always kept, even when it alone exceeds the
    budget. Word counts are non-negative, so the running sum never drops back
    under the limit once exceeded and accumulation stops there.
    """
    selected = []
    total = 0
    for candidate in ranked:
        total += candidate.word_count
        if selected and total > max_words:
            break
        selected.append(candidate)
    return selected


class BaseDocumentStore(ABC):
    """Capability shared by every store: scoped search and ingestion."""

    name = 'base'

    def __init__(self, dimensions: Optional[int] = None):
        self.dimensions = dimensions or getattr(settings, 'EMBEDDING_DIMENSIONS', 768)

    def validate_vector(self, vector: Optional[Sequence[float]], what: str = "Query vector") -> None:
        if vector is None or len(vector) == 0:
            raise SearchValidationError(f"{what} cannot be empty")
        if len(vector) != self.dimensions:
            raise SearchValidationError(
                f"{what} has {len(vector)} dimensions, expected {self.dimensions}"
            )

    def validate_budget(self, budget: RetrievalBudget) -> None:
        if not isinstance(budget, RetrievalBudget):
            raise SearchValidationError("A retrieval budget is required")
        if not isinstance(budget.mode, BudgetMode):
            raise SearchValidationError(f"Unknown budget mode: {budget.mode!r}")
        if isinstance(budget.value, bool) or not isinstance(budget.value, int):
            raise SearchValidationError("Budget must be an integer")
        if budget.value <= 0:
            if budget.mode is BudgetMode.WORDS:
                raise SearchValidationError("Maximum word count must be greater than zero")
            raise SearchValidationError("Limit must be greater than zero")

    def search(
        self,
        query_vector: Sequence[float],
        dataset_name: str,
        user_id: int,
        budget: RetrievalBudget,
    ) -> List[RetrievalCandidate]:
        """
        Rank the documents of one user's dataset against a query vector.

        Args:
            query_vector: Embedding of the query
            dataset_name: Dataset to search, resolved together with user_id
            user_id: Owning user; no other user's documents are considered
            budget: Count or word budget bounding the result

        Returns:
            Candidates ordered by ascending distance, ties by insertion order.
            An unknown dataset yields an empty list.

        Raises:
            SearchValidationError: Bad arguments (no database access happens)
            DocumentStoreError: The database failed; no partial result
        """
        self.validate_vector(query_vector)
        self.validate_budget(budget)
        if user_id is None:
            raise SearchValidationError("Search must be scoped to a user")
        if not dataset_name:
            raise SearchValidationError("Dataset name cannot be empty")

        try:
            dataset = Dataset.objects.filter(name=dataset_name, user_id=user_id).first()
            if dataset is None:
                logger.info(f"Dataset '{dataset_name}' not found for user {user_id}")
                return []

            candidates = self._search(dataset, list(query_vector), budget)
        except DatabaseError as e:
            logger.error(f"Document search failed: {e}")
            raise DocumentStoreError("Failed to search documents") from e

        logger.info(
            f"Retrieved {len(candidates)} documents from dataset '{dataset_name}' "
            f"for user {user_id} (budget={budget.mode.value}:{budget.value}, store={self.name})"
        )
        return candidates

    @abstractmethod
    def _search(
        self,
        dataset: Dataset,
        query_vector: List[float],
        budget: RetrievalBudget,
    ) -> List[RetrievalCandidate]:
        """Rank the dataset's documents and apply the budget."""
        pass

    def check(self) -> None:
        """Raise DocumentStoreError if the backing database is unreachable."""
        try:
            Dataset.objects.exists()
        except DatabaseError as e:
            raise DocumentStoreError(str(e)) from e

    # -------------------------------------------------------------------------
    # Ingestion (write path)
    # -------------------------------------------------------------------------

    def _build_document(
        self,
        dataset: Dataset,
        title: str,
        body: str,
        embedding: Sequence[float],
        url: str = '',
    ) -> Document:
        return Document(
            dataset=dataset,
            title=title,
            url=url or '',
            body=body,
            word_count=count_words(body),
            embedding=list(embedding),
        )

    def validate_document(self, title: str, body: str, embedding: Sequence[float]) -> None:
        if not title or not title.strip():
            raise DocumentValidationError("Title cannot be empty")
        if not body or not body.strip():
            raise DocumentValidationError("Body cannot be empty")
        try:
            self.validate_vector(embedding, what="Document vector")
        except SearchValidationError as e:
            raise DocumentValidationError(str(e))

    def add_document(
        self,
        user_id: int,
        dataset_name: str,
        title: str,
        body: str,
        embedding: Sequence[float],
        url: str = '',
    ) -> Document:
        """
        Store a document, creating the user's dataset on first use.

        Raises:
            DocumentValidationError: Missing fields or wrong vector size
            DocumentStoreError: The database failed
        """
        self.validate_document(title, body, embedding)

        try:
            with transaction.atomic():
                dataset, created = Dataset.objects.get_or_create(
                    name=dataset_name,
                    user_id=user_id,
                )
                if created:
                    logger.info(f"Created dataset '{dataset_name}' for user {user_id}")
                document = self._build_document(dataset, title, body, embedding, url)
                document.save()
        except DatabaseError as e:
            logger.error(f"Failed to insert document: {e}")
            raise DocumentStoreError("Failed to add document") from e

        logger.info(f"Document created: {document.id} in dataset '{dataset_name}'")
        return document

    def add_documents(self, user_id: int, items: List[dict]) -> List[Document]:
        """
        Store several pre-embedded documents in one transaction.

        Each item carries title, body, embedding, dataset and optional url.
        Either every document is stored or none is.
        """
        for item in items:
            self.validate_document(item.get('title'), item.get('body'), item.get('embedding'))

        documents = []
        try:
            with transaction.atomic():
                datasets = {}
                for item in items:
                    name = item['dataset']
                    if name not in datasets:
                        datasets[name], _ = Dataset.objects.get_or_create(name=name, user_id=user_id)
                    document = self._build_document(
                        datasets[name], item['title'], item['body'], item['embedding'], item.get('url', ''),
                    )
                    document.save()
                    documents.append(document)
        except DatabaseError as e:
            logger.error(f"Failed to insert documents: {e}")
            raise DocumentStoreError("Failed to add documents") from e

        logger.info(f"Created {len(documents)} documents for user {user_id}")
        return documents


class PgVectorDocumentStore(BaseDocumentStore):
    """
    PostgreSQL store using pgvector's Euclidean distance operator (<->).

    The word budget is a windowed running sum over the ranked rows:

        SUM(word_count) OVER (ORDER BY embedding <-> q, id
                              ROWS BETWEEN UNBOUNDED PRECEDING AND CURRENT ROW)
    """

    name = 'pgvector'

    def ranked_queryset(self, dataset, query_vector):
        """The dataset's documents, nearest first, ties by insertion order."""
        return (
            Document.objects
            .filter(dataset=dataset)
            .defer('embedding')
            .annotate(distance=L2Distance('embedding', query_vector))
            .order_by('distance', 'id')
        )

    def word_budget_queryset(self, ranked, query_vector, max_words: int):
        """Rows of `ranked` whose running word sum stays within max_words."""
        running_words = Window(
            expression=Sum('word_count'),
            order_by=[L2Distance('embedding', query_vector).asc(), F('id').asc()],
            frame=RowRange(start=None, end=0),
        )
        return (
            ranked
            .annotate(running_words=running_words)
            .filter(running_words__lte=max_words)
        )

    def _search(self, dataset, query_vector, budget):
        ranked = self.ranked_queryset(dataset, query_vector)

        if budget.mode is BudgetMode.COUNT:
            rows = list(ranked[:budget.value])
        else:
            rows = list(self.word_budget_queryset(ranked, query_vector, budget.value))
            if not rows:
                # The top document alone exceeds the budget; it is still returned
                rows = list(ranked[:1])

        return [
            RetrievalCandidate(
                document_id=doc.id,
                title=doc.title,
                url=doc.url,
                body=doc.body,
                word_count=doc.word_count,
                distance=float(doc.distance),
                rank=rank,
            )
            for rank, doc in enumerate(rows, 1)
        ]


class SQLiteDocumentStore(BaseDocumentStore):
    """
    Store for databases without vector support.

    Loads the scoped rows, ranks them with numpy and applies the budget on the
    ranked stream. Suitable for development and small datasets.
    """

    name = 'sqlite'

    def _search(self, dataset, query_vector, budget):
        rows = list(
            Document.objects
            .filter(dataset=dataset)
            .order_by('id')
            .values_list('id', 'title', 'url', 'body', 'word_count', 'embedding')
        )
        if not rows:
            return []

        query = np.asarray(query_vector, dtype=np.float32)
        try:
            matrix = np.vstack([np.asarray(row[5], dtype=np.float32) for row in rows])
            distances = np.linalg.norm(matrix - query, axis=1)
        except ValueError as e:
            raise DocumentStoreError(f"Stored vectors do not match the query: {e}") from e

        # Stable sort keeps insertion (id) order between equal distances
        order = np.argsort(distances, kind='stable')

        ranked = (
            RetrievalCandidate(
                document_id=rows[i][0],
                title=rows[i][1],
                url=rows[i][2],
                body=rows[i][3],
                word_count=rows[i][4],
                distance=float(distances[i]),
                rank=rank,
            )
            for rank, i in enumerate(order, 1)
        )

        if budget.mode is BudgetMode.COUNT:
            return list(islice(ranked, budget.value))
        return take_within_word_budget(ranked, budget.value)


# =============================================================================
# Store Factory
# =============================================================================

STORE_CLASSES = {
    PgVectorDocumentStore.name: PgVectorDocumentStore,
    SQLiteDocumentStore.name: SQLiteDocumentStore,
}

_store_instance: Optional[BaseDocumentStore] = None


def get_document_store() -> BaseDocumentStore:
    """
    Get the document store selected by the DOCUMENT_STORE setting.

    The store holds no per-request state and is shared by all requests.
    """
    global _store_instance

    if _store_instance is not None:
        return _store_instance

    kind = getattr(settings, 'DOCUMENT_STORE', 'sqlite').lower()
    store_class = STORE_CLASSES.get(kind)
    if store_class is None:
        raise DocumentStoreError(f"Unknown DOCUMENT_STORE: {kind}")

    logger.info(f"Using {kind} document store")
    _store_instance = store_class()
    return _store_instance


def reset_document_store():
    """Reset the cached store instance. Useful for testing."""
    global _store_instance
    _store_instance = None
