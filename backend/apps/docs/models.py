"""
Dataset and Document models for the knowledge base.

A dataset is a named partition of one user's documents. Documents carry
their embedding vector and are never updated after ingestion.
"""
from django.db import models
from pgvector.django import VectorField

# Column size of Document.embedding; must match EMBEDDING_DIMENSIONS in production
EMBEDDING_COLUMN_DIMENSIONS = 768

DEFAULT_DATASET_NAME = 'default'


def count_words(text: str) -> int:
    """Whitespace-delimited token count used by the word budget."""
    return len(text.split())


class Dataset(models.Model):
    """
    A named collection of documents owned by a single user.

    The (name, user_id) pair is the identity key; two users may both own a
    dataset called "notes" without ever seeing each other's documents.
    """
    name = models.CharField(
        max_length=255,
        help_text="Dataset name, unique per owning user"
    )

    # Numeric ID of the authenticated user that owns this dataset
    user_id = models.BigIntegerField(
        db_index=True,
        help_text="Owning user ID"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'datasets'
        ordering = ['user_id', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['name', 'user_id'],
                name='unique_dataset_per_user'
            )
        ]

    def __str__(self):
        return f"{self.name} (user {self.user_id})"


class Document(models.Model):
    """
    An ingested document with its embedding vector.

    IDs are assigned by the database on insert and are the values the LLM
    cites with [citation]<id>[/citation] markers.
    """
    dataset = models.ForeignKey(
        Dataset,
        on_delete=models.CASCADE,
        related_name='documents',
        help_text="The dataset this document belongs to"
    )

    title = models.CharField(max_length=500)
    url = models.CharField(max_length=2000, blank=True, default='')
    body = models.TextField()

    # Cached at insert time so the word budget never re-tokenizes bodies
    word_count = models.PositiveIntegerField(default=0)

    embedding = VectorField(dimensions=EMBEDDING_COLUMN_DIMENSIONS)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'documents'
        ordering = ['id']
        indexes = [
            models.Index(fields=['dataset', 'id'], name='documents_dataset_id_idx'),
        ]

    def __str__(self):
        return f"Document {self.id}: {self.title}"
