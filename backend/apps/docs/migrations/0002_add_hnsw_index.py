"""
Migration to add an HNSW index on documents.embedding for fast L2 search.

PostgreSQL only; the SQLite store ranks in Python and needs no index.
"""
from django.db import migrations


def create_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    schema_editor.execute(
        """
        CREATE INDEX IF NOT EXISTS documents_embedding_hnsw_idx
        ON documents
        USING hnsw (embedding vector_l2_ops)
        WITH (m = 16, ef_construction = 64);
        """
    )


def drop_hnsw_index(apps, schema_editor):
    if schema_editor.connection.vendor != 'postgresql':
        return
    schema_editor.execute('DROP INDEX IF EXISTS documents_embedding_hnsw_idx;')


class Migration(migrations.Migration):

    dependencies = [
        ('docs', '0001_initial'),
    ]

    operations = [
        migrations.RunPython(create_hnsw_index, drop_hnsw_index),
    ]
