# Generated migration for Dataset and Document models

from django.db import migrations, models
import django.db.models.deletion
import pgvector.django


def create_vector_extension(apps, schema_editor):
    if schema_editor.connection.vendor == 'postgresql':
        schema_editor.execute('CREATE EXTENSION IF NOT EXISTS vector')


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.RunPython(create_vector_extension, migrations.RunPython.noop),
        migrations.CreateModel(
            name='Dataset',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('name', models.CharField(help_text='Dataset name, unique per owning user', max_length=255)),
                ('user_id', models.BigIntegerField(db_index=True, help_text='Owning user ID')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
            ],
            options={
                'db_table': 'datasets',
                'ordering': ['user_id', 'name'],
            },
        ),
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('title', models.CharField(max_length=500)),
                ('url', models.CharField(blank=True, default='', max_length=2000)),
                ('body', models.TextField()),
                ('word_count', models.PositiveIntegerField(default=0)),
                ('embedding', pgvector.django.VectorField(dimensions=768)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('dataset', models.ForeignKey(help_text='The dataset this document belongs to', on_delete=django.db.models.deletion.CASCADE, related_name='documents', to='docs.dataset')),
            ],
            options={
                'db_table': 'documents',
                'ordering': ['id'],
            },
        ),
        migrations.AddConstraint(
            model_name='dataset',
            constraint=models.UniqueConstraint(fields=('name', 'user_id'), name='unique_dataset_per_user'),
        ),
        migrations.AddIndex(
            model_name='document',
            index=models.Index(fields=['dataset', 'id'], name='documents_dataset_id_idx'),
        ),
    ]
