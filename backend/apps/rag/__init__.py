"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Query and document embedding via the configured LLM provider
- User-scoped, budgeted document retrieval (pgvector or SQLite)
- Prompt composition and LLM completion
- Citation resolution into markdown links
"""
