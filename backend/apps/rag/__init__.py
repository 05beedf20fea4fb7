"""
RAG (Retrieval Augmented Generation) app.

Provides:
- Per-request similarity index over client-supplied documents
- Keyword expansion of the user's question
- Multi-query retrieval with deduplication
- Streamed, source-attributed answers
"""
