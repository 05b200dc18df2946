"""Queued, lock-coordinated RAG indexing for datarooms."""
