"""Datarooms, their document associations and indexing settings."""
