"""Shared exceptions, constants and helpers."""
