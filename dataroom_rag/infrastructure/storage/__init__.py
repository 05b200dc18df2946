"""Blob storage access."""

from .presigned import PresignedUrlClient

__all__ = ["PresignedUrlClient"]
