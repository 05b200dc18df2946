"""Document-to-markdown conversion."""

from .docling import PAGE_BREAK_PLACEHOLDER, DoclingClient, DoclingFormat, format_from_content_type

__all__ = ["PAGE_BREAK_PLACEHOLDER", "DoclingClient", "DoclingFormat", "format_from_content_type"]
