"""
LexRAG - Exception Hierarchy
=============================
Every error raised on purpose by the engine derives from ``LexRAGError``
and carries a ``details`` dict for observability.

``TransientIOError`` marks failures of the two external calls (embedding
model, vector store).  They are never retried internally; the caller
decides whether to retry.  An empty retrieval result is *not* an error.
"""

from __future__ import annotations

from typing import Any


class LexRAGError(Exception):
    """Base exception for all LexRAG errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = dict(details or {})
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(LexRAGError):
    """A required setting (API key, connection string) is missing or unusable."""

    def __init__(self, setting: str, message: str | None = None) -> None:
        super().__init__(message or f"Missing required setting: {setting}", {"setting": setting})


class TransientIOError(LexRAGError):
    """An external I/O call failed or timed out; safe for the caller to retry."""


class EmbeddingError(TransientIOError):
    """The embedding model call failed or returned a malformed response."""


class VectorStoreError(TransientIOError):
    """A vector store read or write failed."""


class IngestionError(LexRAGError):
    """
    A document could not be ingested.

    Ingestion is all-or-nothing per document: when this is raised no chunk
    of the new version has been written.
    """

    def __init__(self, document_id: str, message: str, details: dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        details["document_id"] = document_id
        self.document_id = document_id
        super().__init__(message, details)
