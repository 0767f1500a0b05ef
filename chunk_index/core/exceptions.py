"""
Exception hierarchy for the chunk index.

Provides layered exception structure for domain-specific errors.
All exceptions include context for observability and debugging.

Dependencies: None (pure domain layer)
System role: Centralized exception handling across the application
"""

from typing import Any


class ChunkIndexError(Exception):
    """Base exception for all chunk index errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """
        Initialize base exception with message and optional context.

        Args:
            message: Human-readable error message
            details: Optional dictionary of additional context for debugging
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation including details."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(ChunkIndexError):
    """Raised for invalid or unknown configuration values. Always fatal."""

    def __init__(
        self,
        message: str,
        setting: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if setting:
            details["setting"] = setting
        super().__init__(message, details)


class ValidationError(ChunkIndexError):
    """Raised when a value is rejected at a persistence or API boundary."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            details: Additional context
        """
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details)


class QueryValidationError(ValidationError):
    """Raised when a search request is malformed (caller error)."""

    pass


class HierarchyError(ValidationError):
    """Raised when a parent assignment would break the hierarchy invariants."""

    def __init__(
        self,
        message: str,
        chunk_id: str | None = None,
        parent_chunk_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if chunk_id:
            details["chunk_id"] = chunk_id
        if parent_chunk_id:
            details["parent_chunk_id"] = parent_chunk_id
        super().__init__(message, field="parent_chunk_id", details=details)


class DocumentProcessingError(ChunkIndexError):
    """Raised when a single document cannot be ingested."""

    def __init__(
        self,
        message: str,
        document_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize document processing error.

        Args:
            message: Error message
            document_id: ID of the document that failed
            details: Additional context
        """
        details = details or {}
        if document_id:
            details["document_id"] = document_id
        super().__init__(message, details)


class EmbeddingError(ChunkIndexError):
    """Raised when one remote embedding call fails."""

    def __init__(
        self,
        message: str,
        embedding_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        if embedding_type:
            details["embedding_type"] = embedding_type
        super().__init__(message, details)


class TransientEmbeddingError(EmbeddingError):
    """Raised for timeouts, rate limiting and dropped connections. Retried."""

    pass


class EmbeddingDimensionError(EmbeddingError):
    """Raised when a returned vector has the wrong length. Never retried."""

    def __init__(
        self,
        expected: int,
        actual: int,
        embedding_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        details = details or {}
        details.update({"expected": expected, "actual": actual})
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}",
            embedding_type=embedding_type,
            details=details,
        )
        self.expected = expected
        self.actual = actual


class StorageError(ChunkIndexError):
    """Raised when the storage layer fails. Aborts the current operation."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize storage error.

        Args:
            message: Error message
            operation: Operation that failed (persist_chunk, query, delete)
            details: Additional context
        """
        details = details or {}
        if operation:
            details["operation"] = operation
        super().__init__(message, details)


class DocumentNotFoundError(ChunkIndexError):
    """Raised when a document cannot be found."""

    def __init__(self, document_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["document_id"] = document_id
        super().__init__(f"Document not found: {document_id}", details)


class ChunkNotFoundError(ChunkIndexError):
    """Raised when a chunk cannot be found."""

    def __init__(self, chunk_id: str, details: dict[str, Any] | None = None) -> None:
        details = details or {}
        details["chunk_id"] = chunk_id
        super().__init__(f"Chunk not found: {chunk_id}", details)


class RetrievalError(ChunkIndexError):
    """Raised when a search fails for reasons other than caller input."""

    pass
