"""Typed errors for the docqa RAG pipeline.

Every error carries a stable machine-readable ``code`` plus a human-readable
message. Taxonomy:
  - ConfigurationError  fatal, never retried (dimension mismatch, missing key)
  - InputError          client input rejected immediately (empty/oversized text)
  - RetrievalError      embedding/search failures surfaced by the Retriever
  - GenerationError     exhausted or unexpected generation failures
"""

from __future__ import annotations

from typing import Any

# Retrieval
RETRIEVAL_FAILED = "RETRIEVAL_FAILED"
EMBEDDING_FAILED = "EMBEDDING_FAILED"
HYBRID_RETRIEVAL_FAILED = "HYBRID_RETRIEVAL_FAILED"
SEARCH_TIMEOUT = "SEARCH_TIMEOUT"

# Generation
LLM_GENERATION_FAILED = "LLM_GENERATION_FAILED"
LLM_GENERATION_ERROR = "LLM_GENERATION_ERROR"

# Pipeline
PIPELINE_FAILED = "PIPELINE_FAILED"

# Configuration
EMBEDDING_DIMENSION_MISMATCH = "EMBEDDING_DIMENSION_MISMATCH"
MISSING_API_KEY = "MISSING_API_KEY"
CONFIG_INVALID = "CONFIG_INVALID"

# Client input / storage
INVALID_INPUT = "INVALID_INPUT"
BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
INVALID_DOCUMENT = "INVALID_DOCUMENT"
STORE_CAPACITY_EXCEEDED = "STORE_CAPACITY_EXCEEDED"


class RAGError(Exception):
    """Base error with a stable code and structured details."""

    def __init__(
        self,
        message: str,
        code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ConfigurationError(RAGError):
    """Fatal misconfiguration. Never retried."""


class InputError(RAGError):
    """Malformed client input (empty text, oversized batch)."""

    def __init__(
        self,
        message: str,
        code: str = INVALID_INPUT,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)


class RetrievalError(RAGError):
    """Embedding or vector search failed."""


class GenerationError(RAGError):
    """Text generation failed.

    Attributes:
        attempts: Number of generation attempts made before giving up.
        last_error: The underlying exception of the final attempt, if any.
    """

    def __init__(
        self,
        message: str,
        code: str = LLM_GENERATION_FAILED,
        *,
        attempts: int = 0,
        last_error: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code, details)
        self.attempts = attempts
        self.last_error = last_error
