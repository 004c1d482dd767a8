"""Capability contracts consumed by the RAG core, plus shared vector helpers.

The core only talks to three collaborators:

- ``Embedder``     text -> fixed-dimension vector
- ``VectorStore``  vector -> ranked SearchResult list
- ``Generator``    chat messages -> text

``VectorStore`` has two optional capabilities, ``search_with_filters`` and
``hybrid_search``. Callers detect them with ``hasattr`` rather than via the
protocol so that minimal stores stay valid.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from docqa.errors import BATCH_TOO_LARGE, InputError
from docqa.models import SearchResult, VectorDocument

MAX_TEXT_LENGTH = 100_000
MAX_BATCH_SIZE = 1_000


@dataclass
class SearchFilters:
    """Inclusion filters, AND-combined. Empty lists mean "no filter"."""

    content_types: list[str] = field(default_factory=list)
    sections: list[str] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)
    similarity_threshold: float = 0.0

    def is_empty(self) -> bool:
        return not (
            self.content_types
            or self.sections
            or self.collections
            or self.similarity_threshold > 0
        )


def matches_filters(result: SearchResult, filters: SearchFilters) -> bool:
    """Client-side filter check for one search result.

    Threshold and content type are strict. Section and collection only
    exclude a result that carries a value outside the allowed list.
    """
    if result.score < filters.similarity_threshold:
        return False
    meta = result.metadata
    if filters.content_types and meta.content_type not in filters.content_types:
        return False
    if filters.sections and meta.section and meta.section not in filters.sections:
        return False
    if filters.collections and meta.collection and meta.collection not in filters.collections:
        return False
    return True


# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class Embedder(Protocol):
    model: str
    dimensions: int

    async def embed(self, text: str) -> list[float]: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]: ...


@runtime_checkable
class VectorStore(Protocol):
    async def upsert(self, documents: list[VectorDocument]) -> None: ...

    async def search(self, vector: list[float], limit: int) -> list[SearchResult]: ...

    async def count(self) -> int: ...

    async def health(self) -> bool: ...


@runtime_checkable
class Generator(Protocol):
    async def generate(self, messages: list[dict[str, str]], **params: Any) -> str: ...

    def get_model(self) -> str: ...

    def get_max_tokens(self) -> int: ...


# ---------------------------------------------------------------------------
# Vector helpers
# ---------------------------------------------------------------------------


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def l2_normalize(vector: list[float]) -> list[float]:
    """Return *vector* scaled to unit length.

    Raises:
        ValueError: If the vector has zero magnitude.
    """
    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        raise ValueError("Cannot normalize a zero-magnitude vector")
    return [v / magnitude for v in vector]


def validate_text(text: str) -> None:
    """Reject empty or oversized embedding input."""
    if not isinstance(text, str) or not text.strip():
        raise InputError("Text must be a non-empty string")
    if len(text) > MAX_TEXT_LENGTH:
        raise InputError(
            f"Text too long: {len(text)} characters (max {MAX_TEXT_LENGTH})",
            details={"length": len(text)},
        )


def validate_batch(texts: list[str]) -> None:
    """Reject empty or oversized batches, then validate each item."""
    if not texts:
        raise InputError("Batch must contain at least one text")
    if len(texts) > MAX_BATCH_SIZE:
        raise InputError(
            f"Batch too large: {len(texts)} texts (max {MAX_BATCH_SIZE})",
            code=BATCH_TOO_LARGE,
            details={"size": len(texts)},
        )
    for text in texts:
        validate_text(text)


def preprocess_text(text: str) -> str:
    """Collapse runs of whitespace and strip."""
    return " ".join(text.split())
