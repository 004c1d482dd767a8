"""Retriever: query embedding, vector search, filtering, context assembly.

retrieve():
  1. Embed the query (timeout-guarded).
  2. Unfiltered nearest-neighbour search over top_k * 3 candidates.
  3. If a filter or a positive threshold is set: use the store's native
     ``search_with_filters`` when present, else filter the candidates
     client-side and truncate to top_k.

Embedding failure raises RetrievalError(EMBEDDING_FAILED) unless the
retriever was built with ``allow_mock_embedding=True`` (sandbox runs), in
which case a random query vector is used and the result is flagged with
``used_mock_embedding``. ConfigurationError is never masked.

Zero results is a valid outcome, logged at WARNING.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from dataclasses import dataclass, field
from typing import Any

from docqa.adapters.base import Embedder, SearchFilters, VectorStore, matches_filters
from docqa.errors import (
    EMBEDDING_FAILED,
    HYBRID_RETRIEVAL_FAILED,
    RETRIEVAL_FAILED,
    SEARCH_TIMEOUT,
    ConfigurationError,
    InputError,
    RAGError,
    RetrievalError,
)
from docqa.log import truncate
from docqa.models import SearchResult

logger = logging.getLogger(__name__)

# Unfiltered search fetches this many candidates per requested result.
_OVERFETCH = 3


@dataclass
class RetrievalOptions:
    """Per-query retrieval options.

    Attributes:
        top_k: Maximum number of results returned.
        similarity_threshold: Minimum cosine score. The low default favours
            recall; deployments usually raise it via config.
        content_types: Keep only these content types.
        sections: Keep only these sections (results without one pass).
        collections: Keep only these collections (results without one pass).
    """

    top_k: int = 10
    similarity_threshold: float = 0.3
    content_types: list[str] = field(default_factory=list)
    sections: list[str] = field(default_factory=list)
    collections: list[str] = field(default_factory=list)

    def filters(self) -> SearchFilters:
        return SearchFilters(
            content_types=list(self.content_types),
            sections=list(self.sections),
            collections=list(self.collections),
            similarity_threshold=self.similarity_threshold,
        )


@dataclass
class RetrievalResult:
    results: list[SearchResult]
    query_embedding: list[float]
    retrieval_time_ms: int
    used_mock_embedding: bool = False


@dataclass
class ContextResult:
    context: str
    used_results: list[SearchResult]
    token_count: int


def estimate_tokens(text: str) -> int:
    """Rough token estimate: 4 characters ≈ 1 token, rounded up."""
    return math.ceil(len(text) / 4)


def format_context_piece(result: SearchResult) -> str:
    """Render one result as a titled block with breadcrumb and source URL."""
    meta = result.metadata
    piece = f"## {meta.title}"
    if meta.section:
        piece += f" - {meta.section}"
    if meta.subsection:
        piece += f" > {meta.subsection}"
    piece += f"\n\n{result.content.strip()}"
    if meta.url:
        piece += f"\n\n**Source**: {meta.url}"
    return piece


class Retriever:
    """Embed queries and search a vector store.

    Args:
        embedder: Query embedder; must match the model the store was seeded with.
        store: Vector store to search.
        allow_mock_embedding: Fall back to a random query vector when
            embedding fails. For sandbox runs without credentials only.
        embed_timeout_s: Upper bound on one embedding call.
        search_timeout_s: Upper bound on one store search call.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        *,
        allow_mock_embedding: bool = False,
        embed_timeout_s: float = 10.0,
        search_timeout_s: float = 10.0,
        rng: random.Random | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.allow_mock_embedding = allow_mock_embedding
        self.embed_timeout_s = embed_timeout_s
        self.search_timeout_s = search_timeout_s
        self._rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Vector retrieval
    # ------------------------------------------------------------------

    async def retrieve(
        self, query: str, options: RetrievalOptions | None = None
    ) -> RetrievalResult:
        """Return up to ``top_k`` results for *query*, best first.

        Raises:
            ConfigurationError: Embedding or store dimension mismatch.
            InputError: Empty or oversized query.
            RetrievalError: EMBEDDING_FAILED, SEARCH_TIMEOUT or RETRIEVAL_FAILED.
        """
        opts = options or RetrievalOptions()
        start = time.perf_counter()
        logger.debug(
            "Retrieving for %r (top_k=%d, threshold=%.2f)",
            truncate(query),
            opts.top_k,
            opts.similarity_threshold,
        )

        try:
            embedding, used_mock = await self._embed_query(query)
            candidates = await self._search(self.store.search(embedding, opts.top_k * _OVERFETCH))

            filters = opts.filters()
            if filters.is_empty():
                results = candidates[: opts.top_k]
            elif hasattr(self.store, "search_with_filters"):
                results = await self._search(
                    self.store.search_with_filters(embedding, opts.top_k, filters)
                )
            else:
                results = [r for r in candidates if matches_filters(r, filters)][: opts.top_k]
        except RAGError:
            raise
        except Exception as exc:
            raise RetrievalError(
                f"Retrieval failed: {exc}",
                RETRIEVAL_FAILED,
                details={"query": truncate(query)},
            ) from exc

        elapsed = int((time.perf_counter() - start) * 1000)
        if results:
            logger.debug(
                "Retrieved %d result(s) in %d ms (scores %.3f..%.3f)",
                len(results),
                elapsed,
                results[0].score,
                results[-1].score,
            )
        else:
            logger.warning(
                "No results for %r (threshold=%.2f, candidates=%d, best=%s, mock_embedding=%s)",
                truncate(query),
                opts.similarity_threshold,
                len(candidates),
                f"{candidates[0].score:.3f}" if candidates else "n/a",
                used_mock,
            )
        return RetrievalResult(
            results=results,
            query_embedding=embedding,
            retrieval_time_ms=elapsed,
            used_mock_embedding=used_mock,
        )

    # ------------------------------------------------------------------
    # Hybrid retrieval
    # ------------------------------------------------------------------

    async def hybrid_retrieve(
        self,
        query: str,
        options: RetrievalOptions | None = None,
        *,
        vector_weight: float = 0.7,
        text_weight: float = 0.3,
    ) -> RetrievalResult:
        """Vector + lexical search when the store supports it, else retrieve().

        Hybrid scores are blended, so the similarity threshold is not applied
        to them; content type, section and collection filters are.

        Raises:
            ConfigurationError, InputError: Propagated unchanged.
            RetrievalError: HYBRID_RETRIEVAL_FAILED for anything else.
        """
        opts = options or RetrievalOptions()
        start = time.perf_counter()
        try:
            if not hasattr(self.store, "hybrid_search"):
                logger.debug("Store has no hybrid search; using vector retrieval")
                return await self.retrieve(query, opts)

            embedding, used_mock = await self._embed_query(query)
            filters = SearchFilters(
                content_types=list(opts.content_types),
                sections=list(opts.sections),
                collections=list(opts.collections),
            )
            limit = opts.top_k if filters.is_empty() else opts.top_k * _OVERFETCH
            hits = await self._search(
                self.store.hybrid_search(
                    embedding, query, limit, {"vector": vector_weight, "text": text_weight}
                )
            )
            results = [r for r in hits if matches_filters(r, filters)][: opts.top_k]
        except (ConfigurationError, InputError):
            raise
        except Exception as exc:
            raise RetrievalError(
                f"Hybrid retrieval failed: {exc}",
                HYBRID_RETRIEVAL_FAILED,
                details={"query": truncate(query)},
            ) from exc

        elapsed = int((time.perf_counter() - start) * 1000)
        logger.debug(
            "Hybrid retrieval returned %d result(s) in %d ms (weights %.2f/%.2f)",
            len(results),
            elapsed,
            vector_weight,
            text_weight,
        )
        return RetrievalResult(
            results=results,
            query_embedding=embedding,
            retrieval_time_ms=elapsed,
            used_mock_embedding=used_mock,
        )

    # ------------------------------------------------------------------
    # Context assembly
    # ------------------------------------------------------------------

    def build_context(self, results: list[SearchResult], max_tokens: int = 4000) -> ContextResult:
        """Greedily pack ranked *results* into a context string.

        Stops at the first result that would push the estimate over
        *max_tokens*, so the used results are always a prefix of *results*.
        """
        parts: list[str] = []
        used: list[SearchResult] = []
        tokens = 0
        for result in results:
            piece = format_context_piece(result)
            piece_tokens = estimate_tokens(piece)
            if tokens + piece_tokens > max_tokens:
                break
            parts.append(piece)
            used.append(result)
            tokens += piece_tokens

        if len(used) < len(results):
            logger.debug(
                "Context budget %d tokens: kept %d of %d result(s)",
                max_tokens,
                len(used),
                len(results),
            )
        return ContextResult(context="\n\n".join(parts), used_results=used, token_count=tokens)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _embed_query(self, query: str) -> tuple[list[float], bool]:
        try:
            embedding = await asyncio.wait_for(
                self.embedder.embed(query), timeout=self.embed_timeout_s
            )
            return embedding, False
        except (ConfigurationError, InputError):
            raise
        except Exception as exc:
            if not self.allow_mock_embedding:
                message = (
                    f"Embedding timed out after {self.embed_timeout_s}s"
                    if isinstance(exc, asyncio.TimeoutError)
                    else f"Query embedding failed: {exc}"
                )
                raise RetrievalError(message, EMBEDDING_FAILED) from exc
            logger.warning(
                "Query embedding failed (%s); using a random %d-dimension vector",
                exc,
                self.embedder.dimensions,
            )
            return self._mock_embedding(), True

    def _mock_embedding(self) -> list[float]:
        return [self._rng.uniform(-1.0, 1.0) for _ in range(self.embedder.dimensions)]

    async def _search(self, call: Any) -> list[SearchResult]:
        try:
            return await asyncio.wait_for(call, timeout=self.search_timeout_s)
        except asyncio.TimeoutError as exc:
            raise RetrievalError(
                f"Vector search timed out after {self.search_timeout_s}s", SEARCH_TIMEOUT
            ) from exc
