"""VectorStore on SQLite + sqlite-vec, with native filtered and hybrid search.

Layout (see docqa.db):
  documents                 one row per VectorDocument, metadata as JSON
  documents_fts             FTS5 over title + content, rowid-aligned
  vec_documents_{model}     vec0 cosine index, rowid-aligned

Queries run synchronously inside the coroutines; this is local file I/O.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from docqa.adapters.base import SearchFilters, matches_filters
from docqa.adapters.memory_store import validate_document
from docqa.db.connection import Database
from docqa.db.migrations import run_migrations
from docqa.db.repository import Repository
from docqa.db.vectors import ensure_vec_table, model_to_slug, vec_table_dimensions, vec_table_name
from docqa.errors import EMBEDDING_DIMENSION_MISMATCH, ConfigurationError
from docqa.models import SearchResult, VectorDocument

logger = logging.getLogger(__name__)

# Filtered search over-fetches this many candidates per requested result.
_OVERFETCH = 3


class SqliteVectorStore:
    """Persistent vector store for one embedding model.

    Args:
        path: Database file (created if missing) or ":memory:".
        dimensions: Embedding dimension of *model*.
        model: Embedding model name; selects the vec table.

    Raises:
        ConfigurationError: If the vec table for *model* already exists with a
            different dimension.
    """

    def __init__(self, path: Path | str, dimensions: int, model: str) -> None:
        self.dimensions = dimensions
        self.model = model
        self._conn = Database(path).connect()
        run_migrations(self._conn)

        slug = model_to_slug(model)
        existing = vec_table_dimensions(self._conn, vec_table_name(slug))
        if existing is not None and existing != dimensions:
            self._conn.close()
            raise ConfigurationError(
                f"Store at '{path}' indexes {model} with {existing} dimensions, "
                f"but {dimensions} were configured",
                EMBEDDING_DIMENSION_MISMATCH,
                details={"expected": dimensions, "actual": existing, "model": model},
            )
        self._table = ensure_vec_table(self._conn, slug, dimensions)
        self._repo = Repository(self._conn)

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert(self, documents: list[VectorDocument]) -> None:
        """Insert *documents*, replacing existing rows with the same URL."""
        for doc in documents:
            validate_document(doc)
            if len(doc.embedding) != self.dimensions:
                raise ConfigurationError(
                    f"Document '{doc.id}' has {len(doc.embedding)}-dimension embedding, "
                    f"store expects {self.dimensions}",
                    EMBEDDING_DIMENSION_MISMATCH,
                )
        for doc in documents:
            self._repo.upsert_document(doc, self._table)
        logger.debug("Upserted %d document(s) into %s", len(documents), self._table)

    async def delete(self, doc_id: str) -> bool:
        return self._repo.delete_document(doc_id, self._table)

    async def delete_by_source_url(self, url: str) -> int:
        return self._repo.delete_by_source_url(url, self._table)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def count(self) -> int:
        return self._repo.count_documents()

    async def health(self) -> bool:
        self._conn.execute("SELECT 1").fetchone()
        return True

    async def get_by_url(self, url: str) -> VectorDocument | None:
        found = self._repo.get_by_url(url)
        if found is None:
            return None
        rowid, doc_id, content, meta = found
        row = self._conn.execute(
            f"SELECT vec_to_json(embedding) AS e FROM {self._table} WHERE rowid = ?", (rowid,)
        ).fetchone()
        embedding = json.loads(row["e"]) if row else []
        return VectorDocument(id=doc_id, content=content, embedding=embedding, metadata=meta)

    async def search(self, vector: list[float], limit: int) -> list[SearchResult]:
        """Cosine nearest neighbours, best first. Score is 1 - cosine distance."""
        if len(vector) != self.dimensions:
            raise ConfigurationError(
                f"Query vector has {len(vector)} dimensions, store expects {self.dimensions}",
                EMBEDDING_DIMENSION_MISMATCH,
            )
        results: list[SearchResult] = []
        for rowid, distance in self._repo.search_vec(self._table, vector, limit):
            result = self._result(rowid, 1.0 - distance)
            if result is not None:
                results.append(result)
        return results

    async def search_with_filters(
        self, vector: list[float], limit: int, filters: SearchFilters
    ) -> list[SearchResult]:
        candidates = await self.search(vector, limit * _OVERFETCH)
        return [r for r in candidates if matches_filters(r, filters)][:limit]

    async def hybrid_search(
        self,
        vector: list[float],
        text: str,
        limit: int,
        weights: dict[str, float],
    ) -> list[SearchResult]:
        """Blend cosine similarity with max-normalized BM25 relevance.

        ``score = weights["vector"] * similarity + weights["text"] * text_score``
        where text_score is ``-bm25 / max(-bm25)`` over the FTS hits (0 for
        documents the text query did not match).
        """
        vector_weight = weights.get("vector", 0.7)
        text_weight = weights.get("text", 0.3)
        pool = limit * _OVERFETCH

        similarity: dict[int, float] = {
            rowid: 1.0 - distance
            for rowid, distance in self._repo.search_vec(self._table, vector, pool)
        }
        relevance = {rowid: -score for rowid, score in self._repo.search_fts(text, pool)}
        best = max(relevance.values(), default=0.0)
        text_score = {r: (v / best if best > 0 else 0.0) for r, v in relevance.items()}

        for rowid in text_score.keys() - similarity.keys():
            similarity[rowid] = self._similarity(rowid, vector)

        results: list[SearchResult] = []
        for rowid, sim in similarity.items():
            score = vector_weight * sim + text_weight * text_score.get(rowid, 0.0)
            result = self._result(rowid, score)
            if result is not None:
                results.append(result)
        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _result(self, rowid: int, score: float) -> SearchResult | None:
        found = self._repo.get_by_rowid(rowid)
        if found is None:
            return None
        doc_id, content, meta = found
        return SearchResult(id=doc_id, content=content, metadata=meta, score=score)

    def _similarity(self, rowid: int, vector: list[float]) -> float:
        row = self._conn.execute(
            f"SELECT vec_distance_cosine(embedding, vec_f32(?)) AS d FROM {self._table} WHERE rowid = ?",
            (json.dumps(vector), rowid),
        ).fetchone()
        return 1.0 - row["d"] if row else 0.0
