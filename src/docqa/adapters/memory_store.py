"""In-process VectorStore backed by a dict. Single-process deployments and tests."""

from __future__ import annotations

import logging

from docqa.adapters.base import SearchFilters, cosine_similarity, matches_filters
from docqa.config import StoreCfg
from docqa.errors import INVALID_DOCUMENT, STORE_CAPACITY_EXCEEDED, InputError, RAGError
from docqa.models import SearchResult, VectorDocument

logger = logging.getLogger(__name__)


def validate_document(doc: VectorDocument) -> None:
    """Raise InputError(INVALID_DOCUMENT) if a required field is missing."""
    missing = [
        name
        for name, value in (
            ("id", doc.id),
            ("content", doc.content),
            ("embedding", doc.embedding),
            ("metadata.url", doc.metadata.url if doc.metadata else None),
            ("metadata.title", doc.metadata.title if doc.metadata else None),
        )
        if not value
    ]
    if missing:
        raise InputError(
            f"Document '{doc.id}' is missing required fields: {', '.join(missing)}",
            code=INVALID_DOCUMENT,
            details={"missing": missing},
        )


class InMemoryVectorStore:
    """Brute-force cosine search over documents held in insertion order."""

    def __init__(self, max_documents: int = 10_000) -> None:
        self.max_documents = max_documents
        self._docs: dict[str, VectorDocument] = {}

    @classmethod
    def from_config(cls, cfg: StoreCfg) -> InMemoryVectorStore:
        return cls(max_documents=cfg.max_documents)

    async def upsert(self, documents: list[VectorDocument]) -> None:
        """Insert *documents*, replacing any existing document with the same URL."""
        for doc in documents:
            validate_document(doc)

        incoming_urls = {d.metadata.url for d in documents}
        replaced = [i for i, d in self._docs.items() if d.metadata.url in incoming_urls]
        new_total = len(self._docs) - len(replaced) + len(documents)
        if new_total > self.max_documents:
            raise RAGError(
                f"Store capacity exceeded: {new_total} documents (max {self.max_documents})",
                STORE_CAPACITY_EXCEEDED,
                details={"max_documents": self.max_documents},
            )

        for doc_id in replaced:
            del self._docs[doc_id]
        for doc in documents:
            self._docs[doc.id] = doc
        logger.debug("Upserted %d document(s); %d total", len(documents), len(self._docs))

    async def search(self, vector: list[float], limit: int) -> list[SearchResult]:
        """Return up to *limit* results by descending cosine similarity.

        Documents whose embedding dimension differs from *vector* are skipped.
        Ties keep insertion order (sorted() is stable).
        """
        scored: list[SearchResult] = []
        skipped = 0
        for doc in self._docs.values():
            if len(doc.embedding) != len(vector):
                skipped += 1
                continue
            scored.append(
                SearchResult(
                    id=doc.id,
                    content=doc.content,
                    metadata=doc.metadata,
                    score=cosine_similarity(vector, doc.embedding),
                )
            )
        if skipped:
            logger.warning("Skipped %d document(s) with mismatched embedding dimension", skipped)
        scored.sort(key=lambda r: r.score, reverse=True)
        return scored[:limit]

    async def search_with_filters(
        self, vector: list[float], limit: int, filters: SearchFilters
    ) -> list[SearchResult]:
        results = await self.search(vector, len(self._docs))
        return [r for r in results if matches_filters(r, filters)][:limit]

    async def get_by_url(self, url: str) -> VectorDocument | None:
        for doc in self._docs.values():
            if doc.metadata.url == url:
                return doc
        return None

    async def delete(self, doc_id: str) -> bool:
        return self._docs.pop(doc_id, None) is not None

    async def delete_by_source_url(self, url: str) -> int:
        """Delete the document stored at *url* and every ``url#chunk-N`` part of it."""
        prefix = f"{url}#chunk-"
        stale = [
            doc_id
            for doc_id, doc in self._docs.items()
            if doc.metadata.url == url or doc.metadata.url.startswith(prefix)
        ]
        for doc_id in stale:
            del self._docs[doc_id]
        return len(stale)

    async def count(self) -> int:
        return len(self._docs)

    async def health(self) -> bool:
        return True
