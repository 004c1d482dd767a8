"""Document seeder: chunk, embed and upsert crawled pages.

For each Document:
1. Split ``content`` with ContentChunker.
2. Embed every chunk (the embedder dimension-checks each vector).
3. Buffer the resulting VectorDocuments and upsert once per batch.

A document that fails is counted and logged; the run continues. A
ConfigurationError (dimension mismatch, missing key) aborts the run since
every later document would fail the same way.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from docqa.adapters.base import Embedder, VectorStore
from docqa.errors import INVALID_DOCUMENT, ConfigurationError, InputError, RAGError
from docqa.ingest.chunker import ContentChunker
from docqa.models import Document, DocumentMetadata, VectorDocument

logger = logging.getLogger(__name__)


@dataclass
class SeedResult:
    documents_processed: int = 0
    chunks_inserted: int = 0
    failed: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)


class DocumentSeeder:
    """Write Documents into a vector store.

    Args:
        embedder: Embedder whose model the store indexes.
        store: Target vector store.
        chunker: ContentChunker; defaults to 4000-character chunks.
        collection: Collection tag written into every chunk's metadata.
        batch_size: Documents per upsert.
    """

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        chunker: ContentChunker | None = None,
        collection: str | None = None,
        batch_size: int = 10,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.chunker = chunker or ContentChunker()
        self.collection = collection
        self.batch_size = max(1, batch_size)

    async def seed(
        self,
        documents: list[Document],
        on_batch: Callable[[int, int], None] | None = None,
    ) -> SeedResult:
        """Seed *documents*; returns counts of processed, inserted and failed.

        Args:
            documents: Crawled pages.
            on_batch: Called with (documents_done, documents_total) after
                each batch is stored.
        """
        start = time.perf_counter()
        result = SeedResult()
        total = len(documents)

        for offset in range(0, total, self.batch_size):
            batch = documents[offset : offset + self.batch_size]
            pending: list[VectorDocument] = []
            sources: list[str] = []

            for doc in batch:
                try:
                    pending.extend(await self.prepare(doc))
                    sources.append(doc.url)
                    result.documents_processed += 1
                except ConfigurationError:
                    raise
                except RAGError as exc:
                    result.failed += 1
                    result.errors.append(f"{doc.url}: [{exc.code}] {exc.message}")
                    logger.warning("Failed to process %s: %s", doc.url, exc.message)

            if pending:
                await self._clear_previous(sources)
                await self.store.upsert(pending)
                result.chunks_inserted += len(pending)
            logger.debug(
                "Batch %d/%d stored (%d chunks)",
                offset // self.batch_size + 1,
                -(-total // self.batch_size),
                len(pending),
            )
            if on_batch is not None:
                on_batch(min(offset + self.batch_size, total), total)

        result.duration_ms = int((time.perf_counter() - start) * 1000)
        logger.info(
            "Seeded %d document(s) as %d chunk(s), %d failed in %d ms",
            result.documents_processed,
            result.chunks_inserted,
            result.failed,
            result.duration_ms,
        )
        return result

    async def prepare(self, doc: Document) -> list[VectorDocument]:
        """Chunk and embed one document into VectorDocuments."""
        if not doc.url or not doc.title:
            raise InputError("Document requires url and title", code=INVALID_DOCUMENT)

        chunks = self.chunker.chunk(doc.content)
        if not chunks:
            raise InputError(f"Document {doc.url} has no content", code=INVALID_DOCUMENT)

        total = len(chunks)
        if total > 1:
            logger.debug("Document %r chunked into %d pieces", doc.title, total)

        vector_docs: list[VectorDocument] = []
        for index, text in enumerate(chunks):
            embedding = await self.embedder.embed(text)
            url, title = doc.url, doc.title
            if total > 1:
                url = f"{doc.url}#chunk-{index}"
                title = f"{doc.title} (Part {index + 1}/{total})"
            metadata = DocumentMetadata(
                url=url,
                title=title,
                content_type=doc.metadata.get("content_type") or "text",
                section=doc.metadata.get("section"),
                subsection=doc.metadata.get("subsection"),
                collection=self.collection or doc.metadata.get("collection"),
                chunk_index=index,
                total_chunks=total,
                raw_html=doc.raw_html,
            )
            vector_docs.append(
                VectorDocument(
                    id=str(uuid.uuid4()), content=text, embedding=embedding, metadata=metadata
                )
            )
        return vector_docs

    async def _clear_previous(self, sources: list[str]) -> None:
        """Drop earlier chunks of re-seeded pages so a shrunken page leaves no stale parts."""
        if not hasattr(self.store, "delete_by_source_url"):
            return
        for url in sources:
            removed = await self.store.delete_by_source_url(url)
            if removed:
                logger.debug("Removed %d stale chunk(s) for %s", removed, url)


def load_documents(path: Path | str) -> list[Document]:
    """Read crawled documents from a JSON file.

    The file holds a list of objects with ``url``, ``title`` and ``content``
    and optional ``raw_html`` and ``metadata``.

    Raises:
        InputError: If the file is not a JSON list of such objects.
    """
    path = Path(path)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InputError(f"{path} is not valid JSON: {exc}") from exc

    if not isinstance(raw, list):
        raise InputError(f"{path} must contain a JSON list of documents")

    documents: list[Document] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict) or not all(k in item for k in ("url", "title", "content")):
            raise InputError(
                f"Entry {i} in {path} needs url, title and content", code=INVALID_DOCUMENT
            )
        documents.append(
            Document(
                url=str(item["url"]),
                title=str(item["title"]),
                content=str(item["content"]),
                raw_html=item.get("raw_html"),
                metadata=dict(item.get("metadata") or {}),
            )
        )
    return documents
