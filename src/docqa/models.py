"""Domain models shared by ingestion, retrieval and generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

CONTENT_TYPES: frozenset[str] = frozenset(["text", "code", "heading", "list", "table"])


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class DocumentMetadata:
    url: str
    title: str
    content_type: str = "text"
    section: str | None = None
    subsection: str | None = None
    collection: str | None = None
    chunk_index: int = 0
    total_chunks: int = 1
    raw_html: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "content_type": self.content_type,
            "section": self.section,
            "subsection": self.subsection,
            "collection": self.collection,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "raw_html": self.raw_html,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocumentMetadata:
        created = data.get("created_at")
        updated = data.get("updated_at")
        return cls(
            url=str(data["url"]),
            title=str(data["title"]),
            content_type=str(data.get("content_type") or "text"),
            section=data.get("section"),
            subsection=data.get("subsection"),
            collection=data.get("collection"),
            chunk_index=int(data.get("chunk_index", 0)),
            total_chunks=int(data.get("total_chunks", 1)),
            raw_html=data.get("raw_html"),
            created_at=datetime.fromisoformat(created) if created else _now(),
            updated_at=datetime.fromisoformat(updated) if updated else _now(),
        )


@dataclass
class Document:
    """A crawled page as handed to ingestion."""

    url: str
    title: str
    content: str
    raw_html: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorDocument:
    """One embeddable unit (a whole document or one of its chunks)."""

    id: str
    content: str
    embedding: list[float]
    metadata: DocumentMetadata


@dataclass
class SearchResult:
    id: str
    content: str
    metadata: DocumentMetadata
    score: float


@dataclass(frozen=True)
class Citation:
    title: str
    url: str


@dataclass
class RetrievedDoc:
    id: str
    score: float
    excerpt: str


@dataclass
class DebugInfo:
    is_fallback: bool = False
    fallback_reason: str | None = None
    pipeline_stage: str = "initialization"
    processing_time_ms: int = 0
    documents_found: int = 0
    used_mock_embedding: bool = False


@dataclass
class AskResponse:
    answer: str
    summary: str
    citations: list[Citation] = field(default_factory=list)
    retrieved_docs: list[RetrievedDoc] = field(default_factory=list)
    steps: list[str] | None = None
    debug_info: DebugInfo = field(default_factory=DebugInfo)
    issues: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "answer": self.answer,
            "summary": self.summary,
            "citations": [{"title": c.title, "url": c.url} for c in self.citations],
            "retrieved_docs": [
                {"id": d.id, "score": d.score, "excerpt": d.excerpt}
                for d in self.retrieved_docs
            ],
            "debug_info": {
                "is_fallback": self.debug_info.is_fallback,
                "fallback_reason": self.debug_info.fallback_reason,
                "pipeline_stage": self.debug_info.pipeline_stage,
                "processing_time_ms": self.debug_info.processing_time_ms,
                "documents_found": self.debug_info.documents_found,
                "used_mock_embedding": self.debug_info.used_mock_embedding,
            },
            "issues": list(self.issues),
        }
        if self.steps:
            data["steps"] = list(self.steps)
        return data
