"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from docqa.adapters.sqlite_store import SqliteVectorStore
from docqa.db.connection import Database
from docqa.db.migrations import run_migrations
from docqa.models import DocumentMetadata, SearchResult, VectorDocument

_ENV_OVERRIDES = (
    "DOCQA_GENERATION_MODEL",
    "DOCQA_EMBEDDING_MODEL",
    "DOCQA_SANDBOX_MODE",
    "DOCQA_STORE_PATH",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep a developer's DOCQA_* variables out of every test."""
    for name in _ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with migrations applied, closed after test."""
    db = Database(tmp_path / ".docqa.db")
    conn = db.connect()
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def sqlite_store(tmp_path):
    """4-dimension SqliteVectorStore in tmp_path."""
    store = SqliteVectorStore(tmp_path / ".docqa.db", 4, "test/model")
    yield store
    store.close()


@pytest.fixture
def make_doc():
    """Factory for VectorDocuments with 4-dimension embeddings."""

    def _make(
        url="https://docs.example.com/a",
        title="Doc A",
        content="alpha content",
        embedding=None,
        doc_id=None,
        **meta,
    ) -> VectorDocument:
        return VectorDocument(
            id=doc_id or url,
            content=content,
            embedding=embedding if embedding is not None else [1.0, 0.0, 0.0, 0.0],
            metadata=DocumentMetadata(url=url, title=title, **meta),
        )

    return _make


@pytest.fixture
def make_result():
    """Factory for SearchResults with a fixed score."""

    def _make(
        title="Student Enrollment",
        url="https://docs.example.com/enrollment",
        content="Enroll a student from the Students page.",
        score=0.82,
        doc_id=None,
        **meta,
    ) -> SearchResult:
        return SearchResult(
            id=doc_id or url,
            content=content,
            metadata=DocumentMetadata(url=url, title=title, **meta),
            score=score,
        )

    return _make
