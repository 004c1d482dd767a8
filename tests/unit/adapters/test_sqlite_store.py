"""Tests for SqliteVectorStore (sqlite-vec + FTS5)."""

from __future__ import annotations

import pytest

from docqa.adapters.base import SearchFilters
from docqa.adapters.sqlite_store import SqliteVectorStore
from docqa.errors import EMBEDDING_DIMENSION_MISMATCH, ConfigurationError, InputError

_E1 = [1.0, 0.0, 0.0, 0.0]
_E2 = [0.0, 1.0, 0.0, 0.0]


# ------------------------------------------------------------------
# Setup
# ------------------------------------------------------------------


def test_reopen_with_same_dimensions(tmp_path):
    SqliteVectorStore(tmp_path / "store.db", 4, "test/model").close()
    SqliteVectorStore(tmp_path / "store.db", 4, "test/model").close()


def test_reopen_with_different_dimensions_raises(tmp_path):
    SqliteVectorStore(tmp_path / "store.db", 4, "test/model").close()
    with pytest.raises(ConfigurationError) as exc_info:
        SqliteVectorStore(tmp_path / "store.db", 8, "test/model")
    assert exc_info.value.code == EMBEDDING_DIMENSION_MISMATCH
    assert exc_info.value.details["actual"] == 4


def test_other_model_gets_its_own_table(tmp_path):
    SqliteVectorStore(tmp_path / "store.db", 4, "test/model").close()
    SqliteVectorStore(tmp_path / "store.db", 8, "other/model").close()


def test_in_memory_store():
    store = SqliteVectorStore(":memory:", 4, "test/model")
    store.close()


# ------------------------------------------------------------------
# upsert / lookup
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_upsert_and_get_by_url(sqlite_store, make_doc):
    await sqlite_store.upsert(
        [make_doc(url="u1", title="Enrollment", section="Students", collection="admin")]
    )

    stored = await sqlite_store.get_by_url("u1")

    assert stored is not None
    assert stored.id == "u1"
    assert stored.metadata.title == "Enrollment"
    assert stored.metadata.section == "Students"
    assert stored.metadata.collection == "admin"
    assert stored.embedding == pytest.approx(_E1)


@pytest.mark.asyncio
async def test_upsert_replaces_same_url(sqlite_store, make_doc):
    await sqlite_store.upsert([make_doc(url="u1", doc_id="old", content="old")])
    await sqlite_store.upsert([make_doc(url="u1", doc_id="new", content="new")])

    assert await sqlite_store.count() == 1
    stored = await sqlite_store.get_by_url("u1")
    assert stored.id == "new"
    assert stored.content == "new"


@pytest.mark.asyncio
async def test_delete_by_source_url_removes_page_and_parts(sqlite_store, make_doc):
    await sqlite_store.upsert(
        [
            make_doc(url="u1#chunk-0", content="first part"),
            make_doc(url="u1#chunk-1", content="second part"),
            make_doc(url="u10", content="other page"),
        ]
    )

    assert await sqlite_store.delete_by_source_url("u1") == 2
    assert await sqlite_store.count() == 1
    assert await sqlite_store.get_by_url("u10") is not None
    assert sqlite_store._repo.search_fts("part") == []


@pytest.mark.asyncio
async def test_upsert_rejects_wrong_dimension(sqlite_store, make_doc):
    with pytest.raises(ConfigurationError) as exc_info:
        await sqlite_store.upsert([make_doc(embedding=[1.0, 0.0])])
    assert exc_info.value.code == EMBEDDING_DIMENSION_MISMATCH
    assert await sqlite_store.count() == 0


@pytest.mark.asyncio
async def test_upsert_rejects_invalid_document(sqlite_store, make_doc):
    with pytest.raises(InputError):
        await sqlite_store.upsert([make_doc(content="")])


@pytest.mark.asyncio
async def test_delete(sqlite_store, make_doc):
    await sqlite_store.upsert([make_doc(url="u1", doc_id="d1")])
    assert await sqlite_store.delete("d1") is True
    assert await sqlite_store.delete("d1") is False
    assert await sqlite_store.get_by_url("u1") is None


@pytest.mark.asyncio
async def test_health(sqlite_store):
    assert await sqlite_store.health() is True


# ------------------------------------------------------------------
# search
# ------------------------------------------------------------------


@pytest.mark.asyncio
async def test_search_scores_are_cosine_similarity(sqlite_store, make_doc):
    await sqlite_store.upsert(
        [make_doc(url="a", embedding=_E1), make_doc(url="b", embedding=_E2)]
    )

    results = await sqlite_store.search(_E1, limit=2)

    assert [r.metadata.url for r in results] == ["a", "b"]
    assert results[0].score == pytest.approx(1.0, abs=1e-5)
    assert results[1].score == pytest.approx(0.0, abs=1e-5)


@pytest.mark.asyncio
async def test_search_rejects_wrong_dimension(sqlite_store):
    with pytest.raises(ConfigurationError):
        await sqlite_store.search([1.0, 0.0], limit=1)


@pytest.mark.asyncio
async def test_search_empty_store(sqlite_store):
    assert await sqlite_store.search(_E1, limit=5) == []


@pytest.mark.asyncio
async def test_search_with_filters(sqlite_store, make_doc):
    await sqlite_store.upsert(
        [
            make_doc(url="a", embedding=_E1, content_type="table"),
            make_doc(url="b", embedding=[0.9, 0.1, 0.0, 0.0], content_type="text"),
        ]
    )

    results = await sqlite_store.search_with_filters(
        _E1, 5, SearchFilters(content_types=["text"], similarity_threshold=0.5)
    )

    assert [r.metadata.url for r in results] == ["b"]


@pytest.mark.asyncio
async def test_hybrid_search_blends_text_relevance(sqlite_store, make_doc):
    await sqlite_store.upsert(
        [
            make_doc(url="enroll", title="Enrollment", content="Enrollment of new students", embedding=_E1),
            make_doc(url="attend", title="Attendance", content="Attendance codes", embedding=_E2),
        ]
    )

    results = await sqlite_store.hybrid_search(
        _E2, "enrollment", 2, {"vector": 0.3, "text": 0.7}
    )

    assert [r.metadata.url for r in results] == ["enroll", "attend"]
    assert results[0].score == pytest.approx(0.7, abs=1e-4)
    assert results[1].score == pytest.approx(0.3, abs=1e-4)


@pytest.mark.asyncio
async def test_hybrid_search_without_text_match_is_vector_only(sqlite_store, make_doc):
    await sqlite_store.upsert([make_doc(url="a", embedding=_E1)])

    results = await sqlite_store.hybrid_search(_E1, "?!", 3, {"vector": 0.7, "text": 0.3})

    assert len(results) == 1
    assert results[0].score == pytest.approx(0.7, abs=1e-4)
