"""Tests for the document Repository."""

from __future__ import annotations

import pytest

from docqa.db.repository import Repository
from docqa.db.vectors import ensure_vec_table
from docqa.models import DocumentMetadata, VectorDocument


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def vec_table(tmp_db):
    return ensure_vec_table(tmp_db, "test_model", 4)


def _doc(doc_id="d1", url="https://docs.example.com/a", title="Enrollment",
         content="Enroll new students from the Students page.", embedding=None, **meta):
    return VectorDocument(
        id=doc_id,
        content=content,
        embedding=embedding or [1.0, 0.0, 0.0, 0.0],
        metadata=DocumentMetadata(url=url, title=title, **meta),
    )


# ------------------------------------------------------------------
# Documents
# ------------------------------------------------------------------

def test_upsert_document_returns_rowid(repo, vec_table):
    rowid = repo.upsert_document(_doc(), vec_table)
    assert isinstance(rowid, int)
    assert rowid >= 1


def test_get_by_rowid_round_trips_metadata(repo, vec_table):
    rowid = repo.upsert_document(_doc(section="Students", content_type="list"), vec_table)
    doc_id, content, meta = repo.get_by_rowid(rowid)
    assert doc_id == "d1"
    assert content.startswith("Enroll new students")
    assert meta.section == "Students"
    assert meta.content_type == "list"


def test_get_by_rowid_not_found(repo):
    assert repo.get_by_rowid(999) is None


def test_get_by_url(repo, vec_table):
    rowid = repo.upsert_document(_doc(), vec_table)
    found = repo.get_by_url("https://docs.example.com/a")
    assert found is not None
    assert found[0] == rowid
    assert found[1] == "d1"
    assert repo.get_by_url("https://docs.example.com/missing") is None


def test_upsert_same_url_replaces_all_rows(repo, vec_table, tmp_db):
    repo.upsert_document(_doc(doc_id="d1", content="old text"), vec_table)
    repo.upsert_document(_doc(doc_id="d2", content="new text"), vec_table)

    assert repo.count_documents() == 1
    assert tmp_db.execute("SELECT COUNT(*) FROM documents_fts").fetchone()[0] == 1
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 1
    assert repo.get_by_url("https://docs.example.com/a")[1] == "d2"


def test_upsert_same_id_new_url_replaces(repo, vec_table):
    repo.upsert_document(_doc(doc_id="d1", url="https://docs.example.com/old"), vec_table)
    repo.upsert_document(_doc(doc_id="d1", url="https://docs.example.com/new"), vec_table)
    assert repo.count_documents() == 1
    assert repo.get_by_url("https://docs.example.com/old") is None


def test_delete_document(repo, vec_table, tmp_db):
    repo.upsert_document(_doc(), vec_table)
    assert repo.delete_document("d1", vec_table) is True
    assert repo.delete_document("d1", vec_table) is False
    assert repo.count_documents() == 0
    assert tmp_db.execute(f"SELECT COUNT(*) FROM {vec_table}").fetchone()[0] == 0


# ------------------------------------------------------------------
# Vec search
# ------------------------------------------------------------------

def test_search_vec_orders_by_distance(repo, vec_table):
    near = repo.upsert_document(_doc(doc_id="near", url="u-near"), vec_table)
    far = repo.upsert_document(
        _doc(doc_id="far", url="u-far", embedding=[0.0, 1.0, 0.0, 0.0]), vec_table
    )
    hits = repo.search_vec(vec_table, [1.0, 0.0, 0.0, 0.0], limit=2)
    assert [rowid for rowid, _ in hits] == [near, far]
    assert hits[0][1] < hits[1][1]


# ------------------------------------------------------------------
# FTS5 / BM25 search
# ------------------------------------------------------------------

def test_search_fts_matches_terms(repo, vec_table):
    enroll = repo.upsert_document(_doc(doc_id="e", url="u-e"), vec_table)
    repo.upsert_document(
        _doc(doc_id="a", url="u-a", title="Attendance", content="Daily attendance codes."),
        vec_table,
    )
    hits = repo.search_fts("Students, enrollment?", limit=5)
    assert [rowid for rowid, _ in hits] == [enroll]
    assert hits[0][1] < 0  # bm25 is negative, lower is better


def test_search_fts_is_case_insensitive(repo, vec_table):
    rowid = repo.upsert_document(_doc(), vec_table)
    assert [r for r, _ in repo.search_fts("STUDENTS")] == [rowid]


def test_search_fts_punctuation_only_returns_empty(repo, vec_table):
    repo.upsert_document(_doc(), vec_table)
    assert repo.search_fts("?!,.") == []


def test_search_fts_no_match(repo, vec_table):
    repo.upsert_document(_doc(), vec_table)
    assert repo.search_fts("gradebook") == []
