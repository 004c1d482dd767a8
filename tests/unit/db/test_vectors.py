"""Tests for per-model sqlite-vec virtual tables."""

from __future__ import annotations

import json

import pytest

from docqa.db.vectors import (
    ensure_vec_table,
    model_to_slug,
    vec_table_dimensions,
    vec_table_name,
)


# --- model_to_slug ---

@pytest.mark.parametrize("model,expected", [
    ("openai/text-embedding-3-small", "openai_text_embedding_3_small"),
    ("cohere/embed-english-v3.0", "cohere_embed_english_v3_0"),
    ("local/hash", "local_hash"),
])
def test_model_to_slug(model, expected):
    assert model_to_slug(model) == expected


def test_vec_table_name():
    assert vec_table_name("local_hash") == "vec_documents_local_hash"


# --- ensure_vec_table ---

def test_ensure_vec_table_creates_table(tmp_db):
    table = ensure_vec_table(tmp_db, "local_hash", dimensions=8)
    assert table == "vec_documents_local_hash"
    assert vec_table_dimensions(tmp_db, table) == 8


def test_ensure_vec_table_idempotent(tmp_db):
    assert ensure_vec_table(tmp_db, "local_hash", 8) == ensure_vec_table(tmp_db, "local_hash", 8)


def test_vec_table_dimensions_missing_table(tmp_db):
    assert vec_table_dimensions(tmp_db, "vec_documents_nothing") is None


def test_ensure_vec_table_uses_cosine_distance(tmp_db):
    table = ensure_vec_table(tmp_db, "local_hash", 2)
    tmp_db.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (1, ?)", (json.dumps([1.0, 0.0]),))
    tmp_db.execute(f"INSERT INTO {table}(rowid, embedding) VALUES (2, ?)", (json.dumps([0.0, 3.0]),))
    rows = tmp_db.execute(
        f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? ORDER BY distance LIMIT 2",
        (json.dumps([2.0, 0.0]),),
    ).fetchall()
    assert [r["rowid"] for r in rows] == [1, 2]
    assert rows[0]["distance"] == pytest.approx(0.0, abs=1e-6)
    assert rows[1]["distance"] == pytest.approx(1.0, abs=1e-6)


@pytest.mark.parametrize("slug", ["Bad-Slug", "drop table", ""])
def test_ensure_vec_table_rejects_invalid_slug(tmp_db, slug):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, slug, 8)


def test_ensure_vec_table_rejects_zero_dimensions(tmp_db):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, "local_hash", 0)
