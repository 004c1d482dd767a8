"""Repository for docqa document storage.

Single interface for: documents, FTS5 search, vec embeddings.
Vec tables are model-managed (ensure_vec_table); repository handles read + write.
"""

from __future__ import annotations

import json
import re
import sqlite3

from docqa.models import DocumentMetadata, VectorDocument


class Repository:
    """Data access layer over an open sqlite3.Connection.

    The connection is owned by the caller and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def upsert_document(self, doc: VectorDocument, vec_table: str) -> int:
        """Insert *doc*, replacing any row with the same URL or id.

        Writes the documents row, its FTS5 entry and its embedding in one
        transaction. Returns the new rowid.
        """
        meta = doc.metadata
        with self._conn:
            for row in self._conn.execute(
                "SELECT rowid FROM documents WHERE url = ? OR id = ?", (meta.url, doc.id)
            ).fetchall():
                self._delete_rowid(row["rowid"], vec_table)

            cur = self._conn.execute(
                """
                INSERT INTO documents (id, url, title, content, metadata)
                VALUES (?, ?, ?, ?, ?)
                """,
                (doc.id, meta.url, meta.title, doc.content, json.dumps(meta.to_dict())),
            )
            rowid = cur.lastrowid
            # Keep FTS5 in sync with explicit rowid mapping
            self._conn.execute(
                "INSERT INTO documents_fts(rowid, title, content) VALUES (?, ?, ?)",
                (rowid, meta.title, doc.content),
            )
            self._conn.execute(
                f"INSERT INTO {vec_table}(rowid, embedding) VALUES (?, ?)",
                (rowid, json.dumps(doc.embedding)),
            )
        return rowid

    def get_by_rowid(self, rowid: int) -> tuple[str, str, DocumentMetadata] | None:
        """Return (id, content, metadata) for *rowid*, or None."""
        row = self._conn.execute(
            "SELECT id, content, metadata FROM documents WHERE rowid = ?", (rowid,)
        ).fetchone()
        if row is None:
            return None
        return row["id"], row["content"], DocumentMetadata.from_dict(json.loads(row["metadata"]))

    def get_by_url(self, url: str) -> tuple[int, str, str, DocumentMetadata] | None:
        """Return (rowid, id, content, metadata) for *url*, or None."""
        row = self._conn.execute(
            "SELECT rowid, id, content, metadata FROM documents WHERE url = ?", (url,)
        ).fetchone()
        if row is None:
            return None
        return (
            row["rowid"],
            row["id"],
            row["content"],
            DocumentMetadata.from_dict(json.loads(row["metadata"])),
        )

    def delete_document(self, doc_id: str, vec_table: str) -> bool:
        """Delete a document with its FTS and vec rows. Returns True if it existed."""
        row = self._conn.execute(
            "SELECT rowid FROM documents WHERE id = ?", (doc_id,)
        ).fetchone()
        if row is None:
            return False
        with self._conn:
            self._delete_rowid(row["rowid"], vec_table)
        return True

    def delete_by_source_url(self, url: str, vec_table: str) -> int:
        """Delete the row at *url* and every ``url#chunk-N`` row. Returns the count."""
        prefix = f"{url}#chunk-"
        rows = self._conn.execute(
            "SELECT rowid FROM documents WHERE url = ? OR substr(url, 1, ?) = ?",
            (url, len(prefix), prefix),
        ).fetchall()
        with self._conn:
            for row in rows:
                self._delete_rowid(row["rowid"], vec_table)
        return len(rows)

    def count_documents(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]

    def _delete_rowid(self, rowid: int, vec_table: str) -> None:
        self._conn.execute("DELETE FROM documents_fts WHERE rowid = ?", (rowid,))
        self._conn.execute(f"DELETE FROM {vec_table} WHERE rowid = ?", (rowid,))
        self._conn.execute("DELETE FROM documents WHERE rowid = ?", (rowid,))

    # ------------------------------------------------------------------
    # Vec search
    # ------------------------------------------------------------------

    def search_vec(
        self, table: str, embedding: list[float], limit: int = 10
    ) -> list[tuple[int, float]]:
        """Nearest-neighbour search. Returns (rowid, distance) sorted by distance."""
        rows = self._conn.execute(
            f"SELECT rowid, distance FROM {table} WHERE embedding MATCH ? ORDER BY distance LIMIT ?",
            (json.dumps(embedding), limit),
        ).fetchall()
        return [(r["rowid"], r["distance"]) for r in rows]

    # ------------------------------------------------------------------
    # FTS5 / BM25 search
    # ------------------------------------------------------------------

    def search_fts(self, query: str, limit: int = 10) -> list[tuple[int, float]]:
        """BM25 full-text search. Returns (rowid, score) sorted best-first.

        bm25() returns negative values; lower (more negative) = better match.
        """
        # FTS5 MATCH rejects punctuation like commas as syntax errors.
        terms = re.sub(r"[^\w\s]", " ", query).lower().split()
        if not terms:
            return []
        fts_query = " OR ".join(f'"{t}"' for t in terms)
        rows = self._conn.execute(
            "SELECT rowid, bm25(documents_fts) AS score FROM documents_fts "
            "WHERE documents_fts MATCH ? ORDER BY score LIMIT ?",
            (fts_query, limit),
        ).fetchall()
        return [(r["rowid"], r["score"]) for r in rows]
