"""SQLite-backed store for project documents, chunk text, and chat messages.

Every query is scoped by project_id. List-valued fields (version history)
are JSON-encoded here and nowhere else.
"""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

from projectbrain.models import (
    Chunk,
    MessageRole,
    ProjectDocument,
    StoredMessage,
    VersionHistoryEntry,
)


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None


def _like_pattern(query: str) -> str:
    escaped = query.casefold().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _unembedded_clause(embed_model: str | None) -> tuple[str, tuple]:
    """SQL restricting rows to those without a vector from embed_model."""
    if embed_model is None:
        return "", ()
    return " AND (embed_model IS NULL OR embed_model != ?)", (embed_model,)


class DocStore:
    """Stores documents, chunk text, and messages in SQLite."""

    def __init__(self, db_path: str = "./data/docstore.db"):
        if db_path == ":memory:":
            self.db_path = None
            self._conn = sqlite3.connect(":memory:")
        else:
            self.db_path = Path(db_path)
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.db_path))
        self._conn.row_factory = sqlite3.Row
        # SQLite's LOWER() only folds ASCII.
        self._conn.create_function("casefold", 1, _casefold, deterministic=True)
        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS documents (
                document_id     TEXT PRIMARY KEY,
                project_id      TEXT NOT NULL,
                title           TEXT NOT NULL,
                file_name       TEXT NOT NULL DEFAULT '',
                file_url        TEXT,
                content         TEXT NOT NULL DEFAULT '',
                content_hash    TEXT NOT NULL DEFAULT '',
                version         TEXT NOT NULL DEFAULT '1.0',
                version_history TEXT NOT NULL DEFAULT '[]',
                created_at      TEXT NOT NULL,
                updated_at      TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_doc_project ON documents(project_id);
            CREATE INDEX IF NOT EXISTS idx_doc_hash ON documents(project_id, content_hash);

            CREATE TABLE IF NOT EXISTS chunks (
                chunk_id      TEXT PRIMARY KEY,
                project_id    TEXT NOT NULL,
                document_id   TEXT NOT NULL,
                document_name TEXT NOT NULL DEFAULT '',
                idx           INTEGER NOT NULL,
                text          TEXT NOT NULL,
                content_hash  TEXT,
                start_char    INTEGER NOT NULL DEFAULT 0,
                end_char      INTEGER NOT NULL DEFAULT 0,
                embed_model   TEXT,
                created_at    TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_chunk_doc ON chunks(project_id, document_id);

            CREATE TABLE IF NOT EXISTS messages (
                message_id  TEXT PRIMARY KEY,
                project_id  TEXT NOT NULL,
                session_id  TEXT,
                role        TEXT NOT NULL,
                content     TEXT NOT NULL,
                created_by  TEXT,
                embed_model TEXT,
                created_at  TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_msg_project ON messages(project_id);
        """)
        self._conn.commit()

    # -- Documents -----------------------------------------------------------

    def upsert_document(self, doc: ProjectDocument) -> None:
        """Insert or replace a document record."""
        self._conn.execute(
            """
            INSERT OR REPLACE INTO documents
                (document_id, project_id, title, file_name, file_url, content,
                 content_hash, version, version_history, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                doc.document_id,
                doc.project_id,
                doc.title,
                doc.file_name,
                doc.file_url,
                doc.content,
                doc.content_hash,
                doc.version,
                json.dumps([e.model_dump(mode="json") for e in doc.version_history]),
                doc.created_at.isoformat(),
                doc.updated_at.isoformat(),
            ),
        )
        self._conn.commit()

    def get_document(self, project_id: str, document_id: str) -> ProjectDocument | None:
        """Fetch a document by ID within a project."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE project_id = ? AND document_id = ?",
            (project_id, document_id),
        ).fetchone()
        return self._row_to_doc(row) if row else None

    def find_document_by_hash(self, project_id: str, content_hash: str) -> ProjectDocument | None:
        """Fetch the first document in a project with the given fingerprint."""
        row = self._conn.execute(
            "SELECT * FROM documents WHERE project_id = ? AND content_hash = ? LIMIT 1",
            (project_id, content_hash),
        ).fetchone()
        return self._row_to_doc(row) if row else None

    def list_documents(self, project_id: str) -> list[ProjectDocument]:
        """List a project's documents, newest first."""
        rows = self._conn.execute(
            "SELECT * FROM documents WHERE project_id = ? ORDER BY created_at DESC",
            (project_id,),
        ).fetchall()
        return [self._row_to_doc(r) for r in rows]

    def delete_document(self, project_id: str, document_id: str) -> None:
        self._conn.execute(
            "DELETE FROM documents WHERE project_id = ? AND document_id = ?",
            (project_id, document_id),
        )
        self._conn.commit()

    # -- Chunks --------------------------------------------------------------

    def insert_chunks(self, chunks: list[Chunk]) -> None:
        """Insert chunk records."""
        self._conn.executemany(
            """
            INSERT OR REPLACE INTO chunks
                (chunk_id, project_id, document_id, document_name, idx, text,
                 content_hash, start_char, end_char, embed_model, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    c.chunk_id,
                    c.project_id,
                    c.document_id,
                    c.document_name,
                    c.chunk_index,
                    c.text,
                    c.content_hash,
                    c.start_char,
                    c.end_char,
                    c.embed_model,
                    c.created_at.isoformat(),
                )
                for c in chunks
            ],
        )
        self._conn.commit()

    def has_chunks(self, project_id: str, document_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM chunks WHERE project_id = ? AND document_id = ? LIMIT 1",
            (project_id, document_id),
        ).fetchone()
        return row is not None

    def get_chunk_hash(self, project_id: str, document_id: str) -> str | None:
        """Return the content hash the document's chunks were built from."""
        row = self._conn.execute(
            "SELECT content_hash FROM chunks WHERE project_id = ? AND document_id = ? LIMIT 1",
            (project_id, document_id),
        ).fetchone()
        return row["content_hash"] if row else None

    def get_chunks_for_doc(self, project_id: str, document_id: str) -> list[Chunk]:
        """Get all chunks for a document, ordered by index."""
        rows = self._conn.execute(
            "SELECT * FROM chunks WHERE project_id = ? AND document_id = ? ORDER BY idx",
            (project_id, document_id),
        ).fetchall()
        return [self._row_to_chunk(r) for r in rows]

    def delete_doc_chunks(self, project_id: str, document_id: str) -> int:
        """Delete all chunks for a document. Returns the number deleted."""
        cur = self._conn.execute(
            "DELETE FROM chunks WHERE project_id = ? AND document_id = ?",
            (project_id, document_id),
        )
        self._conn.commit()
        return cur.rowcount

    def search_chunks_text(
        self,
        project_id: str,
        query: str,
        limit: int = 20,
        *,
        unembedded_for: str | None = None,
    ) -> list[Chunk]:
        """Case-insensitive substring search over chunk text, newest first.

        With ``unembedded_for`` only chunks lacking a vector from that model
        are searched.
        """
        clause, extra = _unembedded_clause(unembedded_for)
        rows = self._conn.execute(
            f"""
            SELECT * FROM chunks
            WHERE project_id = ? AND casefold(text) LIKE ? ESCAPE '\\'{clause}
            ORDER BY created_at DESC, idx
            LIMIT ?
            """,
            (project_id, _like_pattern(query), *extra, limit),
        ).fetchall()
        return [self._row_to_chunk(r) for r in rows]

    # -- Messages ------------------------------------------------------------

    def insert_message(self, message: StoredMessage) -> None:
        self._conn.execute(
            """
            INSERT INTO messages
                (message_id, project_id, session_id, role, content, created_by,
                 embed_model, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.project_id,
                message.session_id,
                message.role.value,
                message.content,
                message.created_by,
                message.embed_model,
                message.created_at.isoformat(),
            ),
        )
        self._conn.commit()

    def list_messages(self, project_id: str, session_id: str | None = None) -> list[StoredMessage]:
        """List messages oldest first, optionally for a single session."""
        if session_id is None:
            rows = self._conn.execute(
                "SELECT * FROM messages WHERE project_id = ? ORDER BY created_at",
                (project_id,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM messages WHERE project_id = ? AND session_id = ? ORDER BY created_at",
                (project_id, session_id),
            ).fetchall()
        return [self._row_to_message(r) for r in rows]

    def search_messages_text(
        self,
        project_id: str,
        query: str,
        limit: int = 30,
        *,
        unembedded_for: str | None = None,
    ) -> list[StoredMessage]:
        """Case-insensitive substring search over message content, newest first."""
        clause, extra = _unembedded_clause(unembedded_for)
        rows = self._conn.execute(
            f"""
            SELECT * FROM messages
            WHERE project_id = ? AND casefold(content) LIKE ? ESCAPE '\\'{clause}
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (project_id, _like_pattern(query), *extra, limit),
        ).fetchall()
        return [self._row_to_message(r) for r in rows]

    # -- Project-wide --------------------------------------------------------

    def counts(self, project_id: str) -> dict:
        """Message, chunk, embedded-chunk and distinct indexed document counts."""
        messages = self._conn.execute(
            "SELECT COUNT(*) AS c FROM messages WHERE project_id = ?", (project_id,)
        ).fetchone()["c"]
        row = self._conn.execute(
            """
            SELECT COUNT(*) AS chunks,
                   COUNT(embed_model) AS embedded,
                   COUNT(DISTINCT document_id) AS docs
            FROM chunks WHERE project_id = ?
            """,
            (project_id,),
        ).fetchone()
        return {
            "message_count": messages,
            "chunk_count": row["chunks"],
            "embedded_chunk_count": row["embedded"],
            "document_count": row["docs"],
        }

    def clear_project_memory(self, project_id: str) -> None:
        """Delete every chunk and message of a project (documents are kept)."""
        self._conn.execute("DELETE FROM chunks WHERE project_id = ?", (project_id,))
        self._conn.execute("DELETE FROM messages WHERE project_id = ?", (project_id,))
        self._conn.commit()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        self._conn.close()

    # -- Helpers -------------------------------------------------------------

    @staticmethod
    def _row_to_doc(row: sqlite3.Row) -> ProjectDocument:
        return ProjectDocument(
            document_id=row["document_id"],
            project_id=row["project_id"],
            title=row["title"],
            file_name=row["file_name"],
            file_url=row["file_url"],
            content=row["content"],
            content_hash=row["content_hash"],
            version=row["version"],
            version_history=[
                VersionHistoryEntry.model_validate(e)
                for e in json.loads(row["version_history"])
            ],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_chunk(row: sqlite3.Row) -> Chunk:
        return Chunk(
            chunk_id=row["chunk_id"],
            project_id=row["project_id"],
            document_id=row["document_id"],
            document_name=row["document_name"],
            chunk_index=row["idx"],
            text=row["text"],
            content_hash=row["content_hash"],
            start_char=row["start_char"],
            end_char=row["end_char"],
            embed_model=row["embed_model"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> StoredMessage:
        return StoredMessage(
            message_id=row["message_id"],
            project_id=row["project_id"],
            session_id=row["session_id"],
            role=MessageRole(row["role"]),
            content=row["content"],
            created_by=row["created_by"],
            embed_model=row["embed_model"],
            created_at=row["created_at"],
        )
