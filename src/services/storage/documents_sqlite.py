"""
SQLite-based document store.

Persists each processed document as one JSON row keyed by document ID,
with the payment status and upload time kept in their own columns for
filtering and ordering.
"""

import sqlite3
from datetime import datetime, UTC
from typing import Any, Optional
from .document_store_base import DocumentStoreBase
from ...models.document import DocumentRecord


class SQLiteDocumentStore(DocumentStoreBase):
    """
    SQLite-backed document store with persistent storage.

    Features:
    - Persistent storage across application restarts
    - Thread-safe operations (via SQLite's built-in locking)
    """

    def __init__(self, db_path: str = "documents.db"):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: documents.db)
        """
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Create documents table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'unpaid',
                upload_date TEXT NOT NULL,
                CHECK (status IN ('unpaid', 'paid', 'overdue'))
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_documents_upload_date
            ON documents(upload_date)
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def save_document(self, record: DocumentRecord) -> DocumentRecord:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO documents (id, data, status, upload_date)
            VALUES (?, ?, ?, ?)
        """, (record.id, record.model_dump_json(), record.status, record.upload_date))

        conn.commit()
        conn.close()

        return record

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT data FROM documents WHERE id = ?", (document_id,))

        row = cursor.fetchone()
        conn.close()

        if row is None:
            return None
        return DocumentRecord.model_validate_json(row["data"])

    def update_document(self, document_id: str, updates: dict[str, Any]) -> Optional[DocumentRecord]:
        existing = self.get_document(document_id)
        if existing is None:
            return None

        data = existing.model_dump()
        data.update(updates)
        data["id"] = document_id
        data["updated_date"] = datetime.now(UTC).isoformat()
        updated = DocumentRecord.model_validate(data)

        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            UPDATE documents
            SET data = ?,
                status = ?
            WHERE id = ?
        """, (updated.model_dump_json(), updated.status, document_id))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return updated if rows_affected > 0 else None

    def delete_document(self, document_id: str) -> bool:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("DELETE FROM documents WHERE id = ?", (document_id,))

        rows_affected = cursor.rowcount
        conn.commit()
        conn.close()

        return rows_affected > 0

    def list_all(self) -> list[DocumentRecord]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT data
            FROM documents
            ORDER BY upload_date DESC
        """)

        rows = cursor.fetchall()
        conn.close()

        return [DocumentRecord.model_validate_json(row["data"]) for row in rows]
