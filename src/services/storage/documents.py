"""
In-memory document store (for demo purposes and tests).
Set DOCUMENT_DB_PATH to persist documents in SQLite instead.
"""
from datetime import datetime, UTC
from typing import Any, Dict, Optional
from .document_store_base import DocumentStoreBase
from ...models.document import DocumentRecord


class InMemoryDocumentStore(DocumentStoreBase):
    def __init__(self):
        self._documents: Dict[str, DocumentRecord] = {}

    def save_document(self, record: DocumentRecord) -> DocumentRecord:
        """Store a new document"""
        self._documents[record.id] = record
        return record

    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        """Get document by ID"""
        return self._documents.get(document_id)

    def update_document(self, document_id: str, updates: dict[str, Any]) -> Optional[DocumentRecord]:
        """Merge updates into an existing document"""
        existing = self._documents.get(document_id)
        if existing is None:
            return None

        data = existing.model_dump()
        data.update(updates)
        data["id"] = document_id
        data["updated_date"] = datetime.now(UTC).isoformat()
        updated = DocumentRecord.model_validate(data)
        self._documents[document_id] = updated
        return updated

    def delete_document(self, document_id: str) -> bool:
        """Remove a document"""
        return self._documents.pop(document_id, None) is not None

    def list_all(self) -> list[DocumentRecord]:
        """List all documents, newest first"""
        return sorted(self._documents.values(), key=lambda doc: doc.upload_date, reverse=True)


# Global instance (in production, use dependency injection)
document_store = InMemoryDocumentStore()
