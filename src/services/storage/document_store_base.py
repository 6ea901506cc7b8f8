"""
Abstract base class for document store implementations.

Defines the interface that all document stores must implement, enabling
dependency injection and easy swapping of storage backends. Status
filtering, statistics and pruning are built on the abstract operations,
so backends only implement plain key-value access.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, UTC
from typing import Any, Optional
from loguru import logger
from ...models.document import DocumentRecord

STATUS_FILTERS = ("all", "unpaid", "paid", "overdue")


class DocumentStoreBase(ABC):
    """
    Abstract base class for processed-document storage.

    Implementations can use:
    - In-memory storage (for testing/demo)
    - SQLite (for single-instance deployments)
    """

    @abstractmethod
    def save_document(self, record: DocumentRecord) -> DocumentRecord:
        """
        Persist a new document record.

        Args:
            record: Record to store (its ``id`` is the key)

        Returns:
            The stored record
        """
        pass

    @abstractmethod
    def get_document(self, document_id: str) -> Optional[DocumentRecord]:
        """
        Get a document by ID.

        Returns:
            DocumentRecord, or None if not found
        """
        pass

    @abstractmethod
    def update_document(self, document_id: str, updates: dict[str, Any]) -> Optional[DocumentRecord]:
        """
        Merge ``updates`` into a stored document and stamp ``updated_date``.

        Returns:
            Updated record, or None if not found
        """
        pass

    @abstractmethod
    def delete_document(self, document_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was removed, False if not found
        """
        pass

    @abstractmethod
    def list_all(self) -> list[DocumentRecord]:
        """
        List all documents, newest upload first.
        """
        pass

    def mark_paid(self, document_id: str) -> Optional[DocumentRecord]:
        """Set status to paid and record the payment time."""
        return self.update_document(document_id, {"status": "paid", "paid_date": datetime.now(UTC).isoformat()})

    def list_by_status(self, status: str = "all", today: Optional[date] = None) -> list[DocumentRecord]:
        """
        Filter documents by payment status.

        "overdue" means unpaid with a payment due date before ``today``;
        "unpaid" excludes overdue documents.

        Raises:
            ValueError: Unknown status filter
        """
        if status not in STATUS_FILTERS:
            raise ValueError(f"Unknown status filter: {status}")

        documents = self.list_all()
        if status == "all":
            return documents
        return [doc for doc in documents if doc.effective_status(today) == status]

    def stats(self, today: Optional[date] = None) -> dict:
        """Counts per status plus total and average processing cost."""
        documents = self.list_all()
        result = {"total": len(documents), "unpaid": 0, "paid": 0, "overdue": 0, "total_cost": 0.0, "average_cost": 0.0}

        for doc in documents:
            result[doc.effective_status(today)] += 1
            result["total_cost"] += doc.costs.total

        if documents:
            result["average_cost"] = result["total_cost"] / len(documents)
        return result

    def clear_old(self, keep_count: int = 10) -> int:
        """
        Keep only the ``keep_count`` most recent uploads.

        Returns:
            Number of documents removed
        """
        if keep_count < 0:
            raise ValueError("keep_count must be non-negative")

        documents = self.list_all()
        stale = documents[keep_count:]
        for doc in stale:
            self.delete_document(doc.id)

        if stale:
            logger.info("Cleared old documents", removed=len(stale), kept=keep_count)
        return len(stale)
