from loguru import logger
from .document_store_base import DocumentStoreBase
from .documents import InMemoryDocumentStore, document_store
from .documents_sqlite import SQLiteDocumentStore
from ...core.config import settings

_store: DocumentStoreBase | None = None


def get_document_store() -> DocumentStoreBase:
    """SQLite store when DOCUMENT_DB_PATH is set, otherwise the in-memory store."""
    global _store
    if _store is None:
        if settings.document_db_path:
            logger.info("Using SQLite document store", db_path=settings.document_db_path)
            _store = SQLiteDocumentStore(settings.document_db_path)
        else:
            _store = document_store
    return _store


__all__ = [
    "DocumentStoreBase",
    "InMemoryDocumentStore",
    "SQLiteDocumentStore",
    "document_store",
    "get_document_store",
]
