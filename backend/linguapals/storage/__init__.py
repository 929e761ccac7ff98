"""Storage module - document store interface and implementations."""

from typing import Any

from .interface import DocumentStore, ArrayUnion, ArrayRemove, DELETE
from .memory_store import MemoryDocumentStore
from .local_storage import LocalDocumentStore
from .blob_storage import BlobStorage, LocalBlobStorage
from .user_storage import UserStorage, UsernameTakenError, init_user_storage, get_user_storage


def create_document_store(config: Any) -> DocumentStore:
    """
    Create the document store selected by ``config.storage_type``.

    Args:
        config: Settings object with storage configuration

    Returns:
        DocumentStore instance
    """
    if config.storage_type == "memory":
        return MemoryDocumentStore()
    elif config.storage_type == "local":
        return LocalDocumentStore(f"{config.local_storage_path}/documents")
    elif config.storage_type == "firestore":
        from .firestore_store import FirestoreDocumentStore
        return FirestoreDocumentStore(project=config.firestore_project)
    else:
        raise ValueError(f"Unsupported storage type: {config.storage_type}")


__all__ = [
    'DocumentStore', 'ArrayUnion', 'ArrayRemove', 'DELETE',
    'MemoryDocumentStore', 'LocalDocumentStore', 'BlobStorage', 'LocalBlobStorage',
    'UserStorage', 'UsernameTakenError', 'init_user_storage', 'get_user_storage',
    'create_document_store',
]
