"""
Local Filesystem Document Store.
Stores each document as a JSON file on the server's local filesystem:
``<base_dir>/<collection>/<doc_id>.json``.
"""

import json
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from ..core.exceptions import StorageError
from .interface import Document
from .memory_store import MemoryDocumentStore

logger = logging.getLogger(__name__)


class LocalDocumentStore(MemoryDocumentStore):
    """
    Local filesystem document store.

    Locking and change fan-out are inherited from MemoryDocumentStore, so
    atomicity holds for a single server process sharing the directory.
    """

    def __init__(self, base_dir: str = "./data"):
        """
        Initialize local storage with a base directory.

        Args:
            base_dir: Base directory for all stored documents
        """
        super().__init__()
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, collection: str, doc_id: str) -> Path:
        """Map a document key to its JSON file within the base directory."""
        full_path = (self.base_dir / collection / f"{doc_id}.json").resolve()

        # Security check: ensure path is within base_dir
        if not full_path.is_relative_to(self.base_dir):
            raise ValueError(f"Invalid document key: {collection}/{doc_id} - path traversal detected")

        return full_path

    async def _read(self, collection: str, doc_id: str) -> Optional[Document]:
        full_path = self._get_full_path(collection, doc_id)
        if not full_path.exists():
            return None
        try:
            async with aiofiles.open(full_path, 'r', encoding='utf-8') as f:
                return json.loads(await f.read())
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error loading document {collection}/{doc_id}: {e}")
            raise StorageError(f"Could not read {collection}/{doc_id}") from e

    async def _write(self, collection: str, doc_id: str, data: Document) -> None:
        full_path = self._get_full_path(collection, doc_id)
        tmp_path = full_path.with_suffix('.json.tmp')
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            tmp_path.replace(full_path)
        except (OSError, TypeError) as e:
            logger.error(f"Error saving document {collection}/{doc_id}: {e}")
            raise StorageError(f"Could not write {collection}/{doc_id}") from e

    async def _remove(self, collection: str, doc_id: str) -> bool:
        full_path = self._get_full_path(collection, doc_id)
        try:
            if not full_path.exists():
                return False
            full_path.unlink()
            return True
        except OSError as e:
            logger.error(f"Error deleting document {collection}/{doc_id}: {e}")
            raise StorageError(f"Could not delete {collection}/{doc_id}") from e
