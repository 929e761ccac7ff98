"""
Blob Storage - binary object storage for audio messages.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import aiofiles

logger = logging.getLogger(__name__)


class BlobStorage(ABC):
    """Abstract contract for storing binary objects under relative paths."""

    @abstractmethod
    async def save(self, path: str, content: bytes) -> bool:
        """
        Save content to the specified path.

        Returns:
            bool: True if save was successful, False otherwise
        """
        pass

    @abstractmethod
    async def load(self, path: str) -> Optional[bytes]:
        """Load content, or None if nothing is stored at ``path``."""
        pass

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """
        Delete the object at ``path``.

        Returns:
            bool: True if deletion was successful, False otherwise
        """
        pass


class LocalBlobStorage(BlobStorage):
    """Blob storage in a directory on the server's filesystem."""

    def __init__(self, base_dir: str = "./data/blobs"):
        self.base_dir = Path(base_dir).resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, path: str) -> Path:
        """Convert relative path to full absolute path within base directory."""
        full_path = (self.base_dir / path).resolve()

        # Security check: ensure path is within base_dir
        if not full_path.is_relative_to(self.base_dir):
            raise ValueError(f"Invalid path: {path} - path traversal detected")

        return full_path

    async def save(self, path: str, content: bytes) -> bool:
        try:
            full_path = self._get_full_path(path)
            full_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(full_path, 'wb') as f:
                await f.write(content)
            return True
        except OSError as e:
            logger.error(f"Error saving blob {path}: {e}")
            return False

    async def load(self, path: str) -> Optional[bytes]:
        try:
            full_path = self._get_full_path(path)
            if not full_path.is_file():
                return None
            async with aiofiles.open(full_path, 'rb') as f:
                return await f.read()
        except OSError as e:
            logger.error(f"Error loading blob {path}: {e}")
            return None

    async def delete(self, path: str) -> bool:
        try:
            full_path = self._get_full_path(path)
            if not full_path.is_file():
                return False
            full_path.unlink()
            return True
        except OSError as e:
            logger.warning(f"Error deleting blob {path}: {e}")
            return False
