"""
Blob stores for attachment content.

Attachment rows only hold a storage key. When the purge sweep erases an
attachment row it first asks the blob store to release the content.
"""

import logging
from pathlib import Path
from typing import Protocol, Union

logger = logging.getLogger(__name__)


class BlobStoreError(Exception):
    """Raised when a storage key cannot be mapped to a blob location."""


class BlobStore(Protocol):
    """Interface for attachment content backends."""

    def delete(self, storage_key: str) -> bool:
        """Release a blob. Returns False when nothing was stored under the key."""
        ...


class NullBlobStore:
    """Blob store for deployments that keep no attachment content locally."""

    def delete(self, storage_key: str) -> bool:
        logger.debug(f"No blob store configured, skipping release of {storage_key}")
        return False


class LocalDirectoryBlobStore:
    """Blob store backed by a directory on the local file system."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _resolve_path(self, storage_key: str) -> Path:
        clean_key = storage_key.replace("\\", "/").lstrip("/")
        full_path = (self.root / clean_key).resolve()
        # Keys must stay inside the root directory
        try:
            full_path.relative_to(self.root)
        except ValueError:
            raise BlobStoreError(f"Storage key escapes blob root: {storage_key}")
        return full_path

    def delete(self, storage_key: str) -> bool:
        full_path = self._resolve_path(storage_key)
        if not full_path.is_file():
            return False
        full_path.unlink()
        logger.info(f"Released blob {storage_key}")
        return True
