"""
Payment receipt storage.

The core only ever removes receipts (when a registration is deleted); upload
and download belong to the surrounding web layer.
"""
import logging
from pathlib import Path
from typing import Optional, Protocol

from agsuite.core.config import settings

logger = logging.getLogger(__name__)


class ReceiptStorage(Protocol):
    async def delete(self, storage_id: str) -> None:
        """Remove a stored receipt. Raises if the artifact cannot be removed."""
        ...


class LocalReceiptStorage:
    """Receipts stored as files under UPLOAD_DIR, addressed by storage id."""

    def __init__(self, upload_dir: Optional[str] = None):
        self.root = Path(upload_dir or settings.UPLOAD_DIR)

    def _path(self, storage_id: str) -> Path:
        path = (self.root / storage_id).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Invalid storage id: {storage_id}")
        return path

    async def delete(self, storage_id: str) -> None:
        path = self._path(storage_id)
        path.unlink()
        logger.info("Deleted receipt %s", storage_id)
