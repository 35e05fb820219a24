"""Photo storage backends."""

from abc import ABC, abstractmethod
from pathlib import Path

import aiofiles

from yardline.config import get_settings
from yardline.kernel.errors import NotFoundError, ValidationError


class PhotoStorage(ABC):
    """Where chat photos live between upload and analysis."""

    @abstractmethod
    async def read_bytes(self, photo_ref: str) -> bytes:
        """Return the raw image bytes for a reference."""

    @abstractmethod
    async def view_url(self, photo_ref: str, expires_in: int = 300) -> str:
        """Return a short-lived URL for displaying the photo."""


class LocalPhotoStorage(PhotoStorage):
    """Photos stored as files under one root directory."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or get_settings().photo_storage_root).resolve()

    def _path_for(self, photo_ref: str) -> Path:
        path = (self.root / photo_ref).resolve()
        if not path.is_relative_to(self.root):
            raise ValidationError(message=f"Photo reference escapes storage root: {photo_ref}")
        return path

    async def read_bytes(self, photo_ref: str) -> bytes:
        path = self._path_for(photo_ref)
        if not path.is_file():
            raise NotFoundError(message=f"Photo {photo_ref} not found")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def view_url(self, photo_ref: str, expires_in: int = 300) -> str:
        return self._path_for(photo_ref).as_uri()
