from __future__ import annotations

from yardline.intake.photos import PhotoStorage
from yardline.kernel.errors import NotFoundError


class FakePhotoStorage(PhotoStorage):
    def __init__(self, photos: dict[str, bytes] | None = None):
        self.photos = dict(photos or {})
        self.reads: list[str] = []

    async def read_bytes(self, photo_ref: str) -> bytes:
        self.reads.append(photo_ref)
        if photo_ref not in self.photos:
            raise NotFoundError(message=f"Photo {photo_ref} not found")
        return self.photos[photo_ref]

    async def view_url(self, photo_ref: str, expires_in: int = 300) -> str:
        return f"https://photos.test/{photo_ref}?expires={expires_in}"


def jpeg_bytes(size: int = 40_000) -> bytes:
    """A JPEG-looking payload of the given size."""
    header = b"\xff\xd8\xff\xe0"
    return header + b"\x00" * max(0, size - len(header))
