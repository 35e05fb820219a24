"""Photo intake: storage and vision enrichment of chat photos."""

from .photos import LocalPhotoStorage, PhotoStorage
from .vision import PHOTO_PLACEHOLDER, PhotoIntake, guess_image_mime

__all__ = ["LocalPhotoStorage", "PHOTO_PLACEHOLDER", "PhotoIntake", "PhotoStorage", "guess_image_mime"]
