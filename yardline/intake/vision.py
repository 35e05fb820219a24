"""
Photo Intake

A photo enters the batch as a "Photo" placeholder. Enrichment reads the
image, asks the vision tier what vehicle it shows, resolves the plate it
read against the yard and overwrites the placeholder, provided the batch
has not been released in the meantime.
"""

import asyncio

import structlog

from yardline.batching.batcher import ConversationBatcher
from yardline.config import Settings, get_settings
from yardline.kernel.errors import YardlineError
from yardline.kernel.text import compact_rego
from yardline.llm import get_llm_service
from yardline.llm.prompts import VEHICLE_PHOTO_SYSTEM_PROMPT
from yardline.llm.schemas import VehiclePhotoAnalysis
from yardline.matching.resolver import EntityResolver, MatchDecision

from .photos import PhotoStorage

logger = structlog.get_logger()

PHOTO_PLACEHOLDER = "Photo"
NO_IMAGE_TEXT = "Photo analysis: (no image detected)"
FAILED_TEXT = "Photo analysis: (analysis failed)"

_EXTENSION_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "heic": "image/heic",
}


def guess_image_mime(data: bytes, filename: str = "") -> str:
    """Sniff the image type from magic bytes, then the extension; default JPEG."""
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"GIF8":
        return "image/gif"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return _EXTENSION_MIME.get(extension, "image/jpeg")


async def analyze_vehicle_photo(
    image: bytes, mime_type: str, timeout: float | None = None
) -> VehiclePhotoAnalysis:
    llm = get_llm_service()
    analysis, _ = await asyncio.wait_for(
        llm.complete_vision_structured(
            instructions=VEHICLE_PHOTO_SYSTEM_PROMPT,
            image=image,
            mime_type=mime_type,
            output_schema=VehiclePhotoAnalysis,
            node_name="vision",
        ),
        timeout=timeout,
    )
    return analysis


def describe_photo(analysis: VehiclePhotoAnalysis, rego: str = "", note: str = "") -> str:
    parts = [p for p in (analysis.make, analysis.model, analysis.color_description) if p]
    if rego:
        parts.append(f"Rego {rego}{note}")
    text = f"Photo analysis: {' '.join(parts) or '(no vehicle detected)'}"
    if analysis.analysis:
        text = f"{text}. {analysis.analysis.rstrip('.')}"
    return text


class PhotoIntake:
    """Turns photo placeholders in an open batch into readable vehicle lines."""

    def __init__(
        self,
        batcher: ConversationBatcher,
        storage: PhotoStorage,
        resolver: EntityResolver,
        settings: Settings | None = None,
    ):
        self.batcher = batcher
        self.storage = storage
        self.resolver = resolver
        self.settings = settings or get_settings()

    async def enrich(self, conversation_id: str, key: str, photo_ref: str) -> bool:
        """Replace the placeholder for `key`. Returns False if the batch already left."""
        text = await self.describe(photo_ref)
        updated = self.batcher.update_message(conversation_id, key, text)
        logger.info(
            "Photo enriched" if updated else "Photo analysis ready after batch release",
            conversation_id=conversation_id,
            key=key,
            text=text,
        )
        return updated

    async def describe(self, photo_ref: str) -> str:
        try:
            image = await self.storage.read_bytes(photo_ref)
        except YardlineError as exc:
            logger.warning("Photo unavailable", photo_ref=photo_ref, error=exc.message)
            return NO_IMAGE_TEXT

        if len(image) < self.settings.min_photo_bytes:
            return NO_IMAGE_TEXT

        try:
            analysis = await analyze_vehicle_photo(
                image, guess_image_mime(image, photo_ref), timeout=self.settings.vision_timeout_seconds
            )
        except Exception as exc:
            logger.warning(
                "Photo analysis failed",
                photo_ref=photo_ref,
                error=str(exc) or type(exc).__name__,
            )
            return FAILED_TEXT

        rego = compact_rego(analysis.rego)
        note = ""
        if rego and analysis.make and analysis.model:
            match = await self.resolver.resolve(
                rego,
                analysis.make,
                analysis.model,
                hints={"color": analysis.color_description},
            )
            if match.action is MatchDecision.AUTO_FIX and match.best is not None:
                note = f" (corrected from {rego})"
                rego = match.best.rego

        return describe_photo(analysis, rego, note)
