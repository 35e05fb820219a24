"""
Yardline Service

Wires the batcher, extraction pipeline, action applier and photo intake
together for one chat transport. Transport adapters call `receive_text` and
`receive_photo`; every released batch is processed and answered with a short
summary in the same conversation.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from yardline.applying import ActionApplier, ApplyOutcome
from yardline.batching import ConversationBatcher
from yardline.config import Settings, get_settings
from yardline.intake import PHOTO_PLACEHOLDER, PhotoIntake, PhotoStorage
from yardline.kernel.text import normalize_rego
from yardline.kernel.time import coerce_utc, from_epoch_seconds, utc_now
from yardline.matching import EntityResolver, MatchPolicy
from yardline.pipeline.actions import ActionBase
from yardline.pipeline.graph import run_extraction
from yardline.pipeline.state import ExtractionResult, InboundMessage
from yardline.store.port import ReconCategory, VehicleStore, bounded

logger = structlog.get_logger()


class ChatTransport(Protocol):
    async def send_text(self, conversation_id: str, text: str) -> None:
        """Post a message into the conversation."""


def _message_time(timestamp: datetime | float | None) -> datetime:
    """Transports report datetimes or epoch seconds; missing means now."""
    if timestamp is None:
        return utc_now()
    if isinstance(timestamp, datetime):
        return coerce_utc(timestamp)
    return from_epoch_seconds(timestamp)


def _describe_action(action: ActionBase) -> str:
    target = normalize_rego(action.rego) or " ".join(p for p in (action.make, action.model) if p)
    return f"{action.type} {target}".strip()


def format_summary(result: ExtractionResult, outcomes: list[ApplyOutcome]) -> str:
    """Readable batch summary for the chat."""
    lines = [f"Processed {result.message_count} message(s) -> {len(result.actions)} action(s)"]
    for outcome in outcomes:
        lines.append(f"{'OK' if outcome.ok else 'FAILED'}: {outcome.message}")
    for action in result.dropped_actions:
        lines.append(f"DROPPED: {_describe_action(action)} (rejected by audit)")
    for error in result.errors:
        lines.append(f"ERROR: {error}")
    return "\n".join(lines)


class YardlineService:
    """
    Owns the batcher and the background photo enrichment tasks.

    `stop()` waits for outstanding enrichment first so a photo analysis that
    is still running can land in its batch before the final flush.
    """

    def __init__(
        self,
        store: VehicleStore,
        transport: ChatTransport,
        photo_storage: PhotoStorage | None = None,
        *,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.transport = transport
        self.resolver = EntityResolver(
            store,
            MatchPolicy.from_settings(self.settings),
            store_timeout=self.settings.store_timeout_seconds,
        )
        self.batcher = ConversationBatcher.from_settings(self.process_batch, self.settings)
        self.photo_intake = (
            PhotoIntake(self.batcher, photo_storage, self.resolver, self.settings)
            if photo_storage is not None
            else None
        )
        self._enrichments: set[asyncio.Task] = set()
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        self._running = True
        logger.info("Yardline service started")

    async def stop(self) -> None:
        if self._enrichments:
            await asyncio.gather(*list(self._enrichments), return_exceptions=True)
        await self.batcher.shutdown()
        self._running = False
        logger.info("Yardline service stopped")

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def receive_text(
        self,
        conversation_id: str,
        speaker: str,
        text: str,
        key: str,
        timestamp: datetime | float | None = None,
    ) -> bool:
        return self.batcher.add_message(conversation_id, speaker, text, key, _message_time(timestamp))

    def receive_photo(
        self,
        conversation_id: str,
        speaker: str,
        key: str,
        photo_ref: str,
        caption: str = "",
        timestamp: datetime | float | None = None,
    ) -> bool:
        """Queue a photo placeholder, its caption, and schedule enrichment."""
        timestamp = _message_time(timestamp)
        added = self.batcher.add_message(conversation_id, speaker, PHOTO_PLACEHOLDER, key, timestamp)
        if not added:
            return False

        caption = (caption or "").strip()
        if caption:
            self.batcher.add_message(
                conversation_id,
                speaker,
                caption,
                f"{key}:caption",
                timestamp + timedelta(milliseconds=1),
            )

        if self.photo_intake is not None:
            task = asyncio.get_running_loop().create_task(
                self._enrich(conversation_id, str(key), photo_ref)
            )
            self._enrichments.add(task)
            task.add_done_callback(self._enrichments.discard)
        return True

    async def _enrich(self, conversation_id: str, key: str, photo_ref: str) -> None:
        try:
            await self.photo_intake.enrich(conversation_id, key, photo_ref)
        except Exception as exc:
            logger.error(
                "Photo enrichment failed",
                conversation_id=conversation_id,
                key=key,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def process_batch(self, conversation_id: str, messages: list[InboundMessage]) -> None:
        try:
            categories = await self._recon_categories()
            result = await run_extraction(conversation_id, messages, categories)
            outcomes = await ActionApplier(self.store, self.resolver).apply_all(result.actions)
            summary = format_summary(result, outcomes)
        except Exception as exc:
            logger.error(
                "Batch processing failed",
                conversation_id=conversation_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            summary = f"Processed {len(messages)} message(s) -> 0 action(s)\nERROR: {exc}"

        try:
            await self.transport.send_text(conversation_id, summary)
        except Exception as exc:
            logger.error("Failed to send batch summary", conversation_id=conversation_id, error=str(exc))

    async def _recon_categories(self) -> list[ReconCategory]:
        try:
            return await bounded(
                self.store.list_recon_categories(),
                "list_recon_categories",
                self.settings.store_timeout_seconds,
            )
        except Exception as exc:
            logger.warning("Recon categories unavailable", error=str(exc))
            return []
