"""
Conversation Batcher

Rolling-window batching per conversation:
- The first message for an idle conversation opens a window of `base_window`
  seconds.
- A later message landing in the last `extend_threshold` seconds pushes the
  deadline out by `extend_by`.
- Reaching `max_items` releases the batch immediately.

A window is detached from the batcher before its callback runs, so messages
arriving while a batch is being processed open a fresh window.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable
from uuid import uuid4

import structlog

from yardline.config import Settings, get_settings
from yardline.kernel.time import coerce_utc, utc_now
from yardline.monitoring.metrics import get_metrics
from yardline.pipeline.state import InboundMessage

logger = structlog.get_logger()

ReleaseCallback = Callable[[str, list[InboundMessage]], Awaitable[None]]


@dataclass
class _Window:
    conversation_id: str
    opened_at: float
    deadline: float
    messages: list[InboundMessage] = field(default_factory=list)
    handle: asyncio.TimerHandle | None = None
    batch_id: str = field(default_factory=lambda: str(uuid4()))


class ConversationBatcher:
    """
    Owns one timer per open conversation window.

    Must be used from inside a running event loop. `shutdown()` cancels every
    timer, releases pending windows and waits for in-flight callbacks.
    """

    def __init__(
        self,
        on_release: ReleaseCallback,
        *,
        base_window: float = 120.0,
        extend_threshold: float = 60.0,
        extend_by: float = 120.0,
        max_items: int = 100,
        clock: Callable[[], float] | None = None,
    ):
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self._on_release = on_release
        self.base_window = base_window
        self.extend_threshold = extend_threshold
        self.extend_by = extend_by
        self.max_items = max_items
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._inflight: set[asyncio.Task] = set()
        self._closed = False

    @classmethod
    def from_settings(
        cls, on_release: ReleaseCallback, settings: Settings | None = None
    ) -> "ConversationBatcher":
        settings = settings or get_settings()
        return cls(
            on_release,
            base_window=settings.batch_base_window_seconds,
            extend_threshold=settings.batch_extend_threshold_seconds,
            extend_by=settings.batch_extend_by_seconds,
            max_items=settings.batch_max_items,
        )

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def has_window(self, conversation_id: str) -> bool:
        return conversation_id in self._windows

    def pending(self, conversation_id: str) -> list[InboundMessage]:
        window = self._windows.get(conversation_id)
        return list(window.messages) if window else []

    def deadline(self, conversation_id: str) -> float | None:
        window = self._windows.get(conversation_id)
        return window.deadline if window else None

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def add_message(
        self,
        conversation_id: str,
        speaker: str,
        text: str,
        key: str,
        timestamp: datetime | None = None,
    ) -> bool:
        """Queue a message. Returns False when it was ignored."""
        if not conversation_id or not text:
            return False
        if self._closed:
            logger.warning("Batcher is shut down, dropping message", conversation_id=conversation_id)
            return False

        message = InboundMessage(
            conversation_id=conversation_id,
            key=str(key),
            speaker=speaker or "",
            text=text,
            timestamp=coerce_utc(timestamp) if timestamp else utc_now(),
        )
        now = self._now()
        window = self._windows.get(conversation_id)

        if window is None:
            window = _Window(
                conversation_id=conversation_id,
                opened_at=now,
                deadline=now + self.base_window,
                messages=[message],
            )
            self._windows[conversation_id] = window
            self._arm(window)
            logger.debug(
                "Batch window opened",
                conversation_id=conversation_id,
                batch_id=window.batch_id,
                window_seconds=self.base_window,
            )
        else:
            window.messages.append(message)
            remaining = window.deadline - now
            if remaining <= self.extend_threshold:
                window.deadline += self.extend_by
                self._arm(window)
                logger.debug(
                    "Batch window extended",
                    conversation_id=conversation_id,
                    batch_id=window.batch_id,
                    remaining=round(window.deadline - now, 3),
                )

        if len(window.messages) >= self.max_items:
            self._release(window, reason="cap")
        return True

    def update_message(self, conversation_id: str, key: str, new_text: str) -> bool:
        """Replace the text of a still-pending message. False if released or unknown."""
        window = self._windows.get(conversation_id)
        if window is None or key is None:
            return False
        for index, message in enumerate(window.messages):
            if message.key == str(key):
                window.messages[index] = message.model_copy(update={"text": new_text})
                return True
        return False

    # ------------------------------------------------------------------
    # Release
    # ------------------------------------------------------------------

    async def flush(self, conversation_id: str) -> bool:
        """Release one conversation now and wait for its callback."""
        window = self._windows.get(conversation_id)
        if window is None:
            return False
        await self._release(window, reason="flush")
        return True

    async def flush_all(self) -> None:
        for conversation_id in list(self._windows):
            await self.flush(conversation_id)

    async def shutdown(self) -> None:
        """Stop accepting messages, release every window and join callbacks."""
        self._closed = True
        await self.flush_all()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        logger.info("Batcher shut down")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> float:
        if self._clock is not None:
            return self._clock()
        return asyncio.get_running_loop().time()

    def _arm(self, window: _Window) -> None:
        if window.handle is not None:
            window.handle.cancel()
        delay = max(0.0, window.deadline - self._now())
        window.handle = asyncio.get_running_loop().call_later(
            delay, self._on_timer, window.conversation_id, window.batch_id
        )

    def _on_timer(self, conversation_id: str, batch_id: str) -> None:
        window = self._windows.get(conversation_id)
        # A stale handle can fire for a window that was already released.
        if window is None or window.batch_id != batch_id:
            return
        self._release(window, reason="timer")

    def _release(self, window: _Window, *, reason: str) -> asyncio.Task:
        if window.handle is not None:
            window.handle.cancel()
            window.handle = None
        self._windows.pop(window.conversation_id, None)

        messages = sorted(window.messages, key=lambda m: m.timestamp)
        task = asyncio.get_running_loop().create_task(self._deliver(window, messages, reason))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _deliver(self, window: _Window, messages: list[InboundMessage], reason: str) -> None:
        get_metrics().track_batch_released(reason, len(messages))
        with structlog.contextvars.bound_contextvars(
            conversation_id=window.conversation_id, batch_id=window.batch_id
        ):
            logger.info("Releasing batch", reason=reason, message_count=len(messages))
            try:
                await self._on_release(window.conversation_id, messages)
            except Exception as exc:
                logger.error(
                    "Batch release callback failed",
                    reason=reason,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
