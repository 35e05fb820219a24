"""Per-conversation rolling batch windows."""

from .batcher import ConversationBatcher

__all__ = ["ConversationBatcher"]
