"""
Extraction State Definition

Defines the state schema for the LangGraph extraction pipeline.
This state flows through filter, refine, categorize, extract and audit.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from yardline.kernel.time import utc_now
from yardline.store.port import ReconCategory

from .actions import Action, ActionType


# =============================================================================
# Input Types
# =============================================================================


class InboundMessage(BaseModel):
    """One chat message as held by the batcher."""

    conversation_id: str
    key: str
    speaker: str = ""
    text: str
    timestamp: datetime = Field(default_factory=utc_now)


class ChatLine(BaseModel):
    """A `speaker: text` line produced by filter and refine."""

    speaker: str = ""
    text: str = ""

    @field_validator("speaker", "text", mode="before")
    @classmethod
    def _blank_none(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return str(value)


class Category(str, Enum):
    """Line categories: every action type plus OTHER."""

    LOCATION_UPDATE = "LOCATION_UPDATE"
    SOLD = "SOLD"
    REPAIR = "REPAIR"
    READY = "READY"
    DROP_OFF = "DROP_OFF"
    CUSTOMER_APPOINTMENT = "CUSTOMER_APPOINTMENT"
    RECON_APPOINTMENT = "RECON_APPOINTMENT"
    NEXT_LOCATION = "NEXT_LOCATION"
    TASK = "TASK"
    OTHER = "OTHER"

    @property
    def action_type(self) -> ActionType | None:
        if self is Category.OTHER:
            return None
        return ActionType(self.value)


class CategorizedLine(ChatLine):
    category: Category = Category.OTHER

    @field_validator("category", mode="before")
    @classmethod
    def _coerce_category(cls, value: Any) -> Any:
        if isinstance(value, Category):
            return value
        candidate = str(value or "").strip().upper().replace(" ", "_")
        try:
            return Category(candidate)
        except ValueError:
            return Category.OTHER


# =============================================================================
# Audit
# =============================================================================


class Verdict(str, Enum):
    CORRECT = "CORRECT"
    PARTIAL = "PARTIAL"
    INCORRECT = "INCORRECT"
    UNSURE = "UNSURE"


class AuditVerdict(BaseModel):
    action_index: int
    verdict: Verdict = Verdict.UNSURE
    reason: str = ""
    evidence_text: str = ""


# =============================================================================
# Trace
# =============================================================================


class LLMCall(BaseModel):
    """Record of an LLM API call."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    node: str
    model: str
    provider: str = "unknown"
    prompt_tokens: int = 0
    completion_tokens: int = 0
    duration_ms: int = 0


class NodeTiming(BaseModel):
    """Timing for a single node execution."""

    started_at: float
    completed_at: float | None = None


class Trace(BaseModel):
    """Execution trace for debugging and monitoring."""

    started_at: float = Field(default_factory=lambda: utc_now().timestamp())
    completed_at: float | None = None
    nodes: list[str] = Field(default_factory=list)
    current_node: str | None = None
    node_timings: dict[str, NodeTiming] = Field(default_factory=dict)
    llm_calls: list[LLMCall] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Main Extraction State
# =============================================================================


class ExtractionInput(BaseModel):
    conversation_id: str
    messages: list[InboundMessage] = Field(default_factory=list)
    recon_categories: list[ReconCategory] = Field(default_factory=list)


class ExtractionState(BaseModel):
    """
    State object that flows through the extraction graph.

    Each node returns only the fields it changes.
    """

    extraction_id: str = Field(default_factory=lambda: str(uuid4()))
    input: ExtractionInput

    filtered: list[ChatLine] = Field(default_factory=list)
    refined: list[ChatLine] = Field(default_factory=list)
    categorized: list[CategorizedLine] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)

    audited: bool = False
    verdicts: list[AuditVerdict] = Field(default_factory=list)
    kept_actions: list[Action] = Field(default_factory=list)
    dropped_actions: list[Action] = Field(default_factory=list)

    trace: Trace = Field(default_factory=Trace)


class ExtractionResult(BaseModel):
    """What one released batch turned into."""

    extraction_id: str
    conversation_id: str
    message_count: int = 0
    refined: list[ChatLine] = Field(default_factory=list)
    categorized: list[CategorizedLine] = Field(default_factory=list)
    actions: list[Action] = Field(default_factory=list)
    dropped_actions: list[Action] = Field(default_factory=list)
    verdicts: list[AuditVerdict] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def from_state(cls, state: ExtractionState) -> "ExtractionResult":
        return cls(
            extraction_id=state.extraction_id,
            conversation_id=state.input.conversation_id,
            message_count=len(state.input.messages),
            refined=state.refined,
            categorized=state.categorized,
            actions=state.kept_actions if state.audited else state.actions,
            dropped_actions=state.dropped_actions,
            verdicts=state.verdicts,
            errors=state.trace.errors,
        )
