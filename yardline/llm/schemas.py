"""
Pydantic schemas for structured LLM outputs.

These are deliberately permissive: missing fields fall back to defaults and
individually malformed list items are dropped instead of failing the whole
response.
"""

from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from yardline.pipeline.actions import Action, parse_action
from yardline.pipeline.state import CategorizedLine, ChatLine, Verdict

logger = structlog.get_logger()


def _line_from_text(value: Any) -> Any:
    """Accept bare "Speaker: text" strings as lines."""
    if not isinstance(value, str):
        return value
    speaker, sep, text = value.partition(":")
    if sep and speaker.strip() and " " not in speaker.strip():
        return {"speaker": speaker, "text": text}
    return {"speaker": "", "text": value}


def _keep_valid(items: Any, model: type[BaseModel], label: str) -> list[BaseModel]:
    if not isinstance(items, list):
        return []
    kept = []
    for raw in items:
        try:
            kept.append(model.model_validate(_line_from_text(raw)))
        except ValidationError as exc:
            logger.debug("Dropping malformed item", schema=label, errors=exc.error_count())
    return kept


# =============================================================================
# Filter / Refine
# =============================================================================


class ChatLinesOutput(BaseModel):
    """Output of the filter and refine stages."""

    messages: list[ChatLine] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any) -> list[ChatLine]:
        lines = _keep_valid(value, ChatLine, "ChatLinesOutput")
        return [line for line in lines if line.text]


# =============================================================================
# Categorize
# =============================================================================


class CategorizeOutput(BaseModel):
    items: list[CategorizedLine] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any) -> list[CategorizedLine]:
        lines = _keep_valid(value, CategorizedLine, "CategorizeOutput")
        return [line for line in lines if line.text]


# =============================================================================
# Extract
# =============================================================================


class ActionsOutput(BaseModel):
    actions: list[Action] = Field(default_factory=list)

    @field_validator("actions", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        actions = []
        for raw in value:
            try:
                actions.append(parse_action(raw))
            except ValidationError as exc:
                logger.debug("Dropping malformed action", errors=exc.error_count())
        return actions


# =============================================================================
# Audit
# =============================================================================


class AuditItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action_index: int = Field(alias="actionIndex", ge=0)
    verdict: Verdict = Verdict.UNSURE
    reason: str = ""
    evidence_text: str = Field(default="", alias="evidenceText")
    evidence_source_index: int | None = Field(default=None, alias="evidenceSourceIndex")

    @field_validator("verdict", mode="before")
    @classmethod
    def _coerce_verdict(cls, value: Any) -> Any:
        candidate = str(value or "").strip().upper()
        try:
            return Verdict(candidate)
        except ValueError:
            return Verdict.UNSURE

    @field_validator("reason", "evidence_text", mode="before")
    @classmethod
    def _blank_none(cls, value: Any) -> Any:
        return "" if value is None else str(value)


class AuditOutput(BaseModel):
    items: list[AuditItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def _drop_malformed(cls, value: Any) -> list[AuditItem]:
        return _keep_valid(value, AuditItem, "AuditOutput")


# =============================================================================
# Vision
# =============================================================================

REGO_PLACEHOLDERS = {"REGO", "UNKNOWN", "N/A", "NA", "NONE"}


class VehiclePhotoAnalysis(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    make: str = ""
    model: str = ""
    rego: str = ""
    color_description: str = Field(default="", alias="colorDescription")
    analysis: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _blank_none(cls, value: Any) -> Any:
        return "" if value is None else str(value).strip()

    @field_validator("rego")
    @classmethod
    def _clear_placeholder(cls, value: str) -> str:
        return "" if value.upper() in REGO_PLACEHOLDERS else value
