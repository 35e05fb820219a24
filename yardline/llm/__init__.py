"""LLM Service Layer with multi-provider routing."""

from .service import AllProvidersFailedError, LLMService, get_llm_service
from .schemas import (
    ActionsOutput,
    AuditOutput,
    CategorizeOutput,
    ChatLinesOutput,
    VehiclePhotoAnalysis,
)

__all__ = [
    # Service
    "AllProvidersFailedError",
    "LLMService",
    "get_llm_service",
    # Schemas
    "ActionsOutput",
    "AuditOutput",
    "CategorizeOutput",
    "ChatLinesOutput",
    "VehiclePhotoAnalysis",
]
