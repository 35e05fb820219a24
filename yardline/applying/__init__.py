"""Applying extracted actions to the vehicle store."""

from .applier import ActionApplier, ApplyOutcome, resolve_recon_category
from .identify import ensure_vehicle

__all__ = ["ActionApplier", "ApplyOutcome", "ensure_vehicle", "resolve_recon_category"]
