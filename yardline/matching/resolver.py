"""
Rego Entity Resolution

Binds a noisy rego plus make/model hints to a stored vehicle.

Two tiers:
1. Exact normalized rego lookup, which short-circuits everything else.
2. Weighted fuzzy scoring, restricted to vehicles of the same make and
   model so a near-identical plate on an unrelated car can never win.

The resolver only decides. Creating a vehicle is a separate, explicit step
(see yardline.applying.identify.ensure_vehicle).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from yardline.config import Settings, get_settings
from yardline.kernel.text import clean, normalize_rego
from yardline.monitoring.metrics import get_metrics
from yardline.store.port import Vehicle, VehicleStore, bounded

from .distance import weighted_distance

logger = structlog.get_logger()


class MatchDecision(str, Enum):
    EXACT = "exact"
    AUTO_FIX = "auto-fix"
    REVIEW = "review"
    REJECT = "reject"
    CREATE = "create"


@dataclass(frozen=True)
class MatchPolicy:
    auto_fix_threshold: float = 0.6
    review_threshold: float = 1.2
    unique_margin: float = 0.2
    min_confidence: float = 0.75
    block_auto_fix_if_sold: bool = True

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "MatchPolicy":
        settings = settings or get_settings()
        return cls(
            auto_fix_threshold=settings.auto_fix_threshold,
            review_threshold=settings.review_threshold,
            unique_margin=settings.unique_margin,
            min_confidence=settings.min_confidence,
            block_auto_fix_if_sold=settings.block_auto_fix_if_sold,
        )

    def confidence_ok(self, confidence: float | None) -> bool:
        return confidence is None or confidence >= self.min_confidence


@dataclass(frozen=True)
class ScoredCandidate:
    candidate_id: str
    rego: str
    score: float
    vehicle: Vehicle | None = field(default=None, compare=False, repr=False)


@dataclass
class MatchResult:
    action: MatchDecision
    reason: str
    best: ScoredCandidate | None = None
    second: ScoredCandidate | None = None
    all_scores: list[ScoredCandidate] = field(default_factory=list)

    @property
    def vehicle(self) -> Vehicle | None:
        return self.best.vehicle if self.best else None

    def summary(self) -> str:
        if self.best is None:
            return f"{self.action.value} ({self.reason})"
        return f"{self.action.value} -> {self.best.rego} score={self.best.score} ({self.reason})"


class EntityResolver:
    """Store-backed rego resolver. Every store lookup is bounded by `store_timeout`."""

    def __init__(
        self,
        store: VehicleStore,
        policy: MatchPolicy | None = None,
        *,
        store_timeout: float | None = None,
    ):
        self.store = store
        self.policy = policy or MatchPolicy.from_settings()
        if store_timeout is None:
            store_timeout = get_settings().store_timeout_seconds
        self.store_timeout = store_timeout

    async def resolve(
        self,
        code: str,
        make: str = "",
        model: str = "",
        hints: dict[str, Any] | None = None,
        confidence: float | None = None,
    ) -> MatchResult:
        result = await self._resolve(code, clean(make), clean(model), confidence)
        get_metrics().track_resolution(result.action.value)
        logger.info(
            "Rego resolved",
            code=code,
            make=make,
            model=model,
            decision=result.action.value,
            reason=result.reason,
            best=result.best.rego if result.best else None,
            best_score=result.best.score if result.best else None,
            candidates=len(result.all_scores),
            hints=hints or {},
        )
        return result

    async def _resolve(
        self, code: str, make: str, model: str, confidence: float | None
    ) -> MatchResult:
        plate = normalize_rego(code)
        if not plate and not (make or model):
            return MatchResult(action=MatchDecision.REJECT, reason="empty-code")

        if plate:
            exact = await bounded(self.store.find_by_rego(plate), "find_by_rego", self.store_timeout)
            if exact is not None:
                best = ScoredCandidate(exact.id, exact.rego, 0.0, exact)
                return MatchResult(
                    action=MatchDecision.EXACT, reason="exact-match", best=best, all_scores=[best]
                )

        candidates: list[Vehicle] = []
        if make and model:
            candidates = await bounded(
                self.store.find_by_make_model(make, model), "find_by_make_model", self.store_timeout
            )

        if not candidates:
            if plate and make and model:
                return MatchResult(action=MatchDecision.CREATE, reason="no-candidates")
            return MatchResult(action=MatchDecision.REJECT, reason="no-candidates")

        scored = sorted(
            (
                ScoredCandidate(v.id, v.rego, weighted_distance(plate, v.rego), v)
                for v in candidates
            ),
            key=lambda c: (c.score, c.rego),
        )
        return self._decide(scored, confidence)

    def _decide(self, scored: list[ScoredCandidate], confidence: float | None) -> MatchResult:
        policy = self.policy
        best = scored[0]
        second = scored[1] if len(scored) > 1 else None

        def result(action: MatchDecision, reason: str) -> MatchResult:
            return MatchResult(
                action=action, reason=reason, best=best, second=second, all_scores=scored
            )

        if best.score == 0:
            return result(MatchDecision.EXACT, "exact-match")

        unique = second is None or round(second.score - best.score, 6) >= policy.unique_margin

        if best.score <= policy.auto_fix_threshold and unique:
            if not policy.confidence_ok(confidence):
                return result(MatchDecision.REVIEW, "low-confidence")
            if policy.block_auto_fix_if_sold and best.vehicle is not None and best.vehicle.is_sold:
                return result(MatchDecision.REVIEW, "best-is-sold")
            return result(MatchDecision.AUTO_FIX, "unique-under-auto-threshold")

        if best.score <= policy.review_threshold:
            return result(
                MatchDecision.REVIEW, "under-review-threshold" if unique else "tie-needs-human"
            )

        return result(MatchDecision.REJECT, "over-review-threshold")
