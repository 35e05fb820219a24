"""
Vehicle identification for action application.

The resolver decides; this module acts on the decision, creating a vehicle
when the evidence is complete and nothing in the yard matches.
"""

from __future__ import annotations

import structlog

from yardline.kernel.errors import (
    DuplicateVehicleError,
    InsufficientIdentificationError,
    VehicleIdentificationError,
)
from yardline.kernel.text import clean, normalize_rego
from yardline.matching.resolver import EntityResolver, MatchDecision
from yardline.pipeline.actions import ActionBase
from yardline.store.port import Vehicle, VehicleDraft, VehicleStore, bounded

logger = structlog.get_logger()


async def ensure_vehicle(
    store: VehicleStore,
    resolver: EntityResolver,
    action: ActionBase,
    *,
    hints: dict | None = None,
) -> Vehicle:
    """
    Return the vehicle an action refers to, creating it when allowed.

    Raises:
        InsufficientIdentificationError: no rego and no make/model at all.
        VehicleIdentificationError: the match needs a human or cannot be made.
    """
    rego = normalize_rego(action.rego)
    make, model = clean(action.make), clean(action.model)
    if not rego and not (make or model):
        raise InsufficientIdentificationError()

    match = await resolver.resolve(rego, make, model, hints=hints)

    if match.action in (MatchDecision.EXACT, MatchDecision.AUTO_FIX) and match.vehicle:
        if match.action is MatchDecision.AUTO_FIX:
            logger.info("Rego auto-fixed", given=rego, resolved=match.vehicle.rego)
        return match.vehicle

    can_create = bool(rego and make and model)
    if match.action is MatchDecision.CREATE or (match.action is MatchDecision.REJECT and can_create):
        return await _create_or_fetch(store, action, rego, resolver.store_timeout)

    if match.action is MatchDecision.REVIEW:
        raise VehicleIdentificationError(
            message=f"{rego or 'vehicle'} needs review: {match.summary()}",
            meta={"decision": match.action.value, "reason": match.reason},
        )

    raise VehicleIdentificationError(
        message=f"Could not identify {rego or ' '.join(p for p in (make, model) if p)} ({match.reason})",
        meta={"decision": match.action.value, "reason": match.reason},
    )


async def _create_or_fetch(store: VehicleStore, action: ActionBase, rego: str, timeout: float) -> Vehicle:
    draft = VehicleDraft(
        rego=rego,
        make=action.make,
        model=action.model,
        badge=action.badge,
        year=action.year,
        description=action.description,
    )
    try:
        return await bounded(store.create_vehicle(draft), "create_vehicle", timeout)
    except DuplicateVehicleError:
        existing = await bounded(store.find_by_rego(rego), "find_by_rego", timeout)
        if existing is None:
            raise
        logger.info("Vehicle created concurrently, linking existing", rego=rego)
        return existing
