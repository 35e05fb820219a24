"""
Action Applier

Turns audited actions into store changes. Vehicle-state actions (location,
sold, repair, readiness, next location) require an identified vehicle and
may create one. Tasks and appointments are always created; they link a
vehicle only when the resolver is certain and otherwise carry a readable
vehicle text. Store calls share the resolver's timeout, and a timeout fails
only the action that hit it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, assert_never

import structlog

from yardline.kernel.errors import ValidationError, YardlineError
from yardline.kernel.text import clean, normalize_rego, same_text, vehicle_label
from yardline.kernel.time import days_between, utc_now
from yardline.matching.resolver import EntityResolver, MatchDecision
from yardline.pipeline.actions import (
    Action,
    ActionBase,
    CustomerAppointmentAction,
    DropOffAction,
    LocationUpdateAction,
    NextLocationAction,
    ReadyAction,
    ReconAppointmentAction,
    RepairAction,
    SoldAction,
    TaskAction,
)
from yardline.store.port import (
    SOLD_STAGE,
    CustomerAppointmentRecord,
    LocationStint,
    ReconAppointmentRecord,
    ReconCategory,
    TaskRecord,
    Vehicle,
    VehicleStore,
    bounded,
)

from .checklist import merge_checklist
from .identify import ensure_vehicle

logger = structlog.get_logger()

OTHER_CATEGORY = "Other"


@dataclass
class ApplyOutcome:
    action: Action
    ok: bool
    message: str
    vehicle_id: str | None = None


def _require(value: str, field: str) -> str:
    value = clean(value)
    if not value:
        raise ValidationError(message=f"Missing {field}")
    return value


def _action_label(action: ActionBase) -> str:
    return vehicle_label(
        rego=normalize_rego(action.rego),
        make=action.make,
        model=action.model,
        badge=action.badge,
        description=action.description,
        year=action.year,
    )


def resolve_recon_category(name: str, categories: list[ReconCategory]) -> str:
    """Case-insensitive match against configured categories; unknown is "Other"."""
    for category in categories:
        if same_text(category.name, name):
            return category.name
    return OTHER_CATEGORY


class ActionApplier:
    """Applies actions one at a time; a failing action never stops the rest."""

    def __init__(
        self,
        store: VehicleStore,
        resolver: EntityResolver,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.resolver = resolver
        self._clock = clock
        self._categories: list[ReconCategory] | None = None

    async def apply_all(self, actions: list[Action]) -> list[ApplyOutcome]:
        outcomes = []
        for action in actions:
            outcomes.append(await self._apply_safely(action))
        applied = sum(1 for o in outcomes if o.ok)
        logger.info("Actions applied", total=len(outcomes), applied=applied, failed=len(outcomes) - applied)
        return outcomes

    async def _apply_safely(self, action: Action) -> ApplyOutcome:
        try:
            return await self.apply(action)
        except YardlineError as exc:
            logger.info("Action not applied", action_type=action.type, code=exc.code, reason=exc.message)
            return ApplyOutcome(action, False, f"{action.type}: {exc.message}")
        except Exception as exc:
            logger.error(
                "Action application failed",
                action_type=action.type,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return ApplyOutcome(action, False, f"{action.type}: {exc}")

    async def _store_call(self, call, operation: str):
        return await bounded(call, operation, self.resolver.store_timeout)

    async def apply(self, action: Action) -> ApplyOutcome:
        match action:
            case LocationUpdateAction():
                return await self._location_update(action)
            case SoldAction():
                return await self._sold(action)
            case RepairAction():
                return await self._repair(action)
            case ReadyAction():
                return await self._ready(action)
            case NextLocationAction():
                return await self._next_location(action)
            case DropOffAction():
                return await self._drop_off(action)
            case TaskAction():
                return await self._task(action)
            case CustomerAppointmentAction():
                return await self._customer_appointment(action)
            case ReconAppointmentAction():
                return await self._recon_appointment(action)
            case _:
                assert_never(action)

    # ------------------------------------------------------------------
    # Vehicle state
    # ------------------------------------------------------------------

    async def _vehicle(self, action: ActionBase) -> Vehicle:
        return await ensure_vehicle(self.store, self.resolver, action)

    async def _location_update(self, action: LocationUpdateAction) -> ApplyOutcome:
        location = _require(action.location, "location")
        vehicle = await self._vehicle(action)

        if same_text(vehicle.location, location):
            return ApplyOutcome(action, True, f"{vehicle.label} already at {vehicle.location}", vehicle.id)

        now = self._clock()
        history = list(vehicle.history)
        if history and history[-1].end is None:
            last = history[-1]
            history[-1] = last.model_copy(update={"end": now, "days": days_between(last.start, now)})
        history.append(LocationStint(location=location, start=now))

        previous = vehicle.location
        vehicle = vehicle.model_copy(update={"location": location, "history": history})
        await self._store_call(self.store.save_vehicle(vehicle), "save_vehicle")
        return ApplyOutcome(action, True, f"{vehicle.label}: {previous or '-'} -> {location}", vehicle.id)

    async def _sold(self, action: SoldAction) -> ApplyOutcome:
        vehicle = await self._vehicle(action)
        if vehicle.is_sold:
            return ApplyOutcome(action, True, f"{vehicle.label} already sold", vehicle.id)
        vehicle = vehicle.model_copy(update={"stage": SOLD_STAGE})
        await self._store_call(self.store.save_vehicle(vehicle), "save_vehicle")
        return ApplyOutcome(action, True, f"{vehicle.label} marked Sold", vehicle.id)

    async def _repair(self, action: RepairAction) -> ApplyOutcome:
        item = _require(action.checklist_item, "checklist item")
        vehicle = await self._vehicle(action)
        checklist, added = merge_checklist(vehicle.checklist, item)
        if not added:
            return ApplyOutcome(action, True, f"{vehicle.label}: '{item}' already on checklist", vehicle.id)
        vehicle = vehicle.model_copy(update={"checklist": checklist})
        await self._store_call(self.store.save_vehicle(vehicle), "save_vehicle")
        return ApplyOutcome(action, True, f"{vehicle.label}: checklist + '{item}'", vehicle.id)

    async def _ready(self, action: ReadyAction) -> ApplyOutcome:
        readiness = _require(action.readiness, "readiness")
        vehicle = await self._vehicle(action)
        vehicle = vehicle.model_copy(update={"readiness": readiness})
        await self._store_call(self.store.save_vehicle(vehicle), "save_vehicle")
        return ApplyOutcome(action, True, f"{vehicle.label}: readiness -> {readiness}", vehicle.id)

    async def _next_location(self, action: NextLocationAction) -> ApplyOutcome:
        destination = _require(action.next_location, "next location")
        vehicle = await self._vehicle(action)
        if any(same_text(existing, destination) for existing in vehicle.next_locations):
            return ApplyOutcome(action, True, f"{vehicle.label}: next {destination} already listed", vehicle.id)
        vehicle = vehicle.model_copy(update={"next_locations": [*vehicle.next_locations, destination]})
        await self._store_call(self.store.save_vehicle(vehicle), "save_vehicle")
        return ApplyOutcome(action, True, f"{vehicle.label}: next -> {destination}", vehicle.id)

    # ------------------------------------------------------------------
    # Tasks and appointments
    # ------------------------------------------------------------------

    async def _optional_link(self, action: ActionBase) -> Vehicle | None:
        """Link only on an exact or auto-fixed match; never creates."""
        rego = normalize_rego(action.rego)
        if not rego and not (clean(action.make) and clean(action.model)):
            return None
        match = await self.resolver.resolve(rego, action.make, action.model)
        if match.action in (MatchDecision.EXACT, MatchDecision.AUTO_FIX):
            return match.vehicle
        logger.info("Vehicle not linked", rego=rego, decision=match.action.value, reason=match.reason)
        return None

    def _vehicle_fields(self, action: ActionBase, vehicle: Vehicle | None) -> dict:
        if vehicle is not None:
            return {"vehicle_id": vehicle.id, "vehicle_text": vehicle.label}
        return {"vehicle_id": None, "vehicle_text": _action_label(action)}

    async def _drop_off(self, action: DropOffAction) -> ApplyOutcome:
        vehicle = await self._optional_link(action)
        fields = self._vehicle_fields(action, vehicle)
        text = f"Drop off {fields['vehicle_text']}"
        if action.destination:
            text = f"{text} to {action.destination}"
        if action.note:
            text = f"{text} - {action.note}"
        record = await self._store_call(
            self.store.create_task(TaskRecord(task=text, notes=action.note, **fields)), "create_task"
        )
        return ApplyOutcome(action, True, f"Task created: {record.task}", record.vehicle_id)

    async def _task(self, action: TaskAction) -> ApplyOutcome:
        task = _require(action.task, "task")
        vehicle = await self._optional_link(action)
        record = await self._store_call(
            self.store.create_task(TaskRecord(task=task, **self._vehicle_fields(action, vehicle))), "create_task"
        )
        return ApplyOutcome(action, True, f"Task created: {record.task}", record.vehicle_id)

    async def _customer_appointment(self, action: CustomerAppointmentAction) -> ApplyOutcome:
        vehicle = await self._optional_link(action)
        record = await self._store_call(
            self.store.create_customer_appointment(
                CustomerAppointmentRecord(
                    name=action.name or "Customer",
                    date_time=action.date_time,
                    notes=action.notes,
                    **self._vehicle_fields(action, vehicle),
                )
            ),
            "create_customer_appointment",
        )
        when = f" {record.date_time}" if record.date_time else ""
        return ApplyOutcome(
            action, True, f"Customer appt: {record.name}{when} ({record.vehicle_text})", record.vehicle_id
        )

    async def _recon_appointment(self, action: ReconAppointmentAction) -> ApplyOutcome:
        if self._categories is None:
            self._categories = await self._store_call(
                self.store.list_recon_categories(), "list_recon_categories"
            )
        category = resolve_recon_category(action.category, self._categories)
        vehicle = await self._optional_link(action)
        record = await self._store_call(
            self.store.create_recon_appointment(
                ReconAppointmentRecord(
                    name=action.name or "Reconditioning",
                    service=action.service,
                    category=category,
                    date_time=action.date_time,
                    notes=action.notes or action.service,
                    **self._vehicle_fields(action, vehicle),
                )
            ),
            "create_recon_appointment",
        )
        return ApplyOutcome(
            action,
            True,
            f"Recon appt: {record.vehicle_text} ({record.name}, {record.category})",
            record.vehicle_id,
        )
