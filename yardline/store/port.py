"""
Vehicle store port.

The resolver, the applier and the pipeline only see this protocol and the
pydantic records below. `SqlVehicleStore` is the production adapter.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Awaitable, Protocol, TypeVar
from uuid import uuid4

import structlog
from pydantic import BaseModel, Field, field_validator

from yardline.kernel.errors import StoreTimeoutError

logger = structlog.get_logger()

T = TypeVar("T")

SOLD_STAGE = "Sold"


def _new_id() -> str:
    return str(uuid4())


class LocationStint(BaseModel):
    """One stay of a vehicle at a location."""

    location: str
    start: datetime
    end: datetime | None = None
    days: int | None = None


class VehicleDraft(BaseModel):
    """Fields needed to create a vehicle."""

    rego: str
    make: str = ""
    model: str = ""
    badge: str = ""
    year: str = ""
    description: str = ""


class Vehicle(VehicleDraft):
    """A tracked vehicle. `rego` is stored normalized and is unique."""

    id: str = Field(default_factory=_new_id)
    location: str = ""
    stage: str = ""
    readiness: str = ""
    checklist: list[str] = Field(default_factory=list)
    next_locations: list[str] = Field(default_factory=list)
    history: list[LocationStint] = Field(default_factory=list)

    @property
    def is_sold(self) -> bool:
        return self.stage.strip().lower() == SOLD_STAGE.lower()

    @property
    def label(self) -> str:
        return " ".join(p for p in (self.rego, self.make, self.model) if p)


class ReconCategory(BaseModel):
    """User-configured reconditioning category."""

    name: str
    keywords: list[str] = Field(default_factory=list)
    rules: list[str] = Field(default_factory=list)
    default_service: str = ""
    sort_order: int = 0

    @field_validator("keywords", "rules", mode="before")
    @classmethod
    def _clean_terms(cls, value):
        if value is None:
            return []
        return [str(v).strip() for v in value if str(v or "").strip()]


class TaskRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    task: str
    vehicle_id: str | None = None
    vehicle_text: str = ""
    notes: str = ""


class CustomerAppointmentRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    date_time: str = ""
    notes: str = ""
    vehicle_id: str | None = None
    vehicle_text: str = ""


class ReconAppointmentRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    service: str = ""
    category: str = "Other"
    date_time: str = ""
    notes: str = ""
    vehicle_id: str | None = None
    vehicle_text: str = ""


class VehicleStore(Protocol):
    async def find_by_rego(self, rego: str) -> Vehicle | None:
        """Exact lookup on the normalized rego."""

    async def find_by_make_model(self, make: str, model: str) -> list[Vehicle]:
        """Case-insensitive make + model lookup."""

    async def create_vehicle(self, draft: VehicleDraft) -> Vehicle:
        """Insert a vehicle; raises DuplicateVehicleError if the rego exists."""

    async def save_vehicle(self, vehicle: Vehicle) -> Vehicle:
        """Persist changes to an existing vehicle."""

    async def list_recon_categories(self) -> list[ReconCategory]:
        """Categories ordered by sort_order then name."""

    async def create_task(self, record: TaskRecord) -> TaskRecord:
        ...

    async def create_customer_appointment(
        self, record: CustomerAppointmentRecord
    ) -> CustomerAppointmentRecord:
        ...

    async def create_recon_appointment(
        self, record: ReconAppointmentRecord
    ) -> ReconAppointmentRecord:
        ...


async def bounded(call: Awaitable[T], operation: str, timeout: float) -> T:
    """Await one store call, raising StoreTimeoutError once `timeout` passes."""
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Store call timed out", operation=operation, timeout=timeout)
        raise StoreTimeoutError(operation=operation, timeout=timeout) from exc
