"""SQLAlchemy-backed implementation of the vehicle store port."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Any, Callable

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from yardline.kernel.errors import DuplicateVehicleError, NotFoundError, ValidationError
from yardline.kernel.text import clean, normalize_rego

from .client import get_db_session
from .models import (
    CustomerAppointmentRow,
    ReconAppointmentRow,
    ReconCategoryRow,
    TaskRow,
    VehicleRow,
)
from .port import (
    CustomerAppointmentRecord,
    LocationStint,
    ReconAppointmentRecord,
    ReconCategory,
    TaskRecord,
    Vehicle,
    VehicleDraft,
)

logger = structlog.get_logger()

SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


def _to_vehicle(row: VehicleRow) -> Vehicle:
    return Vehicle(
        id=row.id,
        rego=row.rego,
        make=row.make or "",
        model=row.model or "",
        badge=row.badge or "",
        year=row.year or "",
        description=row.description or "",
        location=row.location or "",
        stage=row.stage or "",
        readiness=row.readiness or "",
        checklist=list(row.checklist or []),
        next_locations=list(row.next_locations or []),
        history=[LocationStint.model_validate(item) for item in (row.history or [])],
    )


def _history_payload(history: list[LocationStint]) -> list[dict[str, Any]]:
    return [stint.model_dump(mode="json") for stint in history]


class SqlVehicleStore:
    """Vehicle store over async SQLAlchemy sessions."""

    def __init__(self, session_factory: SessionFactory = get_db_session):
        self._session = session_factory

    async def find_by_rego(self, rego: str) -> Vehicle | None:
        needle = normalize_rego(rego)
        if not needle:
            return None
        async with self._session() as session:
            result = await session.execute(select(VehicleRow).where(VehicleRow.rego == needle))
            row = result.scalars().first()
            return _to_vehicle(row) if row else None

    async def find_by_make_model(self, make: str, model: str) -> list[Vehicle]:
        make, model = clean(make), clean(model)
        if not make or not model:
            return []
        async with self._session() as session:
            result = await session.execute(
                select(VehicleRow)
                .where(func.lower(VehicleRow.make) == make.lower())
                .where(func.lower(VehicleRow.model) == model.lower())
                .order_by(VehicleRow.rego)
            )
            return [_to_vehicle(row) for row in result.scalars().all()]

    async def create_vehicle(self, draft: VehicleDraft) -> Vehicle:
        rego = normalize_rego(draft.rego)
        if not rego:
            raise ValidationError(message="Cannot create a vehicle without a rego")

        vehicle = Vehicle(
            rego=rego,
            make=clean(draft.make),
            model=clean(draft.model),
            badge=clean(draft.badge),
            year=clean(draft.year),
            description=clean(draft.description),
        )
        try:
            async with self._session() as session:
                session.add(VehicleRow(**vehicle.model_dump(mode="json")))
                await session.flush()
        except IntegrityError as exc:
            logger.info("Vehicle create lost a race", rego=rego)
            raise DuplicateVehicleError(rego=rego) from exc

        logger.info("Vehicle created", vehicle_id=vehicle.id, rego=rego)
        return vehicle

    async def save_vehicle(self, vehicle: Vehicle) -> Vehicle:
        async with self._session() as session:
            row = await session.get(VehicleRow, vehicle.id)
            if row is None:
                raise NotFoundError(message=f"Vehicle {vehicle.id} not found")
            row.location = vehicle.location
            row.stage = vehicle.stage
            row.readiness = vehicle.readiness
            row.checklist = list(vehicle.checklist)
            row.next_locations = list(vehicle.next_locations)
            row.history = _history_payload(vehicle.history)
            row.badge = vehicle.badge
            row.year = vehicle.year
            row.description = vehicle.description
        return vehicle

    async def list_recon_categories(self) -> list[ReconCategory]:
        async with self._session() as session:
            result = await session.execute(
                select(ReconCategoryRow).order_by(ReconCategoryRow.sort_order, ReconCategoryRow.name)
            )
            return [
                ReconCategory(
                    name=row.name,
                    keywords=row.keywords or [],
                    rules=row.rules or [],
                    default_service=row.default_service or "",
                    sort_order=row.sort_order or 0,
                )
                for row in result.scalars().all()
            ]

    async def create_task(self, record: TaskRecord) -> TaskRecord:
        async with self._session() as session:
            session.add(TaskRow(**record.model_dump()))
        return record

    async def create_customer_appointment(
        self, record: CustomerAppointmentRecord
    ) -> CustomerAppointmentRecord:
        async with self._session() as session:
            session.add(CustomerAppointmentRow(**record.model_dump()))
        return record

    async def create_recon_appointment(
        self, record: ReconAppointmentRecord
    ) -> ReconAppointmentRecord:
        async with self._session() as session:
            session.add(ReconAppointmentRow(**record.model_dump()))
        return record
