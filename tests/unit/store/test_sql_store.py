from contextlib import asynccontextmanager
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from yardline.kernel.errors import DuplicateVehicleError, NotFoundError, ValidationError
from yardline.store.models import ReconCategoryRow, TaskRow, VehicleRow
from yardline.store.port import LocationStint, TaskRecord, Vehicle, VehicleDraft
from yardline.store.sql import SqlVehicleStore

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


def _session(*, rows=None, get=None):
    session = MagicMock()
    result = MagicMock()
    result.scalars.return_value.first.return_value = (rows or [None])[0]
    result.scalars.return_value.all.return_value = rows or []
    session.execute = AsyncMock(return_value=result)
    session.flush = AsyncMock()
    session.get = AsyncMock(return_value=get)
    return session


def _factory(session):
    @asynccontextmanager
    async def factory():
        yield session

    return factory


async def test_find_by_rego_converts_row():
    row = VehicleRow(
        id="v1",
        rego="ABC123",
        make="Toyota",
        model="Corolla",
        checklist=["Bumper scratch"],
        history=[{"location": "Workshop", "start": "2026-03-01T00:00:00+00:00"}],
    )
    session = _session(rows=[row])
    store = SqlVehicleStore(_factory(session))

    vehicle = await store.find_by_rego("abc 123")

    assert vehicle.id == "v1"
    assert vehicle.rego == "ABC123"
    assert vehicle.badge == ""
    assert vehicle.checklist == ["Bumper scratch"]
    assert vehicle.history[0].location == "Workshop"
    assert vehicle.history[0].start == datetime(2026, 3, 1, tzinfo=timezone.utc)


async def test_find_by_rego_skips_query_for_blank_rego():
    session = _session()
    store = SqlVehicleStore(_factory(session))

    assert await store.find_by_rego(" - ") is None
    session.execute.assert_not_awaited()


async def test_find_by_make_model_needs_both_fields():
    session = _session()
    store = SqlVehicleStore(_factory(session))

    assert await store.find_by_make_model("Toyota", "") == []
    session.execute.assert_not_awaited()


async def test_create_vehicle_normalizes_and_returns_record():
    session = _session()
    store = SqlVehicleStore(_factory(session))

    vehicle = await store.create_vehicle(VehicleDraft(rego="xyz-789", make=" Mazda ", model="CX5"))

    assert vehicle.rego == "XYZ789"
    assert vehicle.make == "Mazda"
    added = session.add.call_args.args[0]
    assert isinstance(added, VehicleRow)
    assert added.id == vehicle.id
    assert added.rego == "XYZ789"
    session.flush.assert_awaited_once()


async def test_create_vehicle_rejects_empty_rego():
    store = SqlVehicleStore(_factory(_session()))

    with pytest.raises(ValidationError):
        await store.create_vehicle(VehicleDraft(rego="  "))


async def test_create_vehicle_maps_unique_violation():
    session = _session()
    session.flush.side_effect = IntegrityError("INSERT INTO vehicle", {}, Exception("duplicate key"))
    store = SqlVehicleStore(_factory(session))

    with pytest.raises(DuplicateVehicleError):
        await store.create_vehicle(VehicleDraft(rego="ABC123", make="Toyota", model="Corolla"))


async def test_save_vehicle_updates_row():
    row = VehicleRow(id="v1", rego="ABC123", location="Yard")
    session = _session(get=row)
    store = SqlVehicleStore(_factory(session))
    vehicle = Vehicle(
        id="v1",
        rego="ABC123",
        location="Workshop",
        checklist=["Tyres"],
        history=[LocationStint(location="Workshop", start=datetime(2026, 3, 1, tzinfo=timezone.utc))],
    )

    await store.save_vehicle(vehicle)

    assert row.location == "Workshop"
    assert row.checklist == ["Tyres"]
    assert row.history[0]["location"] == "Workshop"
    assert row.history[0]["start"].startswith("2026-03-01")


async def test_save_vehicle_missing_row():
    store = SqlVehicleStore(_factory(_session(get=None)))

    with pytest.raises(NotFoundError):
        await store.save_vehicle(Vehicle(id="nope", rego="ABC123"))


async def test_list_recon_categories_maps_rows():
    rows = [ReconCategoryRow(name="Paint", keywords=["scratch", " "], rules=None, sort_order=1)]
    store = SqlVehicleStore(_factory(_session(rows=rows)))

    categories = await store.list_recon_categories()

    assert categories[0].name == "Paint"
    assert categories[0].keywords == ["scratch"]
    assert categories[0].rules == []


async def test_create_task_adds_row():
    session = _session()
    store = SqlVehicleStore(_factory(session))

    record = await store.create_task(TaskRecord(task="Drop off ABC123", vehicle_text="ABC123"))

    added = session.add.call_args.args[0]
    assert isinstance(added, TaskRow)
    assert added.id == record.id
    assert added.task == "Drop off ABC123"
