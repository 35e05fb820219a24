import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from yardline.applying import ActionApplier, resolve_recon_category
from yardline.matching.resolver import EntityResolver, MatchPolicy
from yardline.pipeline.actions import (
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
from yardline.store.port import LocationStint, ReconCategory

pytestmark = [pytest.mark.unit, pytest.mark.asyncio]


@pytest.fixture
def applier(vehicle_store, fake_clock):
    return ActionApplier(vehicle_store, EntityResolver(vehicle_store, MatchPolicy()), clock=fake_clock.now)


async def test_location_update_closes_open_stint(vehicle_store, applier, fake_clock):
    start = fake_clock.now() - timedelta(days=3)
    vehicle = vehicle_store.add(
        rego="ABC123",
        make="Toyota",
        model="Corolla",
        location="Yard",
        history=[LocationStint(location="Yard", start=start)],
    )

    outcome = await applier.apply(LocationUpdateAction(rego="ABC123", location="Workshop"))

    assert outcome.ok
    assert outcome.message == "ABC123 Toyota Corolla: Yard -> Workshop"
    saved = vehicle_store.vehicles[vehicle.id]
    assert saved.location == "Workshop"
    assert saved.history[0].end == fake_clock.now()
    assert saved.history[0].days == 3
    assert saved.history[1].location == "Workshop"
    assert saved.history[1].end is None


async def test_location_update_same_place_is_a_no_op(vehicle_store, applier):
    vehicle_store.add(rego="ABC123", location="Workshop")

    outcome = await applier.apply(LocationUpdateAction(rego="ABC123", location="workshop"))

    assert outcome.ok
    assert "already at Workshop" in outcome.message
    assert vehicle_store.saves == 0


async def test_location_update_creates_unknown_vehicle(vehicle_store, applier):
    outcome = await applier.apply(
        LocationUpdateAction(rego="XYZ789", make="Mazda", model="CX5", location="Detail Bay")
    )

    assert outcome.ok
    assert outcome.message == "XYZ789 Mazda CX5: - -> Detail Bay"
    assert vehicle_store.by_rego("XYZ789").location == "Detail Bay"


async def test_sold_is_idempotent(vehicle_store, applier):
    vehicle_store.add(rego="ABC123")

    first = await applier.apply(SoldAction(rego="ABC123"))
    second = await applier.apply(SoldAction(rego="ABC123"))

    assert first.message == "ABC123 marked Sold"
    assert second.message == "ABC123 already sold"
    assert vehicle_store.by_rego("ABC123").is_sold


async def test_repair_deduplicates_checklist(vehicle_store, applier):
    vehicle_store.add(rego="ABC123", checklist=["Front bumper scratch"])

    duplicate = await applier.apply(RepairAction(rego="ABC123", checklistItem="scuffs on front bumper bar"))
    added = await applier.apply(RepairAction(rego="ABC123", checklistItem="Replace wiper blades"))

    assert "already on checklist" in duplicate.message
    assert added.message == "ABC123: checklist + 'Replace wiper blades'"
    assert vehicle_store.by_rego("ABC123").checklist == ["Front bumper scratch", "Replace wiper blades"]


async def test_ready_sets_readiness(vehicle_store, applier):
    vehicle_store.add(rego="ABC123")

    outcome = await applier.apply(ReadyAction(rego="ABC123", readiness="Ready for delivery"))

    assert outcome.message == "ABC123: readiness -> Ready for delivery"
    assert vehicle_store.by_rego("ABC123").readiness == "Ready for delivery"


async def test_next_location_appends_once(vehicle_store, applier):
    vehicle_store.add(rego="ABC123", next_locations=["Detail Bay"])

    repeat = await applier.apply(NextLocationAction(rego="ABC123", nextLocation="detail bay"))
    new = await applier.apply(NextLocationAction(rego="ABC123", nextLocation="Tint Shop"))

    assert "already listed" in repeat.message
    assert new.ok
    assert vehicle_store.by_rego("ABC123").next_locations == ["Detail Bay", "Tint Shop"]


async def test_missing_required_field_fails_without_touching_store(vehicle_store, applier):
    vehicle_store.add(rego="ABC123")

    outcome = await applier.apply_all([LocationUpdateAction(rego="ABC123")])

    assert outcome[0].ok is False
    assert outcome[0].message == "LOCATION_UPDATE: Missing location"
    assert vehicle_store.saves == 0


async def test_failed_action_does_not_stop_the_batch(vehicle_store, applier):
    vehicle_store.add(rego="ABC123", make="Toyota", model="Corolla")

    outcomes = await applier.apply_all(
        [
            SoldAction(rego="ABC124", make="Toyota", model="Corolla"),
            ReadyAction(rego="ABC123", readiness="Ready"),
        ]
    )

    assert [o.ok for o in outcomes] == [False, True]
    assert outcomes[0].message.startswith("SOLD: ABC124 needs review")


async def test_unexpected_store_error_becomes_failed_outcome(vehicle_store, applier, monkeypatch):
    vehicle_store.add(rego="ABC123")

    async def broken(vehicle):
        raise RuntimeError("disk full")

    monkeypatch.setattr(vehicle_store, "save_vehicle", broken)

    [outcome] = await applier.apply_all([SoldAction(rego="ABC123")])

    assert outcome.ok is False
    assert outcome.message == "SOLD: disk full"


async def test_drop_off_links_known_vehicle(vehicle_store, applier):
    vehicle = vehicle_store.add(rego="ABC123", make="Toyota", model="Corolla")

    outcome = await applier.apply(
        DropOffAction(rego="ABC123", destination="Smith Panels", note="before 3pm")
    )

    [task] = vehicle_store.tasks
    assert task.task == "Drop off ABC123 Toyota Corolla to Smith Panels - before 3pm"
    assert task.vehicle_id == vehicle.id
    assert task.notes == "before 3pm"
    assert outcome.vehicle_id == vehicle.id


async def test_task_never_creates_vehicles(vehicle_store, applier):
    outcome = await applier.apply(
        TaskAction(rego="XYZ789", make="Mazda", model="CX5", description="red", task="Book service")
    )

    [task] = vehicle_store.tasks
    assert outcome.ok
    assert task.vehicle_id is None
    assert task.vehicle_text == "XYZ789 - Mazda CX5 (red)"
    assert vehicle_store.vehicles == {}


async def test_task_without_vehicle_uses_placeholder_text(vehicle_store, applier):
    await applier.apply(TaskAction(task="Order more plates"))

    assert vehicle_store.tasks[0].vehicle_text == "Unidentified vehicle"


async def test_ambiguous_match_is_not_linked(vehicle_store, applier):
    vehicle_store.add(rego="ABC123", make="Toyota", model="Corolla")

    await applier.apply(
        CustomerAppointmentAction(rego="ABC124", make="Toyota", model="Corolla", dateTime="Fri 10am")
    )

    [appt] = vehicle_store.customer_appointments
    assert appt.vehicle_id is None
    assert appt.name == "Customer"
    assert appt.date_time == "Fri 10am"


async def test_recon_appointment_maps_unknown_category_to_other(vehicle_store, applier):
    vehicle_store.recon_categories = [ReconCategory(name="Paint"), ReconCategory(name="Mechanical")]
    vehicle = vehicle_store.add(rego="ABC123")

    paint = await applier.apply(ReconAppointmentAction(rego="ABC123", category="paint", service="Respray"))
    other = await applier.apply(ReconAppointmentAction(rego="ABC123", category="Upholstery"))

    first, second = vehicle_store.recon_appointments
    assert first.category == "Paint"
    assert first.name == "Reconditioning"
    assert first.notes == "Respray"
    assert first.vehicle_id == vehicle.id
    assert second.category == "Other"
    assert paint.message == "Recon appt: ABC123 (Reconditioning, Paint)"
    assert other.ok


async def test_resolve_recon_category_is_case_insensitive():
    categories = [ReconCategory(name="Paint")]

    assert resolve_recon_category(" PAINT ", categories) == "Paint"
    assert resolve_recon_category("", categories) == "Other"


async def test_history_days_never_below_one(vehicle_store, fake_clock):
    now = datetime(2026, 1, 1, 12, tzinfo=timezone.utc)
    fake_clock.now_utc = now
    vehicle_store.add(rego="ABC123", location="Yard", history=[LocationStint(location="Yard", start=now)])
    applier = ActionApplier(vehicle_store, EntityResolver(vehicle_store, MatchPolicy()), clock=fake_clock.now)

    await applier.apply(LocationUpdateAction(rego="ABC123", location="Workshop"))

    assert vehicle_store.by_rego("ABC123").history[0].days == 1


async def test_hung_store_fails_only_the_waiting_action(vehicle_store, fake_clock, monkeypatch):
    async def hang(rego):
        await asyncio.sleep(3600)

    monkeypatch.setattr(vehicle_store, "find_by_rego", hang)
    resolver = EntityResolver(vehicle_store, MatchPolicy(), store_timeout=0.05)
    applier = ActionApplier(vehicle_store, resolver, clock=fake_clock.now)

    outcomes = await asyncio.wait_for(
        applier.apply_all(
            [LocationUpdateAction(rego="ABC123", location="Workshop"), TaskAction(task="Order plates")]
        ),
        timeout=2.0,
    )

    assert outcomes[0].ok is False
    assert outcomes[0].message == "LOCATION_UPDATE: Store find_by_rego timed out after 0.05s"
    assert outcomes[1].ok
    assert vehicle_store.tasks[0].task == "Order plates"
