"""Vehicle store port and adapters."""

from .port import (
    CustomerAppointmentRecord,
    LocationStint,
    ReconAppointmentRecord,
    ReconCategory,
    TaskRecord,
    Vehicle,
    VehicleDraft,
    VehicleStore,
)

__all__ = [
    "CustomerAppointmentRecord",
    "LocationStint",
    "ReconAppointmentRecord",
    "ReconCategory",
    "TaskRecord",
    "Vehicle",
    "VehicleDraft",
    "VehicleStore",
]
