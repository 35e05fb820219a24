"""SQLAlchemy models for vehicles, recon categories, tasks and appointments."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VehicleRow(Base):
    __tablename__ = "vehicle"

    id = Column(Text, primary_key=True, default=_id)
    # Normalized (A-Z0-9, uppercase); the unique constraint is what makes
    # concurrent creates safe.
    rego = Column(Text, nullable=False, unique=True)
    make = Column(Text, nullable=False, default="", index=True)
    model = Column(Text, nullable=False, default="", index=True)
    badge = Column(Text, nullable=False, default="")
    year = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")

    location = Column(Text, nullable=False, default="")
    stage = Column(Text, nullable=False, default="")
    readiness = Column(Text, nullable=False, default="")
    checklist = Column(JSONB, nullable=False, default=list)
    next_locations = Column(JSONB, nullable=False, default=list)
    history = Column(JSONB, nullable=False, default=list)  # [{location, start, end, days}]

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)


class ReconCategoryRow(Base):
    __tablename__ = "recon_category"

    id = Column(Text, primary_key=True, default=_id)
    name = Column(Text, nullable=False, unique=True)
    keywords = Column(JSONB, nullable=False, default=list)
    rules = Column(JSONB, nullable=False, default=list)
    default_service = Column(Text, nullable=False, default="")
    sort_order = Column(Integer, nullable=False, default=0)


class TaskRow(Base):
    __tablename__ = "task"

    id = Column(Text, primary_key=True, default=_id)
    task = Column(Text, nullable=False)
    vehicle_id = Column(Text, nullable=True, index=True)
    vehicle_text = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class CustomerAppointmentRow(Base):
    __tablename__ = "customer_appointment"

    id = Column(Text, primary_key=True, default=_id)
    name = Column(Text, nullable=False)
    date_time = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    vehicle_id = Column(Text, nullable=True, index=True)
    vehicle_text = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)


class ReconAppointmentRow(Base):
    __tablename__ = "recon_appointment"

    id = Column(Text, primary_key=True, default=_id)
    name = Column(Text, nullable=False)
    service = Column(Text, nullable=False, default="")
    category = Column(Text, nullable=False, default="Other")
    date_time = Column(Text, nullable=False, default="")
    notes = Column(Text, nullable=False, default="")
    vehicle_id = Column(Text, nullable=True, index=True)
    vehicle_text = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
