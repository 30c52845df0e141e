# carebook/modules/appointments/models.py
from __future__ import annotations

import datetime as dt
import uuid
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base, ReprMixin, SoftDeleteMixin, TimestampMixin, UUIDPKMixin


class ApptStatus(PyEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = {ApptStatus.COMPLETED.value, ApptStatus.CANCELLED.value}

_ACTIVE_BOOKING = text("status = 'scheduled' AND deleted_at IS NULL")


class Appointment(UUIDPKMixin, TimestampMixin, SoftDeleteMixin, ReprMixin, Base):
    """
    Appointment model (UUID + async). Patients and doctors live in the
    identity provider, so their ids carry no foreign key here.
    """

    __tablename__ = "appointments"
    __repr_attrs__ = ("doctor_id", "patient_id", "starts_at", "status")

    patient_id: Mapped[uuid.UUID] = mapped_column(nullable=False)
    doctor_id: Mapped[uuid.UUID] = mapped_column(nullable=False)

    appointment_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    # date + slot as naive clinic wall-clock, for window queries
    starts_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    ends_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ApptStatus.SCHEDULED.value,
        server_default=ApptStatus.SCHEDULED.value,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    reminder_24h_sent_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )
    reminder_2h_sent_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_appt_time_order"),
        # Avoid double booking: 1 doctor, 1 start instant, among live bookings
        Index(
            "uq_appt_doctor_starts_at_active",
            "doctor_id",
            "starts_at",
            unique=True,
            postgresql_where=_ACTIVE_BOOKING,
            sqlite_where=_ACTIVE_BOOKING,
        ),
        Index("ix_appt_doctor_date_start", "doctor_id", "appointment_date", "start_time"),
        Index("ix_appt_patient_date", "patient_id", "appointment_date"),
        Index("ix_appt_starts_at", "starts_at"),
    )
