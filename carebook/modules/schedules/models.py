# carebook/modules/schedules/models.py
from __future__ import annotations

import uuid
import datetime as dt
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, Date, Index, Text, Time, true
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base, UUIDPKMixin, TimestampMixin, ReprMixin


class DoctorSchedule(UUIDPKMixin, TimestampMixin, ReprMixin, Base):
    """
    One doctor's availability (or explicit block) for one date and one
    contiguous time range. One row = one slot.
    """

    __tablename__ = "doctor_schedules"
    __repr_attrs__ = ("doctor_id", "date", "start_time", "end_time", "is_available")

    # Doctors are identity-provider users, no FK
    doctor_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)

    is_available: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=true()
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="ck_schedule_time_order"),
        Index("ix_schedule_doctor_date_start", "doctor_id", "date", "start_time"),
    )
