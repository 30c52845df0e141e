# carebook/modules/timeslots.py
"""
Time slot helpers shared by schedules and appointments.

A slot is a half-open interval [start, end) on one calendar date, written
"HH:mm-HH:mm" on the wire. Dates are naive: they are compared as wall-clock
values in the clinic time zone.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from typing import Any, Iterable, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, model_validator

from carebook.core.config import settings
from carebook.core.errors import DataIntegrityError, ValidationError

logger = logging.getLogger(__name__)

TIME_SLOT_RE = re.compile(
    r"^([0-1][0-9]|2[0-3]):[0-5][0-9]-([0-1][0-9]|2[0-3]):[0-5][0-9]$"
)
TIME_FMT = "%H:%M"


def clinic_now() -> datetime:
    """Current wall-clock time in the clinic time zone, without tzinfo."""
    return datetime.now(ZoneInfo(settings.CLINIC_TIMEZONE)).replace(tzinfo=None)


class TimeSlot(BaseModel):
    """
    Canonical slot value. Every store normalizes its rows into this shape,
    whatever the column layout underneath.
    """

    start: time
    end: time

    class Config:
        frozen = True

    @model_validator(mode="before")
    @classmethod
    def _from_string(cls, data: Any) -> Any:
        # Serialized form is the wire string; accept it back when re-validating.
        if isinstance(data, str):
            parts = split_slot(data)
            if parts is None:
                raise ValueError("time slot must look like HH:mm-HH:mm")
            return {"start": parts[0], "end": parts[1]}
        return data

    @model_validator(mode="after")
    def _check_order(self) -> TimeSlot:
        if self.start >= self.end:
            raise ValueError("end time must be after start time")
        return self

    @classmethod
    def parse(cls, value: Any) -> TimeSlot:
        """
        Strict parse of user input. Raises ValidationError on anything that
        is not a zero-padded 24h "HH:mm-HH:mm" with start < end.
        """
        if isinstance(value, TimeSlot):
            return value
        if not value or not isinstance(value, str):
            raise ValidationError("Time slot is required", code="time_slot_required")

        raw = value.strip()
        if not TIME_SLOT_RE.match(raw):
            raise ValidationError(
                "Invalid time slot format. Use HH:mm-HH:mm", code="invalid_time_slot"
            )

        start_s, end_s = raw.split("-")
        start = datetime.strptime(start_s, TIME_FMT).time()
        end = datetime.strptime(end_s, TIME_FMT).time()
        if start >= end:
            raise ValidationError(
                "End time must be after start time", code="invalid_time_slot"
            )
        return cls(start=start, end=end)

    def __str__(self) -> str:
        return f"{self.start.strftime(TIME_FMT)}-{self.end.strftime(TIME_FMT)}"

    def overlaps(self, other: TimeSlot) -> bool:
        return overlaps(self, other)

    def contains(self, other: TimeSlot) -> bool:
        return self.start <= other.start and other.end <= self.end


def overlaps(a: TimeSlot, b: TimeSlot) -> bool:
    # touching endpoints ("09:00-10:00" / "10:00-11:00") do not overlap
    return b.start < a.end and b.end > a.start


def covers(slots: Iterable[TimeSlot], target: TimeSlot) -> bool:
    """
    True when `target` lies inside the union of `slots`.
    Adjacent slots ("10:00-11:00", "11:00-12:00") merge.
    """
    cursor = target.start
    for slot in sorted(slots, key=lambda s: (s.start, s.end)):
        if slot.end <= cursor:
            continue
        if slot.start > cursor:
            return False
        cursor = slot.end
        if cursor >= target.end:
            return True
    return False


def split_slot(value: str) -> Optional[Tuple[str, str]]:
    """
    Lenient split of a stored slot string. Accepts "HH:mm-HH:mm" and
    "HH:mm:ss-HH:mm:ss" (truncated to minutes). Returns None when the value
    does not split into exactly two parts.
    """
    parts = str(value).split("-")
    if len(parts) != 2:
        return None
    return parts[0].strip()[:5], parts[1].strip()[:5]


def _as_hhmm(value: Any) -> str:
    if isinstance(value, time):
        return value.strftime(TIME_FMT)
    return str(value).strip()[:5]


def _slot_from_parts(start_s: str, end_s: str, record: Mapping[str, Any]) -> TimeSlot:
    try:
        start = datetime.strptime(start_s, TIME_FMT).time()
        end = datetime.strptime(end_s, TIME_FMT).time()
    except ValueError as exc:
        logger.error("Unreadable time slot in stored row: %r", dict(record))
        raise DataIntegrityError(
            f"Stored time slot {start_s}-{end_s} is not a valid time range"
        ) from exc
    if start >= end:
        logger.error("Inverted time slot in stored row: %r", dict(record))
        raise DataIntegrityError(f"Stored time slot {start_s}-{end_s} ends before it starts")
    return TimeSlot(start=start, end=end)


def slot_from_record(record: Mapping[str, Any]) -> TimeSlot:
    """
    Normalize a stored row into a TimeSlot. Supports a combined `time_slot`
    field or separate `start_time` / `end_time` fields. A row with neither
    usable shape is a data-integrity error, not something to skip.
    """
    raw = record.get("time_slot")
    if isinstance(raw, TimeSlot):
        return raw
    if raw:
        parts = split_slot(raw)
        if parts is None:
            logger.error("Malformed time_slot %r in stored row: %r", raw, dict(record))
            raise DataIntegrityError(f"Stored time slot {raw!r} is malformed")
        return _slot_from_parts(parts[0], parts[1], record)

    start, end = record.get("start_time"), record.get("end_time")
    if start is not None and end is not None:
        return _slot_from_parts(_as_hhmm(start), _as_hhmm(end), record)

    logger.error("Stored row has no usable time information: %r", dict(record))
    raise DataIntegrityError("Stored row has no time slot")


def slot_start_at(day: date, slot: TimeSlot) -> datetime:
    return datetime.combine(day, slot.start)


def slot_end_at(day: date, slot: TimeSlot) -> datetime:
    return datetime.combine(day, slot.end)


def hours_until(moment: datetime, now: Optional[datetime] = None) -> float:
    now = now or clinic_now()
    return (moment - now).total_seconds() / 3600
