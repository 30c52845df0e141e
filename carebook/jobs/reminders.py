# carebook/jobs/reminders.py
"""
Appointment reminder sweep.

The worker wakes on every REMINDER_SWEEP_MINUTES wall-clock boundary
(:00, :15, :30, :45 by default) and looks for scheduled appointments
starting 24h and 2h ahead. Each sweep starts its windows where the previous
successful sweep ended, so a late or failed cycle never leaves a gap. The
claim (`mark_reminder_sent`) happens before the publish, so overlapping
sweeps or workers never send twice.

Run standalone with:  python -m carebook.jobs.reminders
"""
from __future__ import annotations

import asyncio
import datetime as dt
import logging
from typing import NamedTuple, Optional

from carebook.core.config import settings
from carebook.db.retry import TRANSIENT_ERRORS, run_with_retry
from carebook.modules import timeslots
from carebook.modules.appointments.repository import AppointmentStore, SqlAppointmentStore
from carebook.notifications import (
    LoggingNotificationSink,
    NotificationSink,
    patient_room,
)

logger = logging.getLogger(__name__)

DAY_AHEAD = dt.timedelta(hours=24)
TWO_HOURS_AHEAD = dt.timedelta(hours=2)


class Window(NamedTuple):
    start: dt.datetime
    end: dt.datetime


class ReminderWindows(NamedTuple):
    target_24h: Window
    target_2h: Window


def floor_to_boundary(now: dt.datetime, minutes: int) -> dt.datetime:
    """Last wall-clock boundary at or before `now` (09:17:40 -> 09:15 for 15)."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    step = dt.timedelta(minutes=minutes)
    return midnight + ((now - midnight) // step) * step


def seconds_until_next_boundary(now: dt.datetime, minutes: int) -> float:
    upcoming = floor_to_boundary(now, minutes) + dt.timedelta(minutes=minutes)
    return (upcoming - now).total_seconds()


def compute_reminder_windows(
    now: dt.datetime,
    sweep_minutes: int = 15,
    since: Optional[dt.datetime] = None,
) -> ReminderWindows:
    """
    Target windows for a sweep at `now`.

    The sweep covers [since, boundary + sweep) where boundary is `now`
    floored to the sweep grid. Without `since` (first run) it starts at the
    boundary. Windows never start before `now`: an appointment that already
    began gets no reminder.
    """
    tick = floor_to_boundary(now, sweep_minutes)
    upper = tick + dt.timedelta(minutes=sweep_minutes)
    lower = since if since is not None and since < upper else tick

    def window(ahead: dt.timedelta) -> Window:
        return Window(max(lower + ahead, now), upper + ahead)

    return ReminderWindows(target_24h=window(DAY_AHEAD), target_2h=window(TWO_HOURS_AHEAD))


async def process_due(
    store: AppointmentStore,
    sink: NotificationSink,
    kind: str,
    start: dt.datetime,
    end: dt.datetime,
) -> int:
    """Send the `kind` reminder for appointments starting in [start, end). Returns how many were sent."""
    due = await store.find_due_reminders(start, end, kind)
    sent = 0

    for appointment in due:
        try:
            if not await store.mark_reminder_sent(appointment.id, kind):
                # another sweep got there first
                continue
            await sink.publish(
                patient_room(appointment.patient_id),
                "appointment_reminder",
                {
                    "kind": kind,
                    "appointment_id": str(appointment.id),
                    "doctor_id": str(appointment.doctor_id),
                    "starts_at": appointment.starts_at.isoformat(),
                    "time_slot": str(appointment.time_slot),
                    "reason": appointment.reason,
                },
            )
            sent += 1
            logger.info("Reminder sent appointment_id=%s kind=%s", appointment.id, kind)
        except TRANSIENT_ERRORS:
            raise
        except Exception:
            logger.exception("Failed to send reminder appointment_id=%s kind=%s", appointment.id, kind)

    return sent


async def run_reminder_sweep(
    sink: Optional[NotificationSink] = None,
    *,
    now: Optional[dt.datetime] = None,
    since: Optional[dt.datetime] = None,
) -> int:
    """One sweep cycle in its own session, retried on transient database errors."""
    from carebook.db.sql import AsyncSessionLocal

    sink = sink or LoggingNotificationSink()
    now = now or timeslots.clinic_now()
    windows = compute_reminder_windows(now, settings.REMINDER_SWEEP_MINUTES, since)

    async def _cycle() -> int:
        async with AsyncSessionLocal() as session:
            store = SqlAppointmentStore(session)
            sent = 0
            for kind, window in (("24h", windows.target_24h), ("2h", windows.target_2h)):
                sent += await process_due(store, sink, kind, window.start, window.end)
                await session.commit()
            return sent

    return await run_with_retry(_cycle, label="reminder sweep")


async def run_reminder_worker(sink: Optional[NotificationSink] = None) -> None:
    minutes = settings.REMINDER_SWEEP_MINUTES
    logger.info("Starting reminder worker (every %s minutes on the clock)", minutes)

    # end of the last sweep that went through; the next one resumes there
    since: Optional[dt.datetime] = None
    while True:
        now = timeslots.clinic_now()
        try:
            await run_reminder_sweep(sink, now=now, since=since)
            since = floor_to_boundary(now, minutes) + dt.timedelta(minutes=minutes)
        except TRANSIENT_ERRORS:
            logger.exception("Reminder sweep cycle failed; next cycle will catch up from %s", since)
        await asyncio.sleep(seconds_until_next_boundary(timeslots.clinic_now(), minutes))


if __name__ == "__main__":
    from carebook.core.logging_setup import setup_logging

    setup_logging()
    asyncio.run(run_reminder_worker())
