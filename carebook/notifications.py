# carebook/notifications.py
from __future__ import annotations

import logging
from typing import Any, Dict, Protocol

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    """
    Realtime fan-out capability. Rooms are "doctor:<id>" / "patient:<id>";
    events are appointment_created, appointment_cancelled,
    appointment_completed and appointment_reminder.
    """

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingNotificationSink:
    """Default sink: records every event in the application log."""

    async def publish(self, room: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info("notify room=%s event=%s payload=%s", room, event, payload)


def doctor_room(doctor_id: Any) -> str:
    return f"doctor:{doctor_id}"


def patient_room(patient_id: Any) -> str:
    return f"patient:{patient_id}"
