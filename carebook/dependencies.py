# carebook/dependencies.py
from __future__ import annotations

from typing import AsyncIterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.core.security import CurrentUser, InvalidTokenError, decode_token, principal_from_claims
from carebook.db.sql import get_session
from carebook.modules.appointments.repository import SqlAppointmentStore
from carebook.modules.schedules.repository import SqlScheduleStore
from carebook.notifications import LoggingNotificationSink, NotificationSink

# Tokens come from the identity provider, there is no token endpoint here
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="missing_token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return principal_from_claims(decode_token(credentials.credentials))
    except InvalidTokenError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "invalid_token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from exc


async def get_schedule_store(
    session: AsyncSession = Depends(get_session),
) -> AsyncIterator[SqlScheduleStore]:
    yield SqlScheduleStore(session)


async def get_appointment_store(
    session: AsyncSession = Depends(get_session),
) -> AsyncIterator[SqlAppointmentStore]:
    yield SqlAppointmentStore(session)


def get_notification_sink(request: Request) -> NotificationSink:
    sink = getattr(request.app.state, "notification_sink", None)
    return sink or LoggingNotificationSink()
