# carebook/db/locks.py
from __future__ import annotations

from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


async def lock_doctor(session: AsyncSession, doctor_id: UUID) -> None:
    """
    Serialize check-then-write sequences for one doctor until the current
    transaction ends. Schedules and appointments share the same key, so a
    block and a booking for the same doctor never interleave.
    No-op on databases without advisory locks.
    """
    if session.get_bind().dialect.name != "postgresql":
        return
    await session.execute(
        text("SELECT pg_advisory_xact_lock(hashtextextended(:key, 0))"),
        {"key": f"doctor:{doctor_id}"},
    )
