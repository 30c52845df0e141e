from __future__ import annotations

from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from carebook.modules.audit.models import AuditLog


async def write_audit_log(
    session: AsyncSession,
    user_id: UUID | None,
    action: str,
    details: str | None = None,
):
    """
    Write an audit log entry.

    action:
        "POST /api/appointments COMMIT"
        "POST /api/schedules/block-time ROLLBACK"

    details:
        outcome message, or the exception text on rollback
    """
    stmt = insert(AuditLog).values(
        user_id=user_id,
        action=action,
        details=details,
    )
    await session.execute(stmt)
