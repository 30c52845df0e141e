# carebook/db/sql.py
from __future__ import annotations

import logging
from typing import AsyncIterator
from uuid import UUID

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from carebook.core.config import settings
from carebook.modules.audit.log import write_audit_log

logger = logging.getLogger(__name__)


engine = create_async_engine(
    settings.SQL_DSN,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
    pool_timeout=settings.DB_POOL_TIMEOUT,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    expire_on_commit=False,
    autoflush=False,
    class_=AsyncSession,
)


def _resolve_user_id(request: Request) -> UUID | None:
    # Lazy import to avoid circular import
    from carebook.core.security import InvalidTokenError, decode_token, principal_from_claims

    header = request.headers.get("Authorization", "")
    if not header.lower().startswith("bearer "):
        return None
    try:
        return principal_from_claims(decode_token(header.split(" ", 1)[1].strip())).id
    except InvalidTokenError:
        return None


async def _audit(session: AsyncSession, user_id: UUID | None, action: str, details: str) -> None:
    try:
        await write_audit_log(session, user_id, action, details)
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Audit log write failed for %s", action)
        await session.rollback()


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    """
    Provide a DB session for each request.
    Automatically apply commit/rollback and write audit logs.
    """
    user_id = _resolve_user_id(request)
    action = f"{request.method} {request.url.path}"

    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            await _audit(session, user_id, f"{action} ROLLBACK", str(exc))
            raise

        await _audit(session, user_id, f"{action} COMMIT", "Operation completed successfully")


async def ping_db() -> str | None:
    """SELECT 1 and return the server version (PostgreSQL) when available."""
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
        if engine.dialect.name != "postgresql":
            return None
        result = await session.execute(text("SHOW server_version"))
        return result.scalar_one_or_none()


async def init_db() -> None:
    """
    Create tables that do not exist yet. Migrations (infra/migrations) are
    the way to evolve the schema; this is for first boot and dev.
    """
    from carebook.db.base import Base
    # Import all models here so they get registered
    from carebook.modules.audit import models as audit_models  # noqa: F401
    from carebook.modules.schedules import models as schedules_models  # noqa: F401
    from carebook.modules.appointments import models as appointments_models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
