# infra/migrations/env.py
from __future__ import annotations

import asyncio
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import create_async_engine

from alembic import context

from carebook.core.config import settings
from carebook.db.base import Base

# autogenerate only sees tables whose models are imported
from carebook.modules.audit.models import AuditLog  # noqa: F401
from carebook.modules.schedules.models import DoctorSchedule  # noqa: F401
from carebook.modules.appointments.models import Appointment  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _dsn() -> str:
    # -x dsn=... wins over the app DSN; read directly, since ConfigParser
    # chokes on a '%' in a password
    return context.get_x_argument(as_dictionary=True).get("dsn") or settings.SQL_DSN


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=target_metadata,
        compare_type=True,
        compare_server_default=True,
        transaction_per_migration=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the SQL script instead of executing it (`alembic upgrade head --sql`)."""
    _configure(url=_dsn(), literal_binds=True, dialect_opts={"paramstyle": "named"})

    with context.begin_transaction():
        context.run_migrations()


def _run_sync(connection: Connection) -> None:
    _configure(connection=connection)

    with context.begin_transaction():
        context.run_migrations()


async def run_migrations_online() -> None:
    engine = create_async_engine(_dsn(), poolclass=pool.NullPool)
    try:
        async with engine.connect() as conn:
            await conn.run_sync(_run_sync)
    finally:
        await engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_migrations_online())
