# carebook/db/base.py
from __future__ import annotations

import datetime as dt
import uuid
from typing import Optional, Tuple

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


class UUIDPKMixin:
    id: Mapped[uuid.UUID] = mapped_column(default=uuid.uuid4, primary_key=True)


class TimestampMixin:
    """Server-side created/updated stamps."""

    created_at: Mapped[dt.datetime] = mapped_column(
        nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SoftDeleteMixin:
    """Rows with `deleted_at` set are hidden from every read."""

    # naive clinic wall-clock, like the other scheduling instants
    deleted_at: Mapped[Optional[dt.datetime]] = mapped_column(
        DateTime(timezone=False), nullable=True
    )


class ReprMixin:
    """
    Short __repr__ for logs. Models name the columns worth showing in
    `__repr_attrs__`; the id is always first.
    """

    __repr_attrs__: Tuple[str, ...] = ()

    def __repr__(self) -> str:
        parts = [f"id={getattr(self, 'id', None)}"]
        parts += [f"{name}={getattr(self, name, None)!r}" for name in self.__repr_attrs__]
        return f"<{self.__class__.__name__} {' '.join(parts)}>"


__all__ = ["Base", "UUIDPKMixin", "TimestampMixin", "SoftDeleteMixin", "ReprMixin"]
