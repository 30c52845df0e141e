# carebook/modules/audit/models.py
from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Text, func
from sqlalchemy.orm import Mapped, mapped_column

from carebook.db.base import Base


class AuditLog(Base):
    """
    One row per request transaction outcome. Users live in the identity
    provider, so `user_id` is a plain UUID without a foreign key.
    """

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True, index=True)
    action: Mapped[str] = mapped_column(nullable=False)
    details: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[dt.datetime] = mapped_column(server_default=func.now())
