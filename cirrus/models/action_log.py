"""Action log model — audit trail for lifecycle operations."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


class ActionLog(Base):
    __tablename__ = "action_logs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    kind: Mapped[str] = mapped_column(String(64), nullable=False)
    resource_name: Mapped[str] = mapped_column(String(63), nullable=False)
    action_type: Mapped[str] = mapped_column(
        String(16), nullable=False
    )  # create, update, delete, refresh
    status: Mapped[str] = mapped_column(
        String(16), default="pending"
    )  # pending, success, failed
    details: Mapped[dict] = mapped_column(JSON, default=dict)
    initiated_by: Mapped[str] = mapped_column(String(32), default="cli")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
