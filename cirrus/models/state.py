"""Resource state model — the checkpoint of one declared resource."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..db import Base


class ResourceState(Base):
    __tablename__ = "resource_states"
    __table_args__ = (UniqueConstraint("kind", "name", name="uq_resource_states_kind_name"),)

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    kind: Mapped[str] = mapped_column(String(64), nullable=False)  # compute-disk, compute-firewall-rule
    name: Mapped[str] = mapped_column(String(63), nullable=False)
    location: Mapped[str] = mapped_column(String(64), default="global")  # zone, region or "global"
    lifecycle_state: Mapped[str] = mapped_column(
        String(16), default="absent"
    )  # absent, creating, present, updating, deleting, refreshing, tainted
    declared: Mapped[dict] = mapped_column(JSON, default=dict)
    self_link: Mapped[str] = mapped_column(String(512), default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
