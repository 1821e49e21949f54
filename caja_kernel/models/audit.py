"""
Module: caja_kernel.models.audit
Responsibility: ORM persistence for the default audit sink.
Architecture position: Kernel > Models.  May import from db/base.py only.

Audit relevance:
    Every receipt void and every out-of-sequence receipt deletion writes
    one AuditRecord describing what was removed and by whom.  Rows are
    append-only; nothing in the kernel updates or deletes them.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from caja_kernel.db.base import Base, UTCDateTime, UUIDString


class AuditAction(str, Enum):
    """Kinds of audited actions."""

    # Receipt removed through void_last; counter released
    DELETE = "DELETE"
    # Receipt removed by id; counter untouched, sequence now has a gap
    DELETE_WITHOUT_COUNTER = "DELETE_WITHOUT_COUNTER"
    DRAWER_AUTO_CLOSED = "DRAWER_AUTO_CLOSED"


class AuditRecord(Base):
    """One audit trail entry."""

    __tablename__ = "audit_records"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_action", "action"),
        Index("idx_audit_occurred", "occurred_at"),
    )

    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    action: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. "Receipt", "Drawer"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    detail: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditRecord {self.action} on {self.entity_type}:{self.entity_id}>"
