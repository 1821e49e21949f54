"""
AuditorService -- default, SQL-backed audit sink.

Responsibility:
    Records who removed which receipt (and what it contained) so the
    sequence of document numbers can be reconciled later.

Architecture position:
    Kernel > Services.  ReceiptService depends on the ``AuditSink``
    interface; this is the implementation wired in by default.

Invariants enforced:
    - Best effort: an audit failure never fails the owning operation.  The
      record is written inside its own SAVEPOINT; on error the savepoint
      is rolled back and the failure is logged at WARNING.

Failure modes:
    - None propagate from ``record()``.  Writers go through
      ``record_best_effort()``, which also absorbs failures of other
      ``AuditSink`` implementations.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from caja_kernel.domain.clock import Clock, SystemClock
from caja_kernel.exceptions import InvalidPageError
from caja_kernel.logging_config import get_logger
from caja_kernel.models.audit import AuditRecord
from caja_kernel.services.base import BaseService

logger = get_logger("services.auditor")


def _action_value(action) -> str:
    return action.value if isinstance(action, Enum) else str(action)


class AuditSink(ABC):
    """Accepts audit records; implementations must not raise."""

    @abstractmethod
    def record(
        self,
        actor_id: int | None,
        action: str,
        entity_type: str,
        entity_id: UUID | None,
        detail: dict[str, Any],
    ) -> None:
        ...


def record_best_effort(
    sink: AuditSink,
    actor_id: int | None,
    action: str,
    entity_type: str,
    entity_id: UUID | None,
    detail: dict[str, Any],
) -> None:
    """
    Hand a record to ``sink``; a failing sink is logged, never raised.

    Writers call this after their own unit of work has flushed, so a sink
    error must not reach ``session_scope()`` and roll that work back.
    """
    try:
        sink.record(actor_id, action, entity_type, entity_id, detail)
    except Exception:
        logger.warning(
            "audit_sink_failed",
            extra={
                "sink": type(sink).__name__,
                "action": _action_value(action),
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
            exc_info=True,
        )


@dataclass(frozen=True)
class AuditRecordInfo:
    id: UUID
    actor_id: int | None
    action: str
    entity_type: str
    entity_id: UUID | None
    detail: dict[str, Any] | None
    occurred_at: datetime


class AuditorService(BaseService[AuditRecord], AuditSink):
    """
    Persists audit records in ``audit_records``.

    Guarantees:
        - ``record()`` never raises on database errors.
        - ``occurred_at`` comes from the injected clock.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        actor_id: int | None,
        action: str,
        entity_type: str,
        entity_id: UUID | None,
        detail: dict[str, Any],
    ) -> None:
        savepoint = self.session.begin_nested()
        try:
            self.session.add(
                AuditRecord(
                    actor_id=actor_id,
                    action=_action_value(action),
                    entity_type=entity_type,
                    entity_id=entity_id,
                    detail=detail,
                    occurred_at=self._clock.now(),
                )
            )
            self.session.flush()
            savepoint.commit()
        except SQLAlchemyError:
            savepoint.rollback()
            logger.warning(
                "audit_record_failed",
                extra={"action": _action_value(action), "entity_type": entity_type},
                exc_info=True,
            )
            return

        logger.info(
            "audit_recorded",
            extra={
                "action": _action_value(action),
                "entity_type": entity_type,
                "entity_id": entity_id,
            },
        )

    def list_records(
        self,
        entity_type: str | None = None,
        action: str | None = None,
        actor_id: int | None = None,
        page: int = 1,
        limit: int = 50,
    ) -> list[AuditRecordInfo]:
        """Most recent audit records first, optionally filtered."""
        if page < 1 or limit < 1:
            raise InvalidPageError(page, limit)

        stmt = select(AuditRecord)
        if entity_type is not None:
            stmt = stmt.where(AuditRecord.entity_type == entity_type)
        if action is not None:
            stmt = stmt.where(AuditRecord.action == _action_value(action))
        if actor_id is not None:
            stmt = stmt.where(AuditRecord.actor_id == actor_id)
        stmt = (
            stmt.order_by(AuditRecord.occurred_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )

        return [
            AuditRecordInfo(
                id=r.id,
                actor_id=r.actor_id,
                action=r.action,
                entity_type=r.entity_type,
                entity_id=r.entity_id,
                detail=r.detail,
                occurred_at=r.occurred_at,
            )
            for r in self.session.execute(stmt).scalars()
        ]
