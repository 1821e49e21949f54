"""
Module: caja_kernel.models.drawer
Responsibility: ORM persistence for daily cash drawers and their movements.
Architecture position: Kernel > Models.  May import from db/base.py and
    the domain enums.

Invariants enforced:
    - At most one drawer per calendar date (uq_drawer_date).
    - Every movement belongs to exactly one drawer (NOT NULL FK).
    - A movement referencing a receipt is an inflow; one referencing an
      expense is an outflow (ck_movement_source_kind).
    - Movement amounts are strictly positive (ck_movement_amount_positive).
    - Movements sort by (occurred_at, position, id): a total order, so
      running balances read the same every time.
    - There is NO stored balance column.  Balances are derived from the
      movements on every read (see domain/balance.py).

Failure modes:
    - IntegrityError on a second drawer for the same date.
    - IntegrityError on a movement violating the kind/source constraint.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caja_kernel.db.base import Base, UTCDateTime, UUIDString
from caja_kernel.domain.dtos import MovementKind


class Drawer(Base):
    """
    One daily cash drawer ("caja").

    Contract:
        Created on first reference to its date and never deleted.  Mutated
        only by open/close/reopen/auto-close in DrawerService.

    Guarantees:
        - drawer_date is unique.
        - A never-closed drawer has closing_balance and closed_at NULL.
        - A closed drawer has both set.  Reopening clears is_closed and
          closed_at but keeps closing_balance as a historical value.
    """

    __tablename__ = "cash_drawers"

    __table_args__ = (
        UniqueConstraint("drawer_date", name="uq_drawer_date"),
        Index("idx_drawer_closed_date", "is_closed", "drawer_date"),
    )

    drawer_date: Mapped[date] = mapped_column(nullable=False)

    opening_balance: Mapped[Decimal] = mapped_column(nullable=False)

    closing_balance: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_closed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    closed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    opened_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    closed_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    movements: Mapped[list["Movement"]] = relationship(
        back_populates="drawer",
        order_by="[Movement.occurred_at, Movement.position, Movement.id]",
    )

    def __repr__(self) -> str:
        state = "closed" if self.is_closed else "open"
        return f"<Drawer {self.drawer_date} {state}>"


class Movement(Base):
    """
    A single inflow or outflow posted into a drawer.

    Contract:
        Created exactly once, in the same transaction as its owning receipt
        or expense, and deleted only together with it.  Never updated.
    """

    __tablename__ = "cash_movements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_movement_amount_positive"),
        CheckConstraint(
            "(receipt_id IS NULL OR kind = 'inflow') "
            "AND (expense_id IS NULL OR kind = 'outflow')",
            name="ck_movement_source_kind",
        ),
        Index("idx_movement_drawer_time", "drawer_id", "occurred_at"),
        Index("idx_movement_receipt", "receipt_id"),
        Index("idx_movement_expense", "expense_id"),
    )

    drawer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cash_drawers.id"),
        nullable=False,
    )

    kind: Mapped[MovementKind] = mapped_column(String(10), nullable=False)

    label: Mapped[str] = mapped_column(String(100), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    receipt_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("receipts.id"),
        nullable=True,
    )

    expense_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("expenses.id"),
        nullable=True,
    )

    payment_method_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("payment_methods.id"),
        nullable=True,
    )

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Index of the payment or split within its document; orders the
    # movements one document posts at the same instant
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    drawer: Mapped[Drawer] = relationship(back_populates="movements")

    def __repr__(self) -> str:
        return f"<Movement {self.kind} {self.amount} {self.label!r}>"
