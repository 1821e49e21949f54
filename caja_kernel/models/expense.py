"""
Module: caja_kernel.models.expense
Responsibility: ORM persistence for expenses and their payment splits.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0 (ck_expense_amount_positive).
    - sum(splits) == amount at 2 decimals, checked by ExpenseService on
      create and whenever splits are replaced.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caja_kernel.db.base import Base, TrackedBase, UUIDString


class Expense(TrackedBase):
    """
    A cash expense ("gasto").

    Contract:
        Created with its splits and outflow movements in one transaction.
        Updates may replace splits; they never touch posted movements.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("idx_expense_date", "expense_date"),
    )

    description: Mapped[str] = mapped_column(String(100), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    expense_date: Mapped[date] = mapped_column(nullable=False)

    splits: Mapped[list["ExpenseSplit"]] = relationship(
        back_populates="expense",
        order_by="ExpenseSplit.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Expense {self.expense_date} {self.amount} {self.description!r}>"


class ExpenseSplit(Base):
    """The part of an expense paid with one payment method."""

    __tablename__ = "expense_splits"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_split_amount_positive"),
    )

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("expenses.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_method_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_methods.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    check_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    expense: Mapped[Expense] = relationship(back_populates="splits")
