"""
Module: caja_kernel.models.receipt
Responsibility: ORM persistence for receipts, their line items and payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - document_number is unique (uq_receipt_document_number).  Numbers are
      allocated only by DocumentCounter, never by MAX()+1.
    - sum(items) == total == sum(payments) at 2 decimals (checked by
      ReceiptService before insert).
    - Item month 1..12 (ck_receipt_item_month).

Failure modes:
    - IntegrityError on a duplicate document number, surfaced by
      ReceiptService as DocumentNumberConflictError.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from caja_kernel.db.base import Base, UTCDateTime, UUIDString
from caja_kernel.models.catalog import Client


class Receipt(Base):
    """
    An issued receipt ("recibo").

    Contract:
        Inserted together with its items, payments, inflow movements and
        the counter increment, in one transaction.  Removed only by
        ReceiptService.void_last (counter released) or delete_by_id
        (counter untouched).
    """

    __tablename__ = "receipts"

    __table_args__ = (
        UniqueConstraint("document_number", name="uq_receipt_document_number"),
        Index("idx_receipt_client", "client_id"),
        Index("idx_receipt_issued", "issued_at"),
    )

    client_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("clients.id"),
        nullable=False,
    )

    document_number: Mapped[int] = mapped_column(Integer, nullable=False)

    issued_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    total: Mapped[Decimal] = mapped_column(nullable=False)

    created_by_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    client: Mapped[Client] = relationship()

    items: Mapped[list["ReceiptItem"]] = relationship(
        back_populates="receipt",
        order_by="ReceiptItem.position",
        cascade="all, delete-orphan",
    )

    payments: Mapped[list["ReceiptPayment"]] = relationship(
        back_populates="receipt",
        order_by="ReceiptPayment.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Receipt #{self.document_number} {self.total}>"


class ReceiptItem(Base):
    """A billed concept for a given month and year."""

    __tablename__ = "receipt_items"

    __table_args__ = (
        CheckConstraint("month BETWEEN 1 AND 12", name="ck_receipt_item_month"),
        CheckConstraint("amount > 0", name="ck_receipt_item_amount_positive"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("receipts.id"),
        nullable=False,
    )

    # Preserves the caller's line order
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(100), nullable=False)

    month: Mapped[int] = mapped_column(Integer, nullable=False)

    year: Mapped[int] = mapped_column(Integer, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    receipt: Mapped[Receipt] = relationship(back_populates="items")


class ReceiptPayment(Base):
    """The part of a receipt paid with one payment method."""

    __tablename__ = "receipt_payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_receipt_payment_amount_positive"),
    )

    receipt_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("receipts.id"),
        nullable=False,
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)

    payment_method_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("payment_methods.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # Comma-separated check numbers, when paid by check
    check_numbers: Mapped[str | None] = mapped_column(String(255), nullable=True)

    receipt: Mapped[Receipt] = relationship(back_populates="payments")
