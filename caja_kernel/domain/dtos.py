"""
DTOs -- immutable request and result objects for the ledger.

Responsibility:
    Defines the validated request records each write operation accepts
    (receipt lines and payments, expense splits, expense patches) and the
    frozen read models services and selectors return (drawers, movements,
    summaries, receipts, expenses).

Architecture position:
    Kernel > Domain -- pure, zero I/O, free of ORM dependencies.
    Services convert ORM rows into these DTOs at the boundary.

Invariants enforced:
    - Request records reject non-positive or sub-cent amounts, out-of-range
      months and years, and blank or over-long line descriptions at
      construction time.
    - Read models never expose ORM instances.

Failure modes:
    - InvalidAmountError / InvalidLineError from ``__post_init__``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from caja_kernel.db.types import ZERO, round_money, to_money
from caja_kernel.exceptions import InvalidAmountError, InvalidLineError

LABEL_MAX_LENGTH = 100
MIN_ITEM_YEAR = 2000
MAX_ITEM_YEAR = 2100


class MovementKind(str, Enum):
    """Direction of a drawer movement."""

    INFLOW = "inflow"
    OUTFLOW = "outflow"


def _require_positive(amount: Decimal, field_name: str = "amount") -> None:
    if not isinstance(amount, Decimal) or amount <= ZERO:
        raise InvalidAmountError(amount, field_name)
    # Rows are stored at 2 places; a finer amount would break the totals
    if amount != round_money(amount):
        raise InvalidAmountError(amount, field_name, "must not have fractions of a cent")


# ---------------------------------------------------------------------------
# Request records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReceiptItemSpec:
    """
    One line of a receipt: a billed concept for a given month.

    Guarantees:
        - description is non-blank and at most 100 characters.
        - 1 <= month <= 12, 2000 <= year <= 2100.
        - amount > 0, in whole cents.
    """

    description: str
    month: int
    year: int
    amount: Decimal

    def __post_init__(self) -> None:
        text = (self.description or "").strip()
        if not text:
            raise InvalidLineError("description", self.description, "must not be blank")
        if len(text) > LABEL_MAX_LENGTH:
            raise InvalidLineError(
                "description", self.description, f"longer than {LABEL_MAX_LENGTH} characters"
            )
        if not 1 <= self.month <= 12:
            raise InvalidLineError("month", self.month, "must be between 1 and 12")
        if not MIN_ITEM_YEAR <= self.year <= MAX_ITEM_YEAR:
            raise InvalidLineError(
                "year", self.year, f"must be between {MIN_ITEM_YEAR} and {MAX_ITEM_YEAR}"
            )
        _require_positive(self.amount)

    @classmethod
    def create(
        cls, description: str, month: int, year: int, amount: Decimal | str | int
    ) -> ReceiptItemSpec:
        """Build a line, coercing ``amount`` to a 2-decimal Decimal."""
        return cls(description=description, month=month, year=year, amount=to_money(amount))


@dataclass(frozen=True)
class ReceiptPaymentSpec:
    """One payment of a receipt, by payment method."""

    payment_method_id: int
    amount: Decimal
    check_numbers: str | None = None

    def __post_init__(self) -> None:
        _require_positive(self.amount)

    @classmethod
    def create(
        cls,
        payment_method_id: int,
        amount: Decimal | str | int,
        check_numbers: str | None = None,
    ) -> ReceiptPaymentSpec:
        return cls(
            payment_method_id=payment_method_id,
            amount=to_money(amount),
            check_numbers=check_numbers,
        )


@dataclass(frozen=True)
class ExpenseSplitSpec:
    """One payment split of an expense."""

    payment_method_id: int
    amount: Decimal
    check_reference: str | None = None

    def __post_init__(self) -> None:
        _require_positive(self.amount)

    @classmethod
    def create(
        cls,
        payment_method_id: int,
        amount: Decimal | str | int,
        check_reference: str | None = None,
    ) -> ExpenseSplitSpec:
        return cls(
            payment_method_id=payment_method_id,
            amount=to_money(amount),
            check_reference=check_reference,
        )


@dataclass(frozen=True)
class ExpensePatch:
    """
    Partial update of an expense.  ``None`` means "leave unchanged".

    ``splits`` replaces every split row when given; posted drawer
    movements are not touched.
    """

    description: str | None = None
    amount: Decimal | None = None
    expense_date: date | None = None
    splits: tuple[ExpenseSplitSpec, ...] | None = None


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DrawerInfo:
    """Snapshot of one daily cash drawer.

    ``closing_balance`` is authoritative only while ``is_closed``; a
    reopened drawer keeps the value it last closed at.
    """

    id: UUID
    drawer_date: date
    opening_balance: Decimal
    closing_balance: Decimal | None
    is_closed: bool
    closed_at: datetime | None
    opened_by_id: int | None
    closed_by_id: int | None


@dataclass(frozen=True)
class MovementLine:
    """A drawer movement with the running balance after it."""

    id: UUID
    kind: MovementKind
    label: str
    amount: Decimal
    occurred_at: datetime
    running_balance: Decimal
    receipt_id: UUID | None = None
    expense_id: UUID | None = None
    payment_method_id: int | None = None


@dataclass(frozen=True)
class DrawerSummary:
    """
    Drawer plus its movements, newest first, with derived totals.

    ``total`` counts every movement of the drawer; ``movements`` holds only
    the requested page window.  ``last_page`` is 1 when unpaginated.
    """

    drawer: DrawerInfo
    movements: tuple[MovementLine, ...]
    total_inflow: Decimal
    total_outflow: Decimal
    closing_balance: Decimal
    total: int
    page: int | None = None
    limit: int | None = None
    last_page: int = 1


@dataclass(frozen=True)
class ReceiptItemInfo:
    id: UUID
    description: str
    month: int
    year: int
    amount: Decimal


@dataclass(frozen=True)
class ReceiptPaymentInfo:
    id: UUID
    payment_method_id: int
    amount: Decimal
    check_numbers: str | None


@dataclass(frozen=True)
class ReceiptInfo:
    """A receipt with its relations, as handed to the document renderer."""

    id: UUID
    document_number: int
    client_id: int
    client_name: str | None
    issued_at: datetime
    total: Decimal
    created_by_id: int | None
    items: tuple[ReceiptItemInfo, ...] = field(default_factory=tuple)
    payments: tuple[ReceiptPaymentInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ReceiptPage:
    """One page of a filtered receipt listing; ``last_page`` is at least 1."""

    receipts: tuple[ReceiptInfo, ...]
    total: int
    page: int
    limit: int
    last_page: int


@dataclass(frozen=True)
class ExpenseSplitInfo:
    id: UUID
    payment_method_id: int
    amount: Decimal
    check_reference: str | None


@dataclass(frozen=True)
class ExpenseInfo:
    id: UUID
    description: str
    amount: Decimal
    expense_date: date
    created_at: datetime | None
    created_by_id: int | None
    splits: tuple[ExpenseSplitInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeletedExpense:
    """Confirmation payload returned by ``delete_expense``."""

    expense_id: UUID
    description: str
    amount: Decimal


@dataclass(frozen=True)
class DailyTotals:
    day: date
    total_inflow: Decimal
    total_outflow: Decimal


@dataclass(frozen=True)
class LabelTotal:
    label: str
    total: Decimal


@dataclass(frozen=True)
class Dashboard:
    """Movement totals over a date window, per day and for the top outflows."""

    start_date: date
    end_date: date
    total_inflow: Decimal
    total_outflow: Decimal
    balance: Decimal
    daily: tuple[DailyTotals, ...]
    top_outflows: tuple[LabelTotal, ...]
