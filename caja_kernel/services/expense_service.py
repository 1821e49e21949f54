"""
ExpenseService -- expense posting, patching and deletion.

Responsibility:
    Records cash expenses with their payment splits and posts one outflow
    movement per split into the expense day's drawer, opening (or, on
    request, reopening) that drawer when needed.

Architecture position:
    Kernel > Services -- imperative shell.
    Depends on DrawerService and CatalogService.

Invariants enforced:
    - description is non-blank, amount > 0, sum(splits) == amount at
      2 decimals, every split's payment method exists.
    - Expense + splits + outflow movements form one unit of work.
    - Every expense movement is an outflow referencing the expense and the
      split's method.
    - Flush-only: never commits the caller's transaction.

Known gap:
    ``update_expense`` replaces split rows but leaves posted movements as
    they were.  A drawer summary therefore keeps reflecting the splits at
    posting time after a split change.

Failure modes:
    - BlankDescriptionError, InvalidAmountError, UnbalancedExpenseError,
      UnknownPaymentMethodError.
    - DrawerClosedError when the drawer is closed and reopening was not
      requested.
    - ExpenseNotFoundError on update/delete/get.
"""

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from caja_kernel.db.types import ZERO, round_money, sum_money, to_money
from caja_kernel.domain.clock import Clock, SystemClock
from caja_kernel.domain.dtos import (
    DeletedExpense,
    ExpenseInfo,
    ExpensePatch,
    ExpenseSplitInfo,
    ExpenseSplitSpec,
    MovementKind,
)
from caja_kernel.exceptions import (
    BlankDescriptionError,
    ExpenseNotFoundError,
    InvalidAmountError,
    UnbalancedExpenseError,
    UnknownPaymentMethodError,
)
from caja_kernel.logging_config import get_logger
from caja_kernel.models.drawer import Movement
from caja_kernel.models.expense import Expense, ExpenseSplit
from caja_kernel.services.base import BaseService
from caja_kernel.services.catalog_service import CatalogService
from caja_kernel.services.drawer_service import DrawerService

logger = get_logger("services.expense")

LABEL_MAX_LENGTH = 100


def _clean_description(description: str | None) -> str:
    text = (description or "").strip()
    if not text:
        raise BlankDescriptionError()
    return text


def _positive_amount(amount: Decimal | str | int) -> Decimal:
    value = to_money(amount)
    if value <= ZERO:
        raise InvalidAmountError(amount)
    return value


class ExpenseService(BaseService[Expense]):
    """
    Service for the expense ledger.

    Guarantees:
        - ``create_expense`` then ``delete_expense`` leaves the drawer's
          movements as they were before.
        - Auto-open happens only through
          ``DrawerService.validate_or_auto_open``.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT re-post movements when splits change.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        drawers: DrawerService | None = None,
        catalog: CatalogService | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._drawers = drawers or DrawerService(session, self._clock)
        self._catalog = catalog or CatalogService(session)

    def _to_dto(self, expense: Expense) -> ExpenseInfo:
        return ExpenseInfo(
            id=expense.id,
            description=expense.description,
            amount=round_money(expense.amount),
            expense_date=expense.expense_date,
            created_at=expense.created_at,
            created_by_id=expense.created_by_id,
            splits=tuple(
                ExpenseSplitInfo(
                    id=s.id,
                    payment_method_id=s.payment_method_id,
                    amount=round_money(s.amount),
                    check_reference=s.check_reference,
                )
                for s in expense.splits
            ),
        )

    def _load(self, expense_id: UUID) -> Expense | None:
        return self.session.execute(
            select(Expense)
            .where(Expense.id == expense_id)
            .options(selectinload(Expense.splits))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require(self, expense_id: UUID) -> Expense:
        expense = self._load(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(expense_id)
        return expense

    def _check_splits(self, amount: Decimal, splits: Sequence[ExpenseSplitSpec]) -> None:
        splits_total = sum_money(s.amount for s in splits)
        if splits_total != amount:
            raise UnbalancedExpenseError(amount, splits_total)
        missing = self._catalog.missing_payment_methods(s.payment_method_id for s in splits)
        if missing:
            raise UnknownPaymentMethodError(missing)

    def _build_splits(self, splits: Sequence[ExpenseSplitSpec]) -> list[ExpenseSplit]:
        return [
            ExpenseSplit(
                position=position,
                payment_method_id=spec.payment_method_id,
                amount=round_money(spec.amount),
                check_reference=spec.check_reference,
            )
            for position, spec in enumerate(splits)
        ]

    # -- write operations ---------------------------------------------------

    def create_expense(
        self,
        description: str,
        amount: Decimal | str | int,
        expense_date: date | None,
        splits: Sequence[ExpenseSplitSpec],
        auto_open_if_closed: bool = False,
        actor_id: int | None = None,
    ) -> ExpenseInfo:
        """
        Record an expense and post its outflows.

        Args:
            description: What was paid for (required).
            amount: Total amount, > 0.
            expense_date: Drawer date; defaults to the clock's today.
            splits: Payment splits whose amounts add up to ``amount``.
            auto_open_if_closed: Reopen the drawer if it is closed.
            actor_id: Recording user, if known.

        Raises:
            BlankDescriptionError, InvalidAmountError,
            UnbalancedExpenseError, UnknownPaymentMethodError,
            DrawerClosedError.
        """
        text = _clean_description(description)
        value = _positive_amount(amount)
        expense_date = expense_date or self._clock.today()

        with self.unit_of_work():
            self._check_splits(value, splits)
            self._catalog.register_expense_description(text)

            drawer = self._drawers.validate_or_auto_open(
                expense_date, auto_open_if_closed, actor_id
            )

            expense = Expense(
                description=text,
                amount=value,
                expense_date=expense_date,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            expense.splits.extend(self._build_splits(splits))
            self.session.add(expense)
            self.session.flush()

            posted_at = self._clock.at_current_time(expense_date)
            for position, spec in enumerate(splits):
                self.session.add(
                    Movement(
                        drawer_id=drawer.id,
                        kind=MovementKind.OUTFLOW.value,
                        label=text[:LABEL_MAX_LENGTH],
                        amount=round_money(spec.amount),
                        expense_id=expense.id,
                        payment_method_id=spec.payment_method_id,
                        occurred_at=posted_at,
                        position=position,
                    )
                )
            self.session.flush()

        logger.info(
            "expense_created",
            extra={
                "expense_id": expense.id,
                "amount": value,
                "expense_date": expense_date,
                "splits": len(splits),
                "actor_id": actor_id,
            },
        )
        return self._to_dto(self._require(expense.id))

    def update_expense(
        self,
        expense_id: UUID,
        patch: ExpensePatch,
        actor_id: int | None = None,
    ) -> ExpenseInfo:
        """
        Apply a partial update.

        When ``patch.splits`` is given, their sum is checked against the
        (possibly also updated) amount and every split row is replaced.
        When only the amount changes, the existing splits must still add up
        to it.  Posted movements are never adjusted.

        Raises:
            ExpenseNotFoundError, BlankDescriptionError, InvalidAmountError,
            UnbalancedExpenseError, UnknownPaymentMethodError.
        """
        with self.unit_of_work():
            expense = self._require(expense_id)

            if patch.description is not None:
                expense.description = _clean_description(patch.description)
                self._catalog.register_expense_description(expense.description)
            if patch.amount is not None:
                expense.amount = _positive_amount(patch.amount)
            if patch.expense_date is not None:
                expense.expense_date = patch.expense_date

            amount = round_money(expense.amount)
            if patch.splits is not None:
                self._check_splits(amount, patch.splits)
                # delete-orphan cascade removes the old rows before the insert
                expense.splits.clear()
                self.session.flush()
                expense.splits.extend(self._build_splits(patch.splits))
                logger.warning(
                    "expense_splits_replaced_movements_unchanged",
                    extra={"expense_id": expense.id, "splits": len(patch.splits)},
                )
            elif patch.amount is not None:
                splits_total = sum_money(s.amount for s in expense.splits)
                if splits_total != amount:
                    raise UnbalancedExpenseError(amount, splits_total)

            self.session.flush()

        logger.info(
            "expense_updated",
            extra={
                "expense_id": expense_id,
                "fields": sorted(
                    k for k, v in vars(patch).items() if v is not None
                ),
                "actor_id": actor_id,
            },
        )
        return self._to_dto(self._require(expense_id))

    def delete_expense(self, expense_id: UUID, actor_id: int | None = None) -> DeletedExpense:
        """
        Delete an expense with its movements and splits.

        Returns:
            Description and amount of the removed expense.

        Raises:
            ExpenseNotFoundError: No such expense.
        """
        with self.unit_of_work():
            expense = self._require(expense_id)
            removed = DeletedExpense(
                expense_id=expense.id,
                description=expense.description,
                amount=round_money(expense.amount),
            )
            self.session.execute(delete(Movement).where(Movement.expense_id == expense_id))
            self.session.execute(
                delete(ExpenseSplit).where(ExpenseSplit.expense_id == expense_id)
            )
            self.session.execute(delete(Expense).where(Expense.id == expense_id))
            self.session.flush()

        logger.info(
            "expense_deleted",
            extra={
                "expense_id": expense_id,
                "amount": removed.amount,
                "actor_id": actor_id,
            },
        )
        return removed

    # -- read model ---------------------------------------------------------

    def get(self, expense_id: UUID) -> ExpenseInfo:
        return self._to_dto(self._require(expense_id))

    def list_expenses(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[ExpenseInfo]:
        """Expenses in an optional date range, most recent first."""
        stmt = select(Expense).options(selectinload(Expense.splits))
        if start_date is not None:
            stmt = stmt.where(Expense.expense_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(Expense.expense_date <= end_date)
        stmt = stmt.order_by(Expense.expense_date.desc(), Expense.created_at.desc())
        return [self._to_dto(e) for e in self.session.execute(stmt).scalars()]
