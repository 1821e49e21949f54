"""
DrawerService -- daily cash drawer lifecycle and balance derivation.

Responsibility:
    Opens, closes, reopens and auto-closes the one-per-day cash drawers,
    guards posting into them, and derives their running balance from
    their movements.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by ReceiptService (``validate_open``) and ExpenseService
    (``validate_or_auto_open``) before they post movements, and by the
    operator CLI / nightly job (``auto_close_stale``).

Invariants enforced:
    - At most one drawer per date: ``open()`` is idempotent and absorbs a
      concurrent duplicate insert by re-reading the winner's row.
    - A closed drawer has closing_balance and closed_at set; an open drawer
      that was never closed has neither.
    - Balances are derived on every read via
      ``domain.balance.compute_running_balance``; nothing is cached.
    - ``close()`` without an override persists exactly the balance
      ``get_summary()`` reports at that moment.
    - Receipts never auto-open a drawer; expenses may.
    - Flush-only: never commits the caller's transaction.

Failure modes:
    - DrawerNotFoundError: no drawer for the date.
    - DrawerAlreadyClosedError / DrawerAlreadyOpenError: wrong state for
      close / reopen.
    - DrawerClosedError: posting guard hit a closed drawer.
    - AutoCloseFailedError: every stale drawer in a batch failed.

Audit relevance:
    Open, close, reopen and auto-close are logged at INFO with the drawer
    date, actor and balance.  Auto-close also writes an audit record per
    drawer when an audit sink is wired in.
"""

import math
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from caja_kernel.db.types import ZERO, round_money, to_money
from caja_kernel.domain.balance import RunningBalance, compute_running_balance
from caja_kernel.domain.clock import Clock, SystemClock
from caja_kernel.domain.dtos import (
    DrawerInfo,
    DrawerSummary,
    MovementKind,
    MovementLine,
)
from caja_kernel.exceptions import (
    AutoCloseFailedError,
    CajaKernelError,
    DrawerAlreadyClosedError,
    DrawerAlreadyOpenError,
    DrawerClosedError,
    DrawerDateConflictError,
    DrawerNotFoundError,
    InvalidPageError,
)
from caja_kernel.logging_config import LogContext, get_logger
from caja_kernel.models.audit import AuditAction
from caja_kernel.models.drawer import Drawer, Movement
from caja_kernel.services.auditor_service import AuditSink, record_best_effort
from caja_kernel.services.base import BaseService

logger = get_logger("services.drawer")


class DrawerService(BaseService[Drawer]):
    """
    Service for the daily cash drawer.

    Contract:
        Accepts calendar dates (in the ledger's GMT-3 offset) and returns
        frozen ``DrawerInfo`` / ``DrawerSummary`` DTOs.  Every mutating
        method runs in its own savepoint of the caller's transaction.

    Guarantees:
        - Concurrent close/reopen of one drawer are serialized by
          ``SELECT ... FOR UPDATE`` on the drawer row.
        - ``reopen()`` keeps the previous closing balance as a historical,
          non-authoritative value.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT store a running balance.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditSink | None = None,
        default_opening_balance: Decimal = ZERO,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._auditor = auditor
        self._default_opening_balance = to_money(default_opening_balance)

    # -- conversion ---------------------------------------------------------

    def _to_dto(self, drawer: Drawer) -> DrawerInfo:
        return DrawerInfo(
            id=drawer.id,
            drawer_date=drawer.drawer_date,
            opening_balance=round_money(drawer.opening_balance),
            closing_balance=(
                round_money(drawer.closing_balance)
                if drawer.closing_balance is not None
                else None
            ),
            is_closed=drawer.is_closed,
            closed_at=drawer.closed_at,
            opened_by_id=drawer.opened_by_id,
            closed_by_id=drawer.closed_by_id,
        )

    # -- lookup -------------------------------------------------------------

    def _get_drawer(self, drawer_date: date) -> Drawer | None:
        return self.session.execute(
            select(Drawer).where(Drawer.drawer_date == drawer_date)
        ).scalar_one_or_none()

    def _get_drawer_for_update(self, drawer_date: date) -> Drawer | None:
        return self.session.execute(
            select(Drawer)
            .where(Drawer.drawer_date == drawer_date)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _require_drawer(self, drawer_date: date, for_update: bool = False) -> Drawer:
        drawer = (
            self._get_drawer_for_update(drawer_date)
            if for_update
            else self._get_drawer(drawer_date)
        )
        if drawer is None:
            raise DrawerNotFoundError(drawer_date)
        return drawer

    def _movements(self, drawer: Drawer) -> list[Movement]:
        return list(
            self.session.execute(
                select(Movement)
                .where(Movement.drawer_id == drawer.id)
                .order_by(Movement.occurred_at, Movement.position, Movement.id)
            ).scalars()
        )

    def _balance(self, drawer: Drawer) -> RunningBalance[Movement]:
        return compute_running_balance(drawer.opening_balance, self._movements(drawer))

    # -- lifecycle ----------------------------------------------------------

    def open(
        self,
        drawer_date: date,
        opening_balance: Decimal | str | None = None,
        actor_id: int | None = None,
    ) -> DrawerInfo:
        """
        Open the drawer for ``drawer_date`` (idempotent).

        If a drawer already exists for the date it is returned unchanged,
        whatever its state and whatever ``opening_balance`` was passed.

        Args:
            drawer_date: Calendar date of the drawer.
            opening_balance: Defaults to the configured default ("0.00").
            actor_id: Opening user, if known.

        Returns:
            DrawerInfo of the existing or newly created drawer.
        """
        with self.unit_of_work():
            drawer = self._open_drawer(drawer_date, opening_balance, actor_id)
        return self._to_dto(drawer)

    def _open_drawer(
        self,
        drawer_date: date,
        opening_balance: Decimal | str | None,
        actor_id: int | None,
    ) -> Drawer:
        existing = self._get_drawer(drawer_date)
        if existing is not None:
            return existing

        balance = (
            to_money(opening_balance)
            if opening_balance is not None
            else self._default_opening_balance
        )
        savepoint = self.session.begin_nested()
        try:
            drawer = Drawer(
                drawer_date=drawer_date,
                opening_balance=balance,
                closing_balance=None,
                is_closed=False,
                closed_at=None,
                opened_by_id=actor_id,
            )
            self.session.add(drawer)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            # Another writer opened the same date first
            savepoint.rollback()
            logger.info(
                "drawer_open_race_resolved",
                extra={"drawer_date": drawer_date},
            )
            existing = self._get_drawer(drawer_date)
            if existing is None:
                raise DrawerDateConflictError(drawer_date) from exc
            return existing

        logger.info(
            "drawer_opened",
            extra={
                "drawer_date": drawer_date,
                "opening_balance": balance,
                "actor_id": actor_id,
            },
        )
        return drawer

    def close(
        self,
        drawer_date: date,
        closing_balance: Decimal | str | None = None,
        actor_id: int | None = None,
    ) -> DrawerInfo:
        """
        Close the drawer for ``drawer_date``.

        Postconditions:
            - ``is_closed`` is True, ``closed_at`` is the clock's now.
            - ``closing_balance`` is the override if given, else the
              running-balance result at this moment.

        Raises:
            DrawerNotFoundError: No drawer for the date.
            DrawerAlreadyClosedError: Drawer is already closed.
        """
        with self.unit_of_work():
            drawer = self._require_drawer(drawer_date, for_update=True)
            self._close_drawer(drawer, closing_balance, actor_id)
        return self._to_dto(drawer)

    def _close_drawer(
        self,
        drawer: Drawer,
        closing_balance: Decimal | str | None,
        actor_id: int | None,
    ) -> None:
        if drawer.is_closed:
            raise DrawerAlreadyClosedError(drawer.drawer_date)

        derived = self._balance(drawer).closing_balance
        final = to_money(closing_balance) if closing_balance is not None else derived

        drawer.closing_balance = final
        drawer.is_closed = True
        drawer.closed_at = self._clock.now()
        drawer.closed_by_id = actor_id
        self.session.flush()

        logger.info(
            "drawer_closed",
            extra={
                "drawer_date": drawer.drawer_date,
                "closing_balance": final,
                "derived_balance": derived,
                "override": closing_balance is not None,
                "actor_id": actor_id,
            },
        )

    def reopen(self, drawer_date: date, actor_id: int | None = None) -> DrawerInfo:
        """
        Reopen a closed drawer.

        The previous closing balance is retained as a historical value; it
        is not authoritative while the drawer is open.

        Raises:
            DrawerNotFoundError: No drawer for the date.
            DrawerAlreadyOpenError: Drawer is already open.
        """
        with self.unit_of_work():
            drawer = self._require_drawer(drawer_date, for_update=True)
            self._reopen_drawer(drawer, actor_id)
        return self._to_dto(drawer)

    def _reopen_drawer(self, drawer: Drawer, actor_id: int | None) -> None:
        if not drawer.is_closed:
            raise DrawerAlreadyOpenError(drawer.drawer_date)

        drawer.is_closed = False
        drawer.closed_at = None
        drawer.closed_by_id = None
        self.session.flush()

        logger.info(
            "drawer_reopened",
            extra={
                "drawer_date": drawer.drawer_date,
                "retained_closing_balance": drawer.closing_balance,
                "actor_id": actor_id,
            },
        )

    # -- read model ---------------------------------------------------------

    def get_summary(
        self,
        drawer_date: date,
        page: int | None = None,
        limit: int | None = None,
    ) -> DrawerSummary:
        """
        Drawer with its movements newest-first and derived totals.

        The running balance is computed over ALL movements in ascending
        timestamp order before the page window is applied, so each line's
        balance is independent of pagination.  Pagination applies only
        when ``limit`` is given; ``page`` defaults to 1.

        Raises:
            DrawerNotFoundError: No drawer for the date.
            InvalidPageError: page or limit below 1.
        """
        if (page is not None and page < 1) or (limit is not None and limit < 1):
            raise InvalidPageError(page, limit)

        drawer = self._require_drawer(drawer_date)
        result = self._balance(drawer)

        lines = [
            MovementLine(
                id=m.movement.id,
                kind=MovementKind(m.movement.kind),
                label=m.movement.label,
                amount=round_money(m.movement.amount),
                occurred_at=m.movement.occurred_at,
                running_balance=m.running_balance,
                receipt_id=m.movement.receipt_id,
                expense_id=m.movement.expense_id,
                payment_method_id=m.movement.payment_method_id,
            )
            for m in reversed(result.lines)
        ]
        total = len(lines)

        last_page = 1
        if limit is not None:
            page = page or 1
            start = (page - 1) * limit
            lines = lines[start:start + limit]
            last_page = max(1, math.ceil(total / limit))

        return DrawerSummary(
            drawer=self._to_dto(drawer),
            movements=tuple(lines),
            total_inflow=result.total_inflow,
            total_outflow=result.total_outflow,
            closing_balance=result.closing_balance,
            total=total,
            page=page if limit is not None else None,
            limit=limit,
            last_page=last_page,
        )

    # -- posting guards -----------------------------------------------------

    def validate_open(self, drawer_date: date) -> DrawerInfo:
        """
        Guard for writers that must never open a drawer (receipts).

        Takes a shared row lock so a concurrent ``close()`` waits for the
        posting transaction to finish.

        Raises:
            DrawerNotFoundError: No drawer for the date.
            DrawerClosedError: Drawer is closed.
        """
        drawer = self.session.execute(
            select(Drawer)
            .where(Drawer.drawer_date == drawer_date)
            .with_for_update(read=True)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if drawer is None:
            raise DrawerNotFoundError(drawer_date)
        if drawer.is_closed:
            logger.warning(
                "posting_into_closed_drawer_rejected",
                extra={"drawer_date": drawer_date},
            )
            raise DrawerClosedError(drawer_date)
        return self._to_dto(drawer)

    def validate_or_auto_open(
        self,
        drawer_date: date,
        allow_reopen_if_closed: bool = False,
        actor_id: int | None = None,
    ) -> DrawerInfo:
        """
        Guard for writers that may open the drawer on demand (expenses).

        - No drawer: open one with a zero opening balance, whatever the
          configured default.
        - Open drawer: return it.
        - Closed drawer and ``allow_reopen_if_closed``: reopen it.
        - Closed drawer otherwise: DrawerClosedError.
        """
        with self.unit_of_work():
            drawer = self._get_drawer_for_update(drawer_date)
            if drawer is None:
                drawer = self._open_drawer(drawer_date, ZERO, actor_id)
            elif drawer.is_closed:
                if not allow_reopen_if_closed:
                    raise DrawerClosedError(drawer_date)
                self._reopen_drawer(drawer, actor_id)
        return self._to_dto(drawer)

    # -- batch --------------------------------------------------------------

    def _stale_drawers(self, today: date) -> list[Drawer]:
        return list(
            self.session.execute(
                select(Drawer)
                .where(Drawer.is_closed.is_(False), Drawer.drawer_date < today)
                .order_by(Drawer.drawer_date)
            ).scalars()
        )

    def list_open_before(self, today: date | None = None) -> list[DrawerInfo]:
        """Open drawers dated before ``today`` (default: the clock's today)."""
        today = today or self._clock.today()
        return [self._to_dto(d) for d in self._stale_drawers(today)]

    def auto_close_stale(self, today: date | None = None) -> list[DrawerInfo]:
        """
        Close every open drawer dated before ``today``.

        Today's own drawer is never touched.  Each drawer closes in its own
        savepoint with the running balance; a failure is logged and the
        loop continues with the next drawer.

        Returns:
            The drawers that were closed, oldest first.

        Raises:
            AutoCloseFailedError: There were candidates and every one failed.
        """
        today = today or self._clock.today()
        candidates = [d.drawer_date for d in self._stale_drawers(today)]

        closed: list[DrawerInfo] = []
        failed: list[date] = []
        for drawer_date in candidates:
            with LogContext.bind(operation="auto_close", drawer_date=drawer_date.isoformat()):
                try:
                    with self.session.begin_nested():
                        drawer = self._require_drawer(drawer_date, for_update=True)
                        if drawer.is_closed:
                            # Closed by someone else since the scan
                            continue
                        self._close_drawer(drawer, None, None)
                except (CajaKernelError, SQLAlchemyError):
                    logger.error(
                        "drawer_auto_close_failed",
                        extra={"drawer_date": drawer_date},
                        exc_info=True,
                    )
                    failed.append(drawer_date)
                    continue

                closed.append(self._to_dto(drawer))
                if self._auditor is not None:
                    record_best_effort(
                        self._auditor,
                        None,
                        AuditAction.DRAWER_AUTO_CLOSED,
                        "Drawer",
                        drawer.id,
                        {
                            "drawer_date": drawer_date.isoformat(),
                            "closing_balance": str(drawer.closing_balance),
                        },
                    )

        logger.info(
            "stale_drawers_auto_closed",
            extra={
                "today": today,
                "candidates": len(candidates),
                "closed": len(closed),
                "failed": len(failed),
            },
        )

        if candidates and failed and len(failed) == len(candidates):
            raise AutoCloseFailedError(failed)
        return closed
