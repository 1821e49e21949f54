"""
ReceiptService -- receipt issuance, void-last and out-of-sequence deletion.

Responsibility:
    Issues receipts with gapless document numbers and posts one inflow
    movement per payment into the receipt day's drawer.  Voids only the
    highest-numbered receipt (releasing its number), or deletes an
    arbitrary receipt for historical corrections (leaving a gap).

Architecture position:
    Kernel > Services -- imperative shell.
    Depends on DocumentCounter, DrawerService, CatalogService and an
    AuditSink.  Called by the HTTP layer / CLI inside one transaction per
    request.

Invariants enforced:
    - sum(items) == total == sum(payments) at 2 decimals.
    - Counter lock + increment + receipt insert + movements form one unit
      of work (one SAVEPOINT of the caller's transaction); any failure
      rolls back the counter increment with everything else.
    - Receipts never auto-open a drawer: a missing or closed drawer blocks
      issuance.
    - Every receipt movement is an inflow referencing the receipt and the
      payment's method.
    - ``void_last`` only ever removes the single highest-numbered receipt,
      and only if the counter equals its number; the counter then drops
      by one.
    - Flush-only: never commits the caller's transaction.

Failure modes:
    - EmptyReceiptError, UnbalancedReceiptError, UnknownPaymentMethodError.
    - ClientNotFoundError, DrawerNotFoundError.
    - DrawerClosedError.
    - CounterLockTimeoutError, DocumentNumberConflictError.
    - NoReceiptsToVoidError, NotLastReceiptError, CounterMismatchError.
    - ReceiptNotFoundError on delete_by_id.

Audit relevance:
    ``void_last`` and ``delete_by_id`` write an audit record describing
    the removed receipt (best effort; audit failures are logged only).
    Issuance is logged at INFO with document number, client and total.
"""

from collections.abc import Sequence
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from caja_kernel.db.types import format_money, round_money, sum_money
from caja_kernel.domain.clock import Clock, SystemClock
from caja_kernel.domain.dtos import (
    MovementKind,
    ReceiptInfo,
    ReceiptItemInfo,
    ReceiptItemSpec,
    ReceiptPaymentInfo,
    ReceiptPaymentSpec,
)
from caja_kernel.exceptions import (
    ClientNotFoundError,
    CounterMismatchError,
    DocumentNumberConflictError,
    EmptyReceiptError,
    NoReceiptsToVoidError,
    NotLastReceiptError,
    ReceiptNotFoundError,
    UnbalancedReceiptError,
    UnknownPaymentMethodError,
)
from caja_kernel.logging_config import get_logger
from caja_kernel.models.audit import AuditAction
from caja_kernel.models.drawer import Movement
from caja_kernel.models.receipt import Receipt, ReceiptItem, ReceiptPayment
from caja_kernel.services.auditor_service import AuditorService, AuditSink, record_best_effort
from caja_kernel.services.base import BaseService
from caja_kernel.services.catalog_service import CatalogService
from caja_kernel.services.counter_service import DocumentCounter
from caja_kernel.services.drawer_service import DrawerService

logger = get_logger("services.receipt")

MOVEMENT_LABEL_PREFIX = "Recibo"
DOCUMENT_NUMBER_CONSTRAINT = "uq_receipt_document_number"


def _is_document_number_violation(exc: IntegrityError) -> bool:
    """True when ``exc`` is a duplicate receipt number, not some other constraint."""
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint is not None:
        return constraint == DOCUMENT_NUMBER_CONSTRAINT
    # SQLite names the column instead of the constraint
    message = str(exc.orig)
    return DOCUMENT_NUMBER_CONSTRAINT in message or "receipts.document_number" in message


def receipt_to_dto(receipt: Receipt) -> ReceiptInfo:
    """Convert a Receipt with loaded relations into a ReceiptInfo DTO."""
    return ReceiptInfo(
        id=receipt.id,
        document_number=receipt.document_number,
        client_id=receipt.client_id,
        client_name=receipt.client.name if receipt.client is not None else None,
        issued_at=receipt.issued_at,
        total=round_money(receipt.total),
        created_by_id=receipt.created_by_id,
        items=tuple(
            ReceiptItemInfo(
                id=item.id,
                description=item.description,
                month=item.month,
                year=item.year,
                amount=round_money(item.amount),
            )
            for item in receipt.items
        ),
        payments=tuple(
            ReceiptPaymentInfo(
                id=payment.id,
                payment_method_id=payment.payment_method_id,
                amount=round_money(payment.amount),
                check_numbers=payment.check_numbers,
            )
            for payment in receipt.payments
        ),
    )


class ReceiptService(BaseService[Receipt]):
    """
    Service for the receipt ledger.

    Contract:
        Every public write runs as one savepoint-scoped unit inside the
        caller's transaction and returns frozen DTOs.

    Guarantees:
        - Concurrent ``create_receipt`` calls receive distinct, consecutive
          document numbers (row lock on the counter).
        - ``void_last`` followed by ``create_receipt`` reissues the voided
          number.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT render documents; ``receipt_to_dto`` is the read model
          the renderer consumes.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        drawers: DrawerService | None = None,
        counter: DocumentCounter | None = None,
        catalog: CatalogService | None = None,
        auditor: AuditSink | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._drawers = drawers or DrawerService(session, self._clock)
        self._counter = counter or DocumentCounter(session)
        self._catalog = catalog or CatalogService(session)
        self._auditor = auditor or AuditorService(session, self._clock)

    # -- issuance -----------------------------------------------------------

    def create_receipt(
        self,
        client_id: int,
        items: Sequence[ReceiptItemSpec],
        payments: Sequence[ReceiptPaymentSpec],
        issue_date: date | datetime | None = None,
        actor_id: int | None = None,
    ) -> ReceiptInfo:
        """
        Issue a receipt.

        Steps, all inside one unit of work:
            1. Reject empty items or payments.
            2. Check the client and every payment method exist.
            3. Check sum(items) == sum(payments) at 2 decimals.
            4. Lock the counter row and take the next number.
            5. Insert the receipt with items and payments.
            6. Require the receipt day's drawer to be open (no auto-open).
            7. Post one inflow per payment, dated on the receipt's
               calendar day at the current time of day.

        Args:
            client_id: Client being billed.
            items: Line items (at least one).
            payments: Payments by method (at least one).
            issue_date: Issue timestamp or calendar date; defaults to now.
                A bare date gets the current time of day; naive datetimes
                are taken to be in the ledger offset.
            actor_id: Issuing user, if known.

        Returns:
            The receipt with items and payments.
        """
        if not items:
            raise EmptyReceiptError("item")
        if not payments:
            raise EmptyReceiptError("payment")

        items_total = sum_money(i.amount for i in items)
        payments_total = sum_money(p.amount for p in payments)

        issued_at = self._resolve_issue_time(issue_date)
        drawer_date = issued_at.astimezone(self._clock.tz).date()

        with self.unit_of_work():
            # Catalog reads go through the same transaction
            client = self._catalog.get_client(client_id)
            if client is None:
                raise ClientNotFoundError(client_id)

            missing = self._catalog.missing_payment_methods(
                p.payment_method_id for p in payments
            )
            if missing:
                raise UnknownPaymentMethodError(missing)

            if items_total != payments_total:
                raise UnbalancedReceiptError(items_total, payments_total)

            number = self._counter.next_value()

            receipt = Receipt(
                client_id=client_id,
                document_number=number,
                issued_at=issued_at,
                total=items_total,
                created_by_id=actor_id,
            )
            for position, spec in enumerate(items):
                receipt.items.append(
                    ReceiptItem(
                        position=position,
                        description=self._catalog.register_concept(spec.description),
                        month=spec.month,
                        year=spec.year,
                        amount=round_money(spec.amount),
                    )
                )
            for position, spec in enumerate(payments):
                receipt.payments.append(
                    ReceiptPayment(
                        position=position,
                        payment_method_id=spec.payment_method_id,
                        amount=round_money(spec.amount),
                        check_numbers=spec.check_numbers,
                    )
                )
            self.session.add(receipt)
            try:
                self.session.flush()
            except IntegrityError as exc:
                if _is_document_number_violation(exc):
                    raise DocumentNumberConflictError(number) from exc
                raise

            drawer = self._drawers.validate_open(drawer_date)

            posted_at = self._clock.at_current_time(drawer_date)
            for position, spec in enumerate(payments):
                self.session.add(
                    Movement(
                        drawer_id=drawer.id,
                        kind=MovementKind.INFLOW.value,
                        label=f"{MOVEMENT_LABEL_PREFIX} {number}",
                        amount=round_money(spec.amount),
                        receipt_id=receipt.id,
                        payment_method_id=spec.payment_method_id,
                        occurred_at=posted_at,
                        position=position,
                    )
                )
            self.session.flush()

        logger.info(
            "receipt_created",
            extra={
                "document_number": number,
                "client_id": client_id,
                "total": items_total,
                "drawer_date": drawer_date,
                "payments": len(payments),
                "actor_id": actor_id,
            },
        )
        return receipt_to_dto(self._load(receipt.id))

    def _resolve_issue_time(self, issue_date: date | datetime | None) -> datetime:
        if issue_date is None:
            return self._clock.now()
        if not isinstance(issue_date, datetime):
            return self._clock.at_current_time(issue_date)
        if issue_date.tzinfo is None:
            return issue_date.replace(tzinfo=self._clock.tz)
        return issue_date

    def _load(self, receipt_id: UUID) -> Receipt:
        return self.session.execute(
            select(Receipt)
            .where(Receipt.id == receipt_id)
            .options(
                selectinload(Receipt.items),
                selectinload(Receipt.payments),
                selectinload(Receipt.client),
            )
            .execution_options(populate_existing=True)
        ).scalar_one()

    # -- removal ------------------------------------------------------------

    def void_last(self, actor_id: int | None = None) -> ReceiptInfo:
        """
        Void the highest-numbered receipt and release its number.

        The counter row is locked first, so a concurrent issuance either
        completes before the void (and becomes the new highest, which this
        call then targets) or waits until the void commits.

        Returns:
            The receipt as it was before removal.

        Raises:
            NoReceiptsToVoidError: The ledger is empty.
            NotLastReceiptError: A higher-numbered receipt exists.
            CounterMismatchError: The counter differs from its number.
        """
        with self.unit_of_work():
            counter_value = self._counter.locked_value()

            last = self.session.execute(
                select(Receipt)
                .order_by(Receipt.document_number.desc())
                .limit(1)
                .options(
                    selectinload(Receipt.items),
                    selectinload(Receipt.payments),
                    selectinload(Receipt.client),
                )
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
            if last is None:
                raise NoReceiptsToVoidError()

            higher = self.session.execute(
                select(Receipt.document_number)
                .where(Receipt.document_number > last.document_number)
                .limit(1)
            ).scalar_one_or_none()
            if higher is not None:
                raise NotLastReceiptError(last.document_number, higher)

            if counter_value != last.document_number:
                logger.error(
                    "receipt_counter_mismatch",
                    extra={
                        "counter_value": counter_value,
                        "document_number": last.document_number,
                    },
                )
                raise CounterMismatchError(counter_value, last.document_number)

            snapshot = receipt_to_dto(last)
            self._delete_receipt_rows(last.id)
            new_value = self._counter.release(last.document_number)

        logger.info(
            "receipt_voided",
            extra={
                "document_number": snapshot.document_number,
                "counter_value": new_value,
                "actor_id": actor_id,
            },
        )
        record_best_effort(
            self._auditor,
            actor_id,
            AuditAction.DELETE,
            "Receipt",
            snapshot.id,
            self._audit_detail(snapshot, actor_id),
        )
        return snapshot

    def delete_by_id(self, receipt_id: UUID, actor_id: int | None = None) -> ReceiptInfo:
        """
        Delete any receipt without touching the counter.

        Intended for historical corrections where renumbering is not
        wanted.  The number sequence is left with a gap, which the audit
        record flags.

        Raises:
            ReceiptNotFoundError: No such receipt.
        """
        with self.unit_of_work():
            receipt = self.session.execute(
                select(Receipt)
                .where(Receipt.id == receipt_id)
                .options(
                    selectinload(Receipt.items),
                    selectinload(Receipt.payments),
                    selectinload(Receipt.client),
                )
            ).scalar_one_or_none()
            if receipt is None:
                raise ReceiptNotFoundError(receipt_id)

            snapshot = receipt_to_dto(receipt)
            self._delete_receipt_rows(receipt.id)

        logger.warning(
            "receipt_deleted_out_of_sequence",
            extra={
                "document_number": snapshot.document_number,
                "actor_id": actor_id,
            },
        )
        detail = self._audit_detail(snapshot, actor_id)
        detail["note"] = (
            f"Receipt {snapshot.document_number} deleted without adjusting the "
            "counter; the numbering sequence now has a gap"
        )
        record_best_effort(
            self._auditor,
            actor_id,
            AuditAction.DELETE_WITHOUT_COUNTER,
            "Receipt",
            snapshot.id,
            detail,
        )
        return snapshot

    def _delete_receipt_rows(self, receipt_id: UUID) -> None:
        """Delete movements, payments, items, then the receipt."""
        self.session.execute(delete(Movement).where(Movement.receipt_id == receipt_id))
        self.session.execute(
            delete(ReceiptPayment).where(ReceiptPayment.receipt_id == receipt_id)
        )
        self.session.execute(delete(ReceiptItem).where(ReceiptItem.receipt_id == receipt_id))
        self.session.execute(delete(Receipt).where(Receipt.id == receipt_id))
        self.session.flush()

    @staticmethod
    def _audit_detail(receipt: ReceiptInfo, actor_id: int | None) -> dict:
        return {
            "document_number": receipt.document_number,
            "client_id": receipt.client_id,
            "total": format_money(receipt.total),
            "issued_at": receipt.issued_at.isoformat(),
            "removed_by": actor_id,
        }
