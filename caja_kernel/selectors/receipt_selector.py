"""
Module: caja_kernel.selectors.receipt_selector
Responsibility: Read models over issued receipts: the latest receipt, one
    receipt with its relations (the renderer's input), and a filtered,
    paginated listing.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Date filters are calendar days in the ledger offset: a start date
      means 00:00 GMT-3, an end date means the end of that day GMT-3.

Failure modes:
    - ReceiptNotFoundError from ``get`` and ``latest``.
    - InvalidPageError on page/limit below 1.
"""

import math
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session, selectinload

from caja_kernel.domain.clock import Clock, SystemClock
from caja_kernel.domain.dtos import ReceiptInfo, ReceiptPage
from caja_kernel.exceptions import InvalidPageError, ReceiptNotFoundError
from caja_kernel.models.catalog import Client
from caja_kernel.models.receipt import Receipt
from caja_kernel.selectors.base import BaseSelector
from caja_kernel.services.receipt_service import receipt_to_dto

_RELATIONS = (
    selectinload(Receipt.items),
    selectinload(Receipt.payments),
    selectinload(Receipt.client),
)


class ReceiptSelector(BaseSelector[Receipt]):
    """Read-only queries over receipts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get(self, receipt_id: UUID) -> ReceiptInfo:
        """One receipt with client, items and payments."""
        receipt = self.session.execute(
            select(Receipt).where(Receipt.id == receipt_id).options(*_RELATIONS)
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError(receipt_id)
        return receipt_to_dto(receipt)

    def get_by_number(self, document_number: int) -> ReceiptInfo:
        receipt = self.session.execute(
            select(Receipt)
            .where(Receipt.document_number == document_number)
            .options(*_RELATIONS)
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError()
        return receipt_to_dto(receipt)

    def latest(self) -> ReceiptInfo:
        """The receipt with the highest document number."""
        receipt = self.session.execute(
            select(Receipt)
            .order_by(Receipt.document_number.desc())
            .limit(1)
            .options(*_RELATIONS)
        ).scalar_one_or_none()
        if receipt is None:
            raise ReceiptNotFoundError()
        return receipt_to_dto(receipt)

    def list(
        self,
        page: int = 1,
        limit: int = 10,
        search: str | None = None,
        client_id: int | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        ascending: bool = False,
    ) -> ReceiptPage:
        """
        Filtered receipt listing ordered by issue time.

        Args:
            page: 1-based page number.
            limit: Page size.
            search: Case-insensitive match on client name or document number.
            client_id: Only this client's receipts.
            start_date: First calendar day included.
            end_date: Last calendar day included.
            ascending: Oldest first when True (default newest first).
        """
        if page < 1 or limit < 1:
            raise InvalidPageError(page, limit)

        conditions = []
        if client_id is not None:
            conditions.append(Receipt.client_id == client_id)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Client.name.ilike(pattern),
                    cast(Receipt.document_number, String).ilike(pattern),
                )
            )
        if start_date is not None:
            conditions.append(Receipt.issued_at >= self._clock.start_of_day(start_date))
        if end_date is not None:
            conditions.append(
                Receipt.issued_at < self._clock.start_of_day(end_date + timedelta(days=1))
            )

        base = select(Receipt.id).join(Client, Receipt.client_id == Client.id).where(*conditions)
        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()

        if ascending:
            ordering = (Receipt.issued_at.asc(), Receipt.document_number.asc())
        else:
            ordering = (Receipt.issued_at.desc(), Receipt.document_number.desc())

        rows = self.session.execute(
            select(Receipt)
            .join(Client, Receipt.client_id == Client.id)
            .where(*conditions)
            .options(*_RELATIONS)
            .order_by(*ordering)
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()

        return ReceiptPage(
            receipts=tuple(receipt_to_dto(r) for r in rows),
            total=total,
            page=page,
            limit=limit,
            last_page=max(1, math.ceil(total / limit)),
        )
