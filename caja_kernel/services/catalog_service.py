"""
CatalogService -- existence checks and label registries.

Responsibility:
    The ledger's only contact with catalog data: checks that clients and
    payment methods exist, and registers the free-text labels receipts and
    expenses use (upper-cased, find-or-create) for autocompletion.

Architecture position:
    Kernel > Services.  Called by ReceiptService and ExpenseService inside
    their unit of work.  Client and payment-method CRUD lives outside the
    kernel; ``add_client``/``add_payment_method`` exist for bootstrap and
    tests.

Invariants enforced:
    - Registered descriptions are trimmed and upper-cased; one row per
      description.  A concurrent duplicate insert is absorbed with a
      savepoint rollback and re-read.
    - Registering an inactive description reactivates it.
"""

from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from caja_kernel.logging_config import get_logger
from caja_kernel.models.catalog import Client, Concept, ExpenseDescription, PaymentMethod
from caja_kernel.services.base import BaseService

logger = get_logger("services.catalog")

SEARCH_LIMIT = 20


def normalize_description(description: str) -> str:
    return description.strip().upper()


class CatalogService(BaseService[Client]):
    """
    Catalog collaborator for the ledger.

    Non-goals:
        - Does NOT manage client or payment-method lifecycles.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -- existence checks ---------------------------------------------------

    def get_client(self, client_id: int) -> Client | None:
        return self.session.get(Client, client_id)

    def client_exists(self, client_id: int) -> bool:
        return self.get_client(client_id) is not None

    def missing_payment_methods(self, method_ids: Iterable[int]) -> list[int]:
        """Return the ids (deduplicated, sorted) that are not in the catalog."""
        wanted = set(method_ids)
        if not wanted:
            return []
        found = set(
            self.session.execute(
                select(PaymentMethod.id).where(PaymentMethod.id.in_(wanted))
            ).scalars()
        )
        return sorted(wanted - found)

    # -- registries ---------------------------------------------------------

    def register_concept(self, description: str) -> str:
        """Find-or-create a receipt concept; returns the normalized text."""
        return self._find_or_create(Concept, description)

    def register_expense_description(self, description: str) -> str:
        """Find-or-create an expense description; returns the normalized text."""
        return self._find_or_create(ExpenseDescription, description)

    def search_concepts(self, term: str | None = None) -> list[str]:
        return self._search(Concept, term)

    def search_expense_descriptions(self, term: str | None = None) -> list[str]:
        return self._search(ExpenseDescription, term)

    def _find_or_create(self, model: type[Concept] | type[ExpenseDescription], description: str) -> str:
        text = normalize_description(description)
        row = self.session.execute(
            select(model).where(model.description == text)
        ).scalar_one_or_none()

        if row is None:
            savepoint = self.session.begin_nested()
            try:
                self.session.add(model(description=text, active=True))
                self.session.flush()
                savepoint.commit()
                logger.debug(
                    "description_registered",
                    extra={"registry": model.__tablename__, "description": text},
                )
            except IntegrityError:
                # Registered concurrently by another writer
                savepoint.rollback()
                row = self.session.execute(
                    select(model).where(model.description == text)
                ).scalar_one()

        if row is not None and not row.active:
            row.active = True
            self.session.flush()
            logger.info(
                "description_reactivated",
                extra={"registry": model.__tablename__, "description": text},
            )
        return text

    def _search(self, model: type[Concept] | type[ExpenseDescription], term: str | None) -> list[str]:
        stmt = select(model.description).where(model.active.is_(True))
        if term:
            stmt = stmt.where(model.description.like(f"%{normalize_description(term)}%"))
        stmt = stmt.order_by(model.description).limit(SEARCH_LIMIT)
        return list(self.session.execute(stmt).scalars())

    # -- bootstrap ----------------------------------------------------------

    def add_client(self, name: str, tax_id: str | None = None) -> int:
        client = Client(name=name, tax_id=tax_id, active=True)
        self.session.add(client)
        self.session.flush()
        return client.id

    def add_payment_method(self, name: str) -> int:
        method = PaymentMethod(name=name, active=True)
        self.session.add(method)
        self.session.flush()
        return method.id
