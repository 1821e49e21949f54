"""
Module: caja_kernel.models.catalog
Responsibility: Minimal catalog tables the ledger references: clients,
    payment methods, receipt concepts and expense descriptions.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Concept.description and ExpenseDescription.description are unique
      and stored upper-cased (normalized by CatalogService).

Audit relevance:
    The ledger owns none of these lifecycles; it only checks existence
    (clients, payment methods) and registers free-text labels it has seen
    (concepts, expense descriptions) for later autocompletion.
"""

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from caja_kernel.db.base import Base


class Client(Base):
    """A client of the practice (integer keyed, owned by the catalog)."""

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(150), nullable=False)

    tax_id: Mapped[str | None] = mapped_column(String(20), nullable=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Client {self.id} {self.name}>"


class PaymentMethod(Base):
    """Cash, transfer, check, ... (integer keyed, owned by the catalog)."""

    __tablename__ = "payment_methods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<PaymentMethod {self.id} {self.name}>"


class Concept(Base):
    """Registry of receipt line descriptions seen so far."""

    __tablename__ = "concepts"

    __table_args__ = (UniqueConstraint("description", name="uq_concept_description"),)

    description: Mapped[str] = mapped_column(String(100), nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class ExpenseDescription(Base):
    """Registry of expense descriptions seen so far."""

    __tablename__ = "expense_descriptions"

    __table_args__ = (
        UniqueConstraint("description", name="uq_expense_description"),
    )

    description: Mapped[str] = mapped_column(String(100), nullable=False)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
