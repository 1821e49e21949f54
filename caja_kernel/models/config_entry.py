"""
Module: caja_kernel.models.config_entry
Responsibility: Generic key/value table holding persisted ledger state.
    The receipt counter lives here under the well-known key
    ``lastReceiptNumber``.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - key is unique (uq_config_entry_key), so the counter is one row that
      ``SELECT ... FOR UPDATE`` can lock.
    - The counter value equals the highest document number across all
      receipts whenever no write is in flight.
"""

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from caja_kernel.db.base import Base

RECEIPT_COUNTER_KEY = "lastReceiptNumber"


class ConfigEntry(Base):
    """One named scalar, stored as text."""

    __tablename__ = "config_entries"

    __table_args__ = (UniqueConstraint("key", name="uq_config_entry_key"),)

    key: Mapped[str] = mapped_column(String(50), nullable=False)

    value: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<ConfigEntry {self.key}={self.value}>"
