"""
DocumentCounter -- gapless receipt numbering via a locked counter row.

Responsibility:
    Hands out receipt document numbers.  The highest issued number is a
    row of the ``config_entries`` key/value table; every allocation reads
    that row under ``SELECT ... FOR UPDATE``, increments it, and writes it
    back inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ReceiptService.create_receipt (allocate) and
    ReceiptService.void_last (release).

Invariants enforced:
    - Numbers are strictly increasing and gapless: the locked counter row
      is the sole source of truth.  The aggregate MAX()+1 anti-pattern is
      FORBIDDEN.
    - The increment becomes visible only when the caller's transaction
      commits; a rollback returns the number.
    - A second concurrent allocation blocks on the row lock until the
      first transaction commits or rolls back.

Failure modes:
    - IntegrityError on a concurrent first-use race when creating the row
      (handled via savepoint rollback and re-read).
    - CounterLockTimeoutError when the lock wait exceeds the configured
      lock timeout.
    - CounterMismatchError when release() finds an unexpected value.

Audit relevance:
    Allocation and release are logged at DEBUG with key and value.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from caja_kernel.exceptions import CounterLockTimeoutError, CounterMismatchError
from caja_kernel.logging_config import get_logger
from caja_kernel.models.config_entry import RECEIPT_COUNTER_KEY, ConfigEntry

logger = get_logger("services.counter")


class DocumentCounter:
    """
    Locked counter for receipt document numbers.

    Contract:
        Must be used inside an active transaction; the row lock is held
        until that transaction ends.

    Guarantees:
        - ``next_value()`` returns current + 1 and persists it.
        - ``release(n)`` sets the counter to n - 1 only if it currently
          equals n.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT serialize with an in-process mutex; correctness holds
          across processes sharing one database.
    """

    def __init__(self, session: Session, key: str = RECEIPT_COUNTER_KEY):
        self._session = session
        self.key = key

    def _lock_entry(self) -> ConfigEntry | None:
        try:
            return self._session.execute(
                select(ConfigEntry)
                .where(ConfigEntry.key == self.key)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        except OperationalError as exc:
            logger.warning(
                "counter_lock_timeout",
                extra={"counter_key": self.key},
            )
            raise CounterLockTimeoutError(self.key) from exc

    def locked_value(self) -> int | None:
        """Lock the counter row and return its value (None if absent)."""
        entry = self._lock_entry()
        return int(entry.value) if entry is not None else None

    def next_value(self) -> int:
        """
        Allocate the next document number.

        Preconditions:
            - The caller is within an active database transaction.

        Postconditions:
            - Returns a value strictly greater than any previously
              committed value for this key.
            - The counter row stays locked until the transaction ends.

        Raises:
            CounterLockTimeoutError: Lock wait exhausted.
        """
        entry = self._lock_entry()

        if entry is None:
            # First use: another writer may be creating the row right now
            savepoint = self._session.begin_nested()
            try:
                entry = ConfigEntry(key=self.key, value="1")
                self._session.add(entry)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "counter_allocated",
                    extra={"counter_key": self.key, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "counter_create_race_retry",
                    extra={"counter_key": self.key},
                )
                savepoint.rollback()
                entry = self._lock_entry()
                if entry is None:
                    raise

        value = int(entry.value) + 1
        entry.value = str(value)
        self._session.flush()
        logger.debug(
            "counter_allocated",
            extra={"counter_key": self.key, "value": value},
        )
        return value

    def release(self, expected: int) -> int:
        """
        Give back the highest number after its receipt was voided.

        Args:
            expected: The document number being released; the counter must
                currently hold exactly this value.

        Returns:
            The new counter value (expected - 1).

        Raises:
            CounterMismatchError: The counter holds a different value.
        """
        entry = self._lock_entry()
        current = int(entry.value) if entry is not None else None
        if current != expected:
            raise CounterMismatchError(current, expected)

        entry.value = str(expected - 1)
        self._session.flush()
        logger.debug(
            "counter_released",
            extra={"counter_key": self.key, "value": expected - 1},
        )
        return expected - 1

    def current_value(self) -> int | None:
        """Read the counter without locking or incrementing."""
        value = self._session.execute(
            select(ConfigEntry.value).where(ConfigEntry.key == self.key)
        ).scalar_one_or_none()
        return int(value) if value is not None else None

    def initialize(self, value: int = 0) -> None:
        """Create the counter row if it does not exist yet."""
        if self.current_value() is None:
            self._session.add(ConfigEntry(key=self.key, value=str(value)))
            self._session.flush()
