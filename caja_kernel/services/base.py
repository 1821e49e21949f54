"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service.  All concrete services inherit from BaseService,
    receiving a SQLAlchemy ``Session`` that they use via
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit it.  The caller (``session_scope()``,
      an HTTP request handler, the CLI, a test) owns commit/rollback.
    - Each ledger operation wraps its own writes in a SAVEPOINT
      (``unit_of_work()``) so a failed operation leaves nothing behind,
      even when the caller keeps using the outer transaction.

Failure modes:
    - If a subclass calls ``session.commit()``, multi-step atomicity
      (receipt + items + payments + movements + counter) is broken.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generic, Iterator, TypeVar

from sqlalchemy.orm import Session, SessionTransaction

from caja_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()``.
        - ``unit_of_work()`` releases its savepoint on success and rolls
          it back on any exception, re-raising the exception.

    Non-goals:
        - Does NOT manage the outer transaction lifecycle.
        - Does NOT provide query-only (read) methods -- those belong
          in ``caja_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Initialize the service.

        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session

    @contextmanager
    def unit_of_work(self) -> Iterator[SessionTransaction]:
        """Run a block inside a SAVEPOINT of the caller's transaction."""
        with self.session.begin_nested() as savepoint:
            yield savepoint
