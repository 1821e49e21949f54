"""
Module: caja_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.
Architecture position: Kernel > Selectors.  May import from db/, models/, domain
    DTOs and the DTO mappers exposed by services/.  MUST NOT call service
    write operations.

Invariants enforced:
    - Read-only access: selectors MUST NOT call session.add(),
      session.delete(), session.commit(), or session.flush().
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.
    - NO stored balances: every total is derived from movements.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from caja_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs.  The caller owns the session and its transaction.
    """

    def __init__(self, session: Session):
        self.session = session
