"""
Running-balance derivation for a cash drawer.

Responsibility:
    Given a drawer's opening balance and its movements, compute the
    cumulative balance after each movement plus the drawer totals.

Architecture position:
    Kernel > Domain -- pure function, zero I/O.  Called by DrawerService on
    every summary and close; the result is never persisted.

Invariants enforced:
    - Movements are scanned in ascending timestamp order; movements with
      equal timestamps keep their input order (stable sort).
    - closing balance == opening + sum(inflows) - sum(outflows), whatever
      order the movements were inserted in.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Generic, Iterable, Protocol, TypeVar

from caja_kernel.db.types import ZERO, round_money
from caja_kernel.domain.dtos import MovementKind


class MovementLike(Protocol):
    kind: MovementKind
    amount: Decimal
    occurred_at: datetime


M = TypeVar("M", bound=MovementLike)


@dataclass(frozen=True)
class BalancedMovement(Generic[M]):
    movement: M
    running_balance: Decimal


@dataclass(frozen=True)
class RunningBalance(Generic[M]):
    """Result of a running-balance scan, in ascending order."""

    lines: tuple[BalancedMovement[M], ...]
    opening_balance: Decimal
    total_inflow: Decimal
    total_outflow: Decimal
    closing_balance: Decimal


def compute_running_balance(
    opening_balance: Decimal, movements: Iterable[M]
) -> RunningBalance[M]:
    """
    Derive the balance after each movement.

    Args:
        opening_balance: The drawer's opening balance.
        movements: Movements in any order.

    Returns:
        RunningBalance with lines in ascending timestamp order.

    Raises:
        ValueError: If a movement has an unknown kind.
    """
    ordered = sorted(movements, key=lambda m: m.occurred_at)

    balance = round_money(opening_balance)
    inflow = ZERO
    outflow = ZERO
    lines: list[BalancedMovement[M]] = []

    for movement in ordered:
        kind = MovementKind(movement.kind)
        if kind is MovementKind.INFLOW:
            balance += movement.amount
            inflow += movement.amount
        elif kind is MovementKind.OUTFLOW:
            balance -= movement.amount
            outflow += movement.amount
        lines.append(BalancedMovement(movement=movement, running_balance=round_money(balance)))

    return RunningBalance(
        lines=tuple(lines),
        opening_balance=round_money(opening_balance),
        total_inflow=round_money(inflow),
        total_outflow=round_money(outflow),
        closing_balance=round_money(balance),
    )
