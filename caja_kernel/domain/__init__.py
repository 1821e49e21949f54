"""Pure domain layer: clock, DTOs and the running-balance algorithm."""

from caja_kernel.domain.balance import RunningBalance, compute_running_balance
from caja_kernel.domain.clock import (
    ARGENTINA_TZ,
    Clock,
    DeterministicClock,
    SystemClock,
)
from caja_kernel.domain.dtos import (
    DrawerInfo,
    DrawerSummary,
    ExpensePatch,
    ExpenseSplitSpec,
    MovementKind,
    MovementLine,
    ReceiptItemSpec,
    ReceiptPaymentSpec,
)

__all__ = [
    "ARGENTINA_TZ",
    "Clock",
    "DeterministicClock",
    "DrawerInfo",
    "DrawerSummary",
    "ExpensePatch",
    "ExpenseSplitSpec",
    "MovementKind",
    "MovementLine",
    "ReceiptItemSpec",
    "ReceiptPaymentSpec",
    "RunningBalance",
    "SystemClock",
    "compute_running_balance",
]
