"""Services for the caja kernel (write side)."""

from caja_kernel.services.auditor_service import (
    AuditorService,
    AuditRecordInfo,
    AuditSink,
    record_best_effort,
)
from caja_kernel.services.catalog_service import CatalogService
from caja_kernel.services.counter_service import DocumentCounter
from caja_kernel.services.drawer_service import DrawerService
from caja_kernel.services.expense_service import ExpenseService
from caja_kernel.services.receipt_service import ReceiptService

__all__ = [
    "AuditRecordInfo",
    "AuditSink",
    "AuditorService",
    "CatalogService",
    "DocumentCounter",
    "DrawerService",
    "ExpenseService",
    "ReceiptService",
    "record_best_effort",
]
