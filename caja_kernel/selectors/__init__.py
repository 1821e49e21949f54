"""Read-only selectors for the caja kernel (query side)."""

from caja_kernel.selectors.receipt_selector import ReceiptSelector
from caja_kernel.selectors.report_selector import ReportSelector

__all__ = ["ReceiptSelector", "ReportSelector"]
