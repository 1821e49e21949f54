"""ORM models for the caja kernel."""

from caja_kernel.models.audit import AuditAction, AuditRecord
from caja_kernel.models.catalog import Client, Concept, ExpenseDescription, PaymentMethod
from caja_kernel.models.config_entry import RECEIPT_COUNTER_KEY, ConfigEntry
from caja_kernel.models.drawer import Drawer, Movement
from caja_kernel.models.expense import Expense, ExpenseSplit
from caja_kernel.models.receipt import Receipt, ReceiptItem, ReceiptPayment

__all__ = [
    "AuditAction",
    "AuditRecord",
    "Client",
    "Concept",
    "ConfigEntry",
    "Drawer",
    "Expense",
    "ExpenseDescription",
    "ExpenseSplit",
    "Movement",
    "PaymentMethod",
    "RECEIPT_COUNTER_KEY",
    "Receipt",
    "ReceiptItem",
    "ReceiptPayment",
]
