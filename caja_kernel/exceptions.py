"""
Typed Exception Hierarchy for the Caja Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The ledger's callers (HTTP handlers, the operator CLI, batch jobs) must map
every failure to a distinct user-visible outcome. Parsing message strings is
fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example - WRONG way to handle errors:
    try:
        receipts.create_receipt(...)
    except Exception as e:
        if "closed" in str(e):  # FRAGILE - message might change
            ask_operator_to_open_drawer()

Example - RIGHT way:
    try:
        receipts.create_receipt(...)
    except DrawerClosedError as e:
        ask_operator_to_open_drawer(e.drawer_date)
        api_response(status=409, code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from CajaKernelError. The four category classes
map one-to-one onto caller-visible outcomes:

    CajaKernelError (base)
    |
    +-- NotFoundError                   referenced entity is absent
    |   +-- DrawerNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- ExpenseNotFoundError
    |   +-- ClientNotFoundError
    |
    +-- InvalidInputError               malformed or inconsistent request
    |   +-- EmptyReceiptError
    |   +-- UnbalancedReceiptError
    |   +-- UnknownPaymentMethodError
    |   +-- InvalidAmountError
    |   +-- BlankDescriptionError
    |   +-- UnbalancedExpenseError
    |   +-- InvalidLineError
    |   +-- InvalidPageError
    |   +-- InvalidDateRangeError
    |
    +-- InvalidStateError               valid entity, wrong lifecycle state
    |   +-- DrawerClosedError
    |   +-- DrawerAlreadyClosedError
    |   +-- DrawerAlreadyOpenError
    |   +-- NoReceiptsToVoidError
    |   +-- NotLastReceiptError
    |   +-- CounterMismatchError
    |   +-- AutoCloseFailedError
    |
    +-- ConflictError                   lock exhaustion / unique violation
        +-- DocumentNumberConflictError
        +-- DrawerDateConflictError
        +-- CounterLockTimeoutError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | DRAWER_NOT_FOUND            | No drawer for the requested date
                | RECEIPT_NOT_FOUND           | Receipt id absent / ledger empty
                | EXPENSE_NOT_FOUND           | Expense id absent
                | CLIENT_NOT_FOUND            | Receipt references unknown client
----------------|-----------------------------|-----------------------------------------
InvalidInput    | EMPTY_RECEIPT               | No items or no payments
                | UNBALANCED_RECEIPT          | sum(items) != sum(payments)
                | UNKNOWN_PAYMENT_METHOD      | Method ids missing from catalog
                | INVALID_AMOUNT              | Amount <= 0 or not a number
                | BLANK_DESCRIPTION           | Expense description blank
                | UNBALANCED_EXPENSE          | sum(splits) != amount
                | INVALID_LINE                | Bad month/year/description on a line
                | INVALID_PAGE                | page or limit below 1
                | INVALID_DATE_RANGE          | Report window ends before it starts
----------------|-----------------------------|-----------------------------------------
InvalidState    | DRAWER_CLOSED               | Posting into a closed drawer
                | DRAWER_ALREADY_CLOSED       | close() on a closed drawer
                | DRAWER_ALREADY_OPEN         | reopen() on an open drawer
                | NO_RECEIPTS_TO_VOID         | void_last() on an empty ledger
                | NOT_LAST_RECEIPT            | A higher-numbered receipt exists
                | COUNTER_MISMATCH            | Counter != highest receipt number
                | AUTO_CLOSE_FAILED           | Every stale drawer failed to close
----------------|-----------------------------|-----------------------------------------
Conflict        | DOCUMENT_NUMBER_CONFLICT    | Unique violation on document number
                | DRAWER_DATE_CONFLICT        | Unique violation on drawer date
                | COUNTER_LOCK_TIMEOUT        | Lock wait on the counter row exhausted

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CATCH BY CATEGORY AT THE EDGE, BY CLASS IN THE MIDDLE:

    try:
        expenses.create_expense(...)
    except DrawerClosedError as e:
        offer_reopen(e.drawer_date)
    except InvalidInputError as e:
        return {"error": e.code, "message": str(e)}

2. CONFLICTS ARE RETRYABLE:

    except ConflictError:
        retry_with_backoff()

3. AUDIT FAILURES NEVER SURFACE HERE. The audit sink logs and discards
   its own errors; nothing in this module represents them.

===============================================================================
"""

from datetime import date
from decimal import Decimal
from uuid import UUID


class CajaKernelError(Exception):
    """
    Base exception for all caja kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "CAJA_KERNEL_ERROR"


# Category bases


class NotFoundError(CajaKernelError):
    """A referenced drawer, receipt, expense or client is absent."""

    code: str = "NOT_FOUND"


class InvalidInputError(CajaKernelError):
    """Malformed or inconsistent request data."""

    code: str = "INVALID_INPUT"


class InvalidStateError(CajaKernelError):
    """Entity exists but is in the wrong lifecycle state."""

    code: str = "INVALID_STATE"


class ConflictError(CajaKernelError):
    """Lock-wait exhaustion or unique-constraint violation."""

    code: str = "CONFLICT"


# Not found


class DrawerNotFoundError(NotFoundError):
    """No drawer exists for the given date."""

    code: str = "DRAWER_NOT_FOUND"

    def __init__(self, drawer_date: date):
        self.drawer_date = drawer_date
        super().__init__(f"No cash drawer for date {drawer_date}")


class ReceiptNotFoundError(NotFoundError):
    """Receipt with the given id was not found (or the ledger is empty)."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: UUID | None = None):
        self.receipt_id = receipt_id
        if receipt_id is None:
            super().__init__("No receipts have been issued")
        else:
            super().__init__(f"Receipt not found: {receipt_id}")


class ExpenseNotFoundError(NotFoundError):
    """Expense with the given id was not found."""

    code: str = "EXPENSE_NOT_FOUND"

    def __init__(self, expense_id: UUID):
        self.expense_id = expense_id
        super().__init__(f"Expense not found: {expense_id}")


class ClientNotFoundError(NotFoundError):
    """Receipt references a client that does not exist."""

    code: str = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: int):
        self.client_id = client_id
        super().__init__(f"Client not found: {client_id}")


# Invalid input


class EmptyReceiptError(InvalidInputError):
    """Receipt has no line items or no payments."""

    code: str = "EMPTY_RECEIPT"

    def __init__(self, missing: str):
        self.missing = missing
        super().__init__(f"A receipt requires at least one {missing}")


class UnbalancedReceiptError(InvalidInputError):
    """Sum of line items differs from sum of payments."""

    code: str = "UNBALANCED_RECEIPT"

    def __init__(self, items_total: Decimal, payments_total: Decimal):
        self.items_total = items_total
        self.payments_total = payments_total
        super().__init__(
            f"Items total {items_total} does not match "
            f"payments total {payments_total}"
        )


class UnknownPaymentMethodError(InvalidInputError):
    """One or more payment method ids are not in the catalog."""

    code: str = "UNKNOWN_PAYMENT_METHOD"

    def __init__(self, missing_ids: list[int]):
        self.missing_ids = sorted(missing_ids)
        super().__init__(
            f"Unknown payment methods: {', '.join(str(i) for i in self.missing_ids)}"
        )


class InvalidAmountError(InvalidInputError):
    """Amount is not a positive whole number of cents."""

    code: str = "INVALID_AMOUNT"

    def __init__(
        self,
        amount: object,
        field: str = "amount",
        reason: str = "must be greater than zero",
    ):
        self.amount = amount
        self.field = field
        self.reason = reason
        super().__init__(f"{field} {reason} (got {amount})")


class BlankDescriptionError(InvalidInputError):
    """Expense description is empty or whitespace."""

    code: str = "BLANK_DESCRIPTION"

    def __init__(self):
        super().__init__("Description is required")


class UnbalancedExpenseError(InvalidInputError):
    """Sum of payment splits differs from the expense amount."""

    code: str = "UNBALANCED_EXPENSE"

    def __init__(self, amount: Decimal, splits_total: Decimal):
        self.amount = amount
        self.splits_total = splits_total
        super().__init__(
            f"Splits total {splits_total} does not match expense amount {amount}"
        )


class InvalidLineError(InvalidInputError):
    """A receipt line item carries an out-of-range field."""

    code: str = "INVALID_LINE"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class InvalidPageError(InvalidInputError):
    """Pagination parameters below 1."""

    code: str = "INVALID_PAGE"

    def __init__(self, page: int | None, limit: int | None):
        self.page = page
        self.limit = limit
        super().__init__(f"page and limit must be >= 1 (page={page}, limit={limit})")


class InvalidDateRangeError(InvalidInputError):
    """A date window whose end precedes its start."""

    code: str = "INVALID_DATE_RANGE"

    def __init__(self, start_date: date, end_date: date):
        self.start_date = start_date
        self.end_date = end_date
        super().__init__(f"Date range ends ({end_date}) before it starts ({start_date})")


# Invalid state


class DrawerClosedError(InvalidStateError):
    """Movements cannot be posted into a closed drawer."""

    code: str = "DRAWER_CLOSED"

    def __init__(self, drawer_date: date):
        self.drawer_date = drawer_date
        super().__init__(
            f"Cash drawer for {drawer_date} is closed; open it before posting"
        )


class DrawerAlreadyClosedError(InvalidStateError):
    """close() on a drawer that is already closed."""

    code: str = "DRAWER_ALREADY_CLOSED"

    def __init__(self, drawer_date: date):
        self.drawer_date = drawer_date
        super().__init__(f"Cash drawer for {drawer_date} is already closed")


class DrawerAlreadyOpenError(InvalidStateError):
    """reopen() on a drawer that is already open."""

    code: str = "DRAWER_ALREADY_OPEN"

    def __init__(self, drawer_date: date):
        self.drawer_date = drawer_date
        super().__init__(f"Cash drawer for {drawer_date} is already open")


class NoReceiptsToVoidError(InvalidStateError):
    """void_last() called on an empty ledger."""

    code: str = "NO_RECEIPTS_TO_VOID"

    def __init__(self):
        super().__init__("There are no receipts to void")


class NotLastReceiptError(InvalidStateError):
    """A receipt with a higher document number exists."""

    code: str = "NOT_LAST_RECEIPT"

    def __init__(self, document_number: int, higher_number: int):
        self.document_number = document_number
        self.higher_number = higher_number
        super().__init__(
            f"Receipt {document_number} is not the last one; "
            f"receipt {higher_number} exists"
        )


class CounterMismatchError(InvalidStateError):
    """The persisted counter disagrees with the highest receipt number."""

    code: str = "COUNTER_MISMATCH"

    def __init__(self, counter_value: int | None, document_number: int):
        self.counter_value = counter_value
        self.document_number = document_number
        super().__init__(
            f"Receipt counter is {counter_value} but the last receipt is "
            f"{document_number}"
        )


class AutoCloseFailedError(InvalidStateError):
    """Every stale drawer in an auto-close batch failed to close."""

    code: str = "AUTO_CLOSE_FAILED"

    def __init__(self, failed_dates: list[date]):
        self.failed_dates = failed_dates
        super().__init__(
            f"Automatic close failed for all {len(failed_dates)} stale drawers"
        )


# Conflict


class DocumentNumberConflictError(ConflictError):
    """Unique violation on a receipt's document number."""

    code: str = "DOCUMENT_NUMBER_CONFLICT"

    def __init__(self, document_number: int):
        self.document_number = document_number
        super().__init__(f"Receipt number {document_number} already exists")


class DrawerDateConflictError(ConflictError):
    """Unique violation on a drawer's date that could not be resolved."""

    code: str = "DRAWER_DATE_CONFLICT"

    def __init__(self, drawer_date: date):
        self.drawer_date = drawer_date
        super().__init__(f"Concurrent creation of cash drawer for {drawer_date}")


class CounterLockTimeoutError(ConflictError):
    """Waiting for the receipt counter row lock timed out."""

    code: str = "COUNTER_LOCK_TIMEOUT"

    def __init__(self, counter_key: str):
        self.counter_key = counter_key
        super().__init__(f"Timed out waiting for lock on counter '{counter_key}'")
