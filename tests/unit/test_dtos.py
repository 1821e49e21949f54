"""Validation of request records at construction time."""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest

from caja_kernel.domain.dtos import (
    ExpensePatch,
    ExpenseSplitSpec,
    MovementKind,
    ReceiptItemSpec,
    ReceiptPaymentSpec,
)
from caja_kernel.exceptions import InvalidAmountError, InvalidLineError


class TestReceiptItemSpec:
    def test_create_coerces_amount(self):
        item = ReceiptItemSpec.create("Cuota", 3, 2025, "150")
        assert item.amount == Decimal("150.00")

    def test_frozen(self):
        item = ReceiptItemSpec.create("Cuota", 3, 2025, "150")
        with pytest.raises(FrozenInstanceError):
            item.amount = Decimal("1.00")

    @pytest.mark.parametrize("description", ["", "   ", None])
    def test_blank_description(self, description):
        with pytest.raises(InvalidLineError) as exc_info:
            ReceiptItemSpec.create(description, 1, 2025, "1")
        assert exc_info.value.field == "description"

    def test_description_too_long(self):
        with pytest.raises(InvalidLineError):
            ReceiptItemSpec.create("X" * 101, 1, 2025, "1")

    @pytest.mark.parametrize("month", [0, 13, -1])
    def test_month_range(self, month):
        with pytest.raises(InvalidLineError) as exc_info:
            ReceiptItemSpec.create("Cuota", month, 2025, "1")
        assert exc_info.value.field == "month"

    @pytest.mark.parametrize("year", [1999, 2101])
    def test_year_range(self, year):
        with pytest.raises(InvalidLineError) as exc_info:
            ReceiptItemSpec.create("Cuota", 1, year, "1")
        assert exc_info.value.field == "year"

    @pytest.mark.parametrize("amount", ["0", "-5.00"])
    def test_amount_positive(self, amount):
        with pytest.raises(InvalidAmountError):
            ReceiptItemSpec.create("Cuota", 1, 2025, amount)

    def test_float_amount_refused(self):
        with pytest.raises(TypeError):
            ReceiptItemSpec.create("Cuota", 1, 2025, 1.5)


class TestPaymentSpecs:
    def test_receipt_payment(self):
        payment = ReceiptPaymentSpec.create(1, "99.999", check_numbers="0012")
        assert payment.amount == Decimal("100.00")
        assert payment.check_numbers == "0012"

    def test_receipt_payment_zero(self):
        with pytest.raises(InvalidAmountError):
            ReceiptPaymentSpec.create(1, "0.00")

    def test_expense_split(self):
        split = ExpenseSplitSpec.create(2, "10", check_reference="CH-1")
        assert split.amount == Decimal("10.00")

    def test_expense_split_negative(self):
        with pytest.raises(InvalidAmountError):
            ExpenseSplitSpec.create(2, "-1")

    def test_direct_construction_requires_decimal(self):
        with pytest.raises(InvalidAmountError):
            ExpenseSplitSpec(payment_method_id=1, amount="10.00")


class TestWholeCents:
    """Stored rows carry 2 places, so request amounts must too."""

    @pytest.mark.parametrize(
        "build",
        [
            lambda amount: ReceiptItemSpec("Cuota", 1, 2025, amount),
            lambda amount: ReceiptPaymentSpec(payment_method_id=1, amount=amount),
            lambda amount: ExpenseSplitSpec(payment_method_id=1, amount=amount),
        ],
        ids=["item", "payment", "split"],
    )
    def test_sub_cent_amount_rejected(self, build):
        with pytest.raises(InvalidAmountError) as exc_info:
            build(Decimal("0.005"))
        assert exc_info.value.reason == "must not have fractions of a cent"

    def test_trailing_zeros_accepted(self):
        payment = ReceiptPaymentSpec(payment_method_id=1, amount=Decimal("12.500"))
        assert payment.amount == Decimal("12.50")

    def test_create_rounds_before_validating(self):
        assert ReceiptItemSpec.create("Cuota", 1, 2025, "0.005").amount == Decimal("0.01")
        with pytest.raises(InvalidAmountError):
            ReceiptPaymentSpec.create(1, "0.004")


class TestExpensePatch:
    def test_defaults_leave_everything(self):
        patch = ExpensePatch()
        assert patch.description is None
        assert patch.amount is None
        assert patch.expense_date is None
        assert patch.splits is None


def test_movement_kind_values():
    assert MovementKind("inflow") is MovementKind.INFLOW
    assert MovementKind.OUTFLOW.value == "outflow"
