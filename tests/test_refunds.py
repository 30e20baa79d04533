from decimal import Decimal

from storefront.models import PaymentStatus
from storefront.refunds import calculate_refund, success_message, to_cents


def test_to_cents_rounds_half_up():
    assert to_cents(99.995) == 10000
    assert to_cents("19.99") == 1999
    assert to_cents(Decimal("0.005")) == 1
    assert to_cents(0) == 0


def test_full_refund_defaults_to_remaining_balance():
    result = calculate_refund(None, 100, 0)

    assert result.amount_to_refund == Decimal("100")
    assert result.total_refunded == Decimal("100")
    assert result.is_fully_refunded is True
    assert result.new_status == PaymentStatus.REFUNDED


def test_partial_refund_keeps_payment_completed():
    result = calculate_refund(30, 100, 20)

    assert result.amount_to_refund == Decimal("30")
    assert result.total_refunded == Decimal("50")
    assert result.is_fully_refunded is False
    assert result.new_status == PaymentStatus.COMPLETED


def test_remaining_balance_after_partial_refund():
    result = calculate_refund(None, Decimal("49.99"), Decimal("10.00"))

    assert result.amount_to_refund == Decimal("39.99")
    assert result.is_fully_refunded is True


def test_success_message():
    assert success_message(True) == "Full refund processed successfully"
    assert success_message(False) == "Partial refund processed successfully"
