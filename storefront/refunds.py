from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from storefront.models import PaymentStatus

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce a stored or wire amount (Decimal, str, int, float) to Decimal."""
    if isinstance(value, Decimal):
        return value
    # str() first so that 99.995 stays 99.995 and not its binary expansion
    return Decimal(str(value))


def to_cents(amount) -> int:
    """Convert a major-unit amount to integer minor units, rounding half up."""
    return int((to_decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def quantize_money(amount) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class RefundCalculation:
    amount_to_refund: Decimal
    total_refunded: Decimal
    is_fully_refunded: bool
    new_status: PaymentStatus


def calculate_refund(requested_amount, total_amount, already_refunded) -> RefundCalculation:
    total_amount = to_decimal(total_amount)
    already_refunded = to_decimal(already_refunded)

    if requested_amount is None:
        amount_to_refund = total_amount - already_refunded
    else:
        amount_to_refund = to_decimal(requested_amount)

    total_refunded = already_refunded + amount_to_refund
    is_fully_refunded = total_refunded >= total_amount

    return RefundCalculation(
        amount_to_refund=amount_to_refund,
        total_refunded=total_refunded,
        is_fully_refunded=is_fully_refunded,
        new_status=PaymentStatus.REFUNDED if is_fully_refunded else PaymentStatus.COMPLETED,
    )


def success_message(is_fully_refunded: bool) -> str:
    if is_fully_refunded:
        return "Full refund processed successfully"
    return "Partial refund processed successfully"
