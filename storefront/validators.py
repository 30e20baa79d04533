"""Guards run before a payment changes state.

Each guard raises InvalidStateError with a fixed, user-facing message.
"""

from storefront.errors import InvalidStateError
from storefront.models import Payment, PaymentStatus
from storefront.refunds import to_decimal


def validate_refundable(payment: Payment) -> None:
    if payment.status != PaymentStatus.COMPLETED:
        raise InvalidStateError("Only completed payments can be refunded")


def validate_refund_amount(amount, already_refunded, total) -> None:
    amount = to_decimal(amount)
    already_refunded = to_decimal(already_refunded)
    total = to_decimal(total)

    if amount <= 0:
        raise InvalidStateError("Invalid refund amount")

    if already_refunded + amount > total:
        raise InvalidStateError(
            "Cannot refund more than the payment amount. "
            f"Already refunded: {already_refunded}, Total: {total}"
        )


def validate_payment_intent(payment_intent_id: str | None) -> None:
    if not payment_intent_id:
        raise InvalidStateError("No payment intent found for this payment")


def validate_not_completed(payment: Payment | None) -> None:
    if payment is None:
        return
    if payment.status == PaymentStatus.COMPLETED:
        raise InvalidStateError("Payment already completed for this order")
    if payment.status == PaymentStatus.REFUNDED:
        raise InvalidStateError("Payment already refunded for this order")
